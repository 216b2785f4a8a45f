"""Secret providers backed by the process environment or AWS Secrets Manager."""
from __future__ import annotations

import json
import os
from typing import Mapping

import boto3
from botocore.exceptions import ClientError


class EnvironmentSecretProvider:
    """Read secrets from environment variables, optionally prefixed."""

    name = "environment"

    def __init__(self, prefix: str | None = None) -> None:
        self._prefix = prefix or ""

    def get_secret(self, key: str) -> str | None:
        return os.environ.get(f"{self._prefix}{key}")


class AWSSecretsManagerProvider:
    """Read secrets from AWS Secrets Manager.

    A secret may hold either the raw value or a JSON object; for JSON the
    entry named after the key (or ``value``) is returned.
    """

    name = "aws-secrets-manager"

    def __init__(
        self,
        *,
        region_name: str,
        prefix: str = "",
        key_mapping: Mapping[str, str] | None = None,
        client=None,
    ) -> None:
        self._client = client or boto3.session.Session().client(
            "secretsmanager", region_name=region_name
        )
        self._prefix = prefix
        self._mapping = dict(key_mapping or {})

    def _secret_id(self, key: str) -> str:
        return self._mapping.get(key, f"{self._prefix}{key}")

    def get_secret(self, key: str) -> str | None:
        try:
            response = self._client.get_secret_value(SecretId=self._secret_id(key))
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                return None
            raise
        secret_string = response.get("SecretString")
        if secret_string is None:
            return None
        try:
            data = json.loads(secret_string)
        except json.JSONDecodeError:
            return secret_string
        if not isinstance(data, dict):
            return secret_string
        return data.get(key) or data.get("value")


__all__ = ["AWSSecretsManagerProvider", "EnvironmentSecretProvider"]
