"""Resolve application secrets (JWT signing key, Stripe keys) from a provider."""
from __future__ import annotations

import json
import os
from functools import lru_cache

from .base import SecretProvider
from .providers import AWSSecretsManagerProvider, EnvironmentSecretProvider


class SecretManager:
    """Cache lookups against a single configured provider."""

    def __init__(self, provider: SecretProvider) -> None:
        self._provider = provider
        self._cache: dict[str, str | None] = {}

    @property
    def provider(self) -> SecretProvider:
        return self._provider

    def get(self, key: str, default: str | None = None) -> str | None:
        if key not in self._cache:
            try:
                self._cache[key] = self._provider.get_secret(key)
            except Exception as exc:
                raise RuntimeError(
                    f"Unable to resolve secret '{key}' using provider '{self._provider.name}'"
                ) from exc
        value = self._cache[key]
        return value if value is not None else default


def _build_provider() -> SecretProvider:
    provider = os.environ.get("SECRET_MANAGER_PROVIDER", "environment").strip().lower()
    if provider in {"env", "environment", "local"}:
        return EnvironmentSecretProvider(prefix=os.environ.get("SECRET_MANAGER_ENV_PREFIX"))
    if provider in {"aws", "aws-secrets-manager", "secretsmanager"}:
        region_name = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
        if not region_name:
            raise RuntimeError("AWS_REGION or AWS_DEFAULT_REGION must be set for AWS Secrets Manager")
        raw_mapping = os.environ.get("SECRET_MANAGER_KEY_MAPPING")
        mapping = json.loads(raw_mapping) if raw_mapping else {}
        return AWSSecretsManagerProvider(
            region_name=region_name,
            prefix=os.environ.get("AWS_SECRETS_PREFIX", "partystream/"),
            key_mapping=mapping,
        )
    raise RuntimeError(f"Unknown secret manager provider: {provider}")


@lru_cache(maxsize=1)
def get_secret_manager() -> SecretManager:
    return SecretManager(_build_provider())


def get_secret(key: str, default: str | None = None) -> str | None:
    return get_secret_manager().get(key, default=default)


__all__ = ["SecretManager", "get_secret", "get_secret_manager"]
