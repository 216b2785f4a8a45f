"""Provider protocol for secret lookups."""
from __future__ import annotations

from typing import Protocol


class SecretProvider(Protocol):
    """Anything able to resolve a secret by key.

    Providers return ``None`` for unknown keys and let transport or
    permission errors propagate so misconfiguration is visible at startup.
    """

    name: str

    def get_secret(self, key: str) -> str | None:
        ...


__all__ = ["SecretProvider"]
