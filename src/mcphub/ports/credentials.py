"""Port definitions for secret storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


class CredentialStoreError(RuntimeError):
    pass


def server_env_key(server_id: str, name: str) -> str:
    """Key under which a server's environment variable is kept in the credential store."""

    return f"server:{server_id}:env:{name}"


class CredentialStore(ABC):
    @abstractmethod
    def store(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or ``None`` when the key is unknown."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; unknown keys are ignored."""

    @abstractmethod
    def available(self) -> bool:
        """Report whether the backing secret service can be used."""


__all__ = ["CredentialStore", "CredentialStoreError", "server_env_key"]
