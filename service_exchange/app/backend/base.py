"""Contract for the internal credential backend."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Optional

from ..models import UserAttributes


class BackendError(Exception):
    """Any failure reported by the credential backend."""

    def __init__(self, message: str, operation: str, timeout: bool = False):
        self.operation = operation
        self.timeout = timeout
        super().__init__(message)


class BackendUserNotFound(BackendError):
    """``update_user`` targeted an id with no record."""


class BackendUserExists(BackendError):
    """``create_user`` targeted an id that already has a record."""


class CredentialBackend(ABC):
    """User-record store and credential signer keyed by internal subject id.

    Implementations translate every failure into ``BackendError`` or one of
    its subclasses.
    """

    name: ClassVar[str]
    supports_upsert: ClassVar[bool] = False

    @abstractmethod
    async def update_user(self, internal_id: str, attributes: UserAttributes) -> None:
        """Update an existing record; raise ``BackendUserNotFound`` if absent."""

    @abstractmethod
    async def create_user(self, internal_id: str, attributes: UserAttributes) -> None:
        """Create a record; raise ``BackendUserExists`` if one exists."""

    async def upsert_user(self, internal_id: str, attributes: UserAttributes) -> None:
        """Atomic update-or-create, for backends that have one."""
        raise NotImplementedError(f"{self.name} has no native upsert")

    @abstractmethod
    async def mint_credential(self, internal_id: str, claims: Optional[Dict[str, Any]] = None) -> str:
        """Sign a fresh credential for ``internal_id``."""

    async def check_health(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
