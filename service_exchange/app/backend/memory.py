"""
In-process credential backend for local development against the mock provider.
"""

import asyncio
import secrets
from typing import Any, Dict, List, Optional, Tuple

from shared.logging import get_logger
from .base import BackendUserExists, BackendUserNotFound, CredentialBackend
from ..models import UserAttributes


class InMemoryCredentialBackend(CredentialBackend):
    """Keeps user records in a dict and mints random opaque credentials.

    Enforces the same contract as a real backend: update of an unknown id is
    not-found, create of a known id is a uniqueness violation. Each call
    yields to the event loop before touching the store so concurrent
    requests interleave the way remote calls would.
    """

    name = "memory"

    def __init__(self):
        self.users: Dict[str, UserAttributes] = {}
        self.minted: List[Tuple[str, Dict[str, Any]]] = []
        self.logger = get_logger("exchange.backend.memory")

    async def update_user(self, internal_id: str, attributes: UserAttributes) -> None:
        await asyncio.sleep(0)
        if internal_id not in self.users:
            raise BackendUserNotFound(f"no user {internal_id}", "update_user")
        current = self.users[internal_id]
        # None means "leave unchanged", as with the remote backend
        self.users[internal_id] = current.model_copy(
            update=attributes.model_dump(exclude_none=True)
        )

    async def create_user(self, internal_id: str, attributes: UserAttributes) -> None:
        await asyncio.sleep(0)
        if internal_id in self.users:
            raise BackendUserExists(f"user {internal_id} exists", "create_user")
        self.users[internal_id] = attributes
        self.logger.info("User created", internal_id=internal_id)

    async def mint_credential(self, internal_id: str, claims: Optional[Dict[str, Any]] = None) -> str:
        await asyncio.sleep(0)
        self.minted.append((internal_id, dict(claims or {})))
        return f"mem.{secrets.token_urlsafe(32)}"
