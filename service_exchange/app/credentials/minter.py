"""Internal credential minting."""

from typing import Any, Dict, Optional

from shared.logging import get_logger
from ..backend.base import BackendError, CredentialBackend
from ..errors import CredentialMintFailed
from ..models import ExternalIdentity


class CredentialMinter:
    """Delegates signing to the backend; any failure is server-side."""

    def __init__(self, backend: CredentialBackend, embed_claims: bool = True):
        self.backend = backend
        self.embed_claims = embed_claims
        self.logger = get_logger("exchange.minter")

    def build_claims(self, identity: ExternalIdentity) -> Dict[str, Any]:
        if not self.embed_claims:
            return {}
        claims: Dict[str, Any] = {"email_verified": True}
        if identity.email:
            claims["email"] = identity.email
        return claims

    async def mint(self, internal_id: str, claims: Optional[Dict[str, Any]] = None) -> str:
        try:
            credential = await self.backend.mint_credential(internal_id, claims or None)
        except BackendError as e:
            self.logger.error("Credential minting failed", internal_id=internal_id, error=str(e))
            raise CredentialMintFailed(details={
                "internal_id": internal_id,
                "timeout": e.timeout,
            }) from e

        if not credential:
            raise CredentialMintFailed(
                "Backend returned an empty credential",
                details={"internal_id": internal_id}
            )
        return credential
