"""
External token verification for the exchange service.
"""

from shared.logging import get_logger, redact_token
from ..errors import ProviderProtocolError, ProviderTimeout, ProviderUnavailable, TokenInvalid
from ..models import TokenIntrospectionResult
from ..provider.client import (
    IdentityProviderClient,
    ProviderHTTPError,
    ProviderPayloadError,
    ProviderTransportError,
)


class TokenVerifier:
    """Confirms a token is active with the provider and extracts its subject.

    One introspection attempt per call; retrying is left to the caller.
    """

    def __init__(self, provider: IdentityProviderClient):
        self.provider = provider
        self.logger = get_logger("exchange.verifier")

    async def verify(self, token: str) -> TokenIntrospectionResult:
        """Introspect ``token``.

        Raises ``TokenInvalid`` for an inactive token, ``ProviderUnavailable``
        / ``ProviderTimeout`` when the provider cannot answer and
        ``ProviderProtocolError`` when its answer breaks the contract.
        """
        try:
            payload = await self.provider.introspect(token)
        except ProviderTransportError as e:
            if e.timeout:
                raise ProviderTimeout(details={"operation": e.operation}) from e
            raise ProviderUnavailable(details={"operation": e.operation, "error": str(e)}) from e
        except ProviderHTTPError as e:
            details = {"operation": e.operation, "status_code": e.status_code}
            if e.status_code >= 500:
                raise ProviderUnavailable(details=details) from e
            self.logger.error("Introspection rejected by provider", **details)
            raise ProviderProtocolError(details=details) from e
        except ProviderPayloadError as e:
            self.logger.error("Introspection returned malformed body", error=str(e))
            raise ProviderProtocolError(details={"operation": e.operation, "error": str(e)}) from e

        active = payload.get("active")
        if not isinstance(active, bool):
            self.logger.error("Introspection response missing 'active'", keys=sorted(payload))
            raise ProviderProtocolError(
                "Introspection response missing 'active'",
                details={"operation": "introspect"}
            )

        if not active:
            self.logger.info("Inactive token presented", token=redact_token(token))
            raise TokenInvalid()

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            self.logger.error("Active token without subject", keys=sorted(payload))
            raise ProviderProtocolError(
                "Introspection response missing subject",
                details={"operation": "introspect"}
            )

        return TokenIntrospectionResult(active=True, subject=subject, claims=payload)
