"""
Token exchange service for the token bridge.
"""

import sys
from typing import Optional

import httpx
from fastapi import Request
from pydantic import ValidationError as PydanticValidationError

from shared.base_service import BaseService
from shared.config import BridgeConfig, ConfigurationError, load_config
from shared.errors import BridgeException, InternalError, ValidationError
from shared.logging import configure_logging, get_logger
from .backend.base import CredentialBackend
from .backend.firebase import FirebaseCredentialBackend
from .backend.memory import InMemoryCredentialBackend
from .credentials.minter import CredentialMinter
from .exchange.orchestrator import TokenExchangeOrchestrator
from .identity.resolver import IdentityResolver
from .models import ExchangeRequest
from .provider.client import IdentityProviderClient
from .provisioning.provisioner import IdentityProvisioner
from .verification.token_verifier import TokenVerifier


def build_backend(config: BridgeConfig) -> CredentialBackend:
    """Credential backend selected by ``credential_backend``."""
    if config.credential_backend == "memory":
        return InMemoryCredentialBackend()
    return FirebaseCredentialBackend.from_config(config)


class ExchangeService(BaseService):
    """Exchange service implementation.

    Both outbound clients are built once here and handed to the pipeline
    components; tests pass their own.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        provider: Optional[IdentityProviderClient] = None,
        backend: Optional[CredentialBackend] = None,
    ):
        config = config or load_config()
        super().__init__("exchange", config)

        self.provider = provider or IdentityProviderClient(
            config.provider_endpoint,
            config.provider_client_id,
            http_client=httpx.AsyncClient(timeout=config.request_timeout),
            timeout=config.request_timeout,
            admin_token=config.provider_admin_token,
        )
        self.backend = backend or build_backend(config)

        self.orchestrator = TokenExchangeOrchestrator(
            verifier=TokenVerifier(self.provider),
            resolver=IdentityResolver(self.provider),
            provisioner=IdentityProvisioner(self.backend),
            minter=CredentialMinter(self.backend, embed_claims=config.embed_identity_claims),
            provider_name=config.provider_name,
            metrics=self.metrics,
        )

        self._setup_exchange_routes()

    def _setup_exchange_routes(self):
        """Set up exchange-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "exchange",
                "message": f"Token Bridge - {self.config.provider_name} to {self.backend.name} exchange",
                "version": "1.0.0"
            }

        @self.app.post("/exchange-token")
        async def exchange_token(request: Request):
            """Exchange an external provider token for an internal credential."""
            payload = await self._parse_request(request)

            try:
                result = await self.orchestrator.exchange(payload.token)
            except BridgeException:
                raise
            except Exception as e:
                self.logger.error("Unclassified exchange failure", error=str(e), exc_info=True)
                raise InternalError(details={"exception": repr(e)}) from e

            return result.model_dump(by_alias=True)

    async def _parse_request(self, request: Request) -> ExchangeRequest:
        raw = await request.body()
        if not raw.strip():
            return ExchangeRequest()

        try:
            body = await request.json()
        except ValueError as e:
            raise ValidationError("Request body must be JSON") from e

        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        try:
            return ExchangeRequest.model_validate(body)
        except PydanticValidationError as e:
            raise ValidationError(
                "externalToken must be a string",
                details={"errors": [err["msg"] for err in e.errors()]}
            ) from e

    async def _check_dependencies(self):
        """Check exchange dependencies."""
        return {
            "identity_provider": "ok" if await self.provider.check_health() else "error",
            "credential_backend": "ok" if await self.backend.check_health() else "error",
        }

    async def shutdown(self):
        await self.provider.aclose()
        await self.backend.aclose()


def create_app(config: Optional[BridgeConfig] = None, **collaborators):
    """Create FastAPI application."""
    service = ExchangeService(config, **collaborators)
    return service.app


def main():
    try:
        service = ExchangeService()
    except ConfigurationError as e:
        configure_logging("exchange")
        get_logger("exchange.startup").error("Refusing to start", error=str(e))
        sys.exit(1)
    service.run()


if __name__ == "__main__":
    main()
