"""
Shared fixtures for exchange service tests.
"""

from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import BridgeConfig
from shared.metrics import MetricsCollector
from service_exchange.app.backend.memory import InMemoryCredentialBackend
from service_exchange.app.credentials.minter import CredentialMinter
from service_exchange.app.exchange.orchestrator import TokenExchangeOrchestrator
from service_exchange.app.identity.resolver import IdentityResolver
from service_exchange.app.models import UserAttributes
from service_exchange.app.provider.client import IdentityProviderClient
from service_exchange.app.provisioning.provisioner import IdentityProvisioner
from service_exchange.app.verification.token_verifier import TokenVerifier


class RecordingBackend(InMemoryCredentialBackend):
    """In-memory backend that counts calls and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.calls: Dict[str, int] = {"update_user": 0, "create_user": 0, "mint_credential": 0}
        self.fail_on: Dict[str, Exception] = {}

    def _enter(self, operation: str):
        self.calls[operation] += 1
        if operation in self.fail_on:
            raise self.fail_on[operation]

    async def update_user(self, internal_id: str, attributes: UserAttributes) -> None:
        self._enter("update_user")
        await super().update_user(internal_id, attributes)

    async def create_user(self, internal_id: str, attributes: UserAttributes) -> None:
        self._enter("create_user")
        await super().create_user(internal_id, attributes)

    async def mint_credential(self, internal_id: str, claims: Optional[Dict[str, Any]] = None) -> str:
        self._enter("mint_credential")
        return await super().mint_credential(internal_id, claims)

    @property
    def side_effect_calls(self) -> int:
        return sum(self.calls.values())


@pytest.fixture
def bridge_config():
    """Configuration with an in-memory backend and no external IO."""
    return BridgeConfig(
        env="test",
        provider_name="extprov",
        provider_endpoint="https://idp.example.com/",
        provider_client_id="bridge-client",
        credential_backend="memory",
        request_timeout=2.0,
    )


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def profiles():
    """Provider data keyed by subject: (profile, detail)."""
    return {
        "u1": (
            {"sub": "u1", "email": "u1@test.com", "name": "Jo"},
            {"identities": []},
        ),
    }


@pytest.fixture
def tokens():
    """Active tokens mapped to their subject."""
    return {"tok123": "u1"}


@pytest.fixture
def provider(profiles, tokens):
    """Provider client double backed by the ``profiles``/``tokens`` fixtures."""
    client = MagicMock(spec=IdentityProviderClient)

    async def introspect(token):
        subject = tokens.get(token)
        if subject is None:
            return {"active": False}
        return {"active": True, "sub": subject}

    async def get_userinfo(token):
        return profiles[tokens[token]][0]

    async def get_user_detail(subject, token):
        return profiles[subject][1]

    client.introspect = AsyncMock(side_effect=introspect)
    client.get_userinfo = AsyncMock(side_effect=get_userinfo)
    client.get_user_detail = AsyncMock(side_effect=get_user_detail)
    client.check_health = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def metrics():
    return MetricsCollector("exchange")


@pytest.fixture
def orchestrator(provider, backend, metrics):
    return TokenExchangeOrchestrator(
        verifier=TokenVerifier(provider),
        resolver=IdentityResolver(provider),
        provisioner=IdentityProvisioner(backend),
        minter=CredentialMinter(backend),
        provider_name="extprov",
        metrics=metrics,
    )
