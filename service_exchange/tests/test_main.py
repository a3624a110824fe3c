"""
Tests for the exchange service HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from service_exchange.app.backend.base import BackendError
from service_exchange.app.main import ExchangeService, create_app
from service_exchange.app.provider.client import ProviderHTTPError, ProviderTransportError


@pytest.fixture
def app(bridge_config, provider, backend):
    """Create FastAPI app instance."""
    return create_app(bridge_config, provider=provider, backend=backend)


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "exchange"
    assert data["version"] == "1.0.0"


def test_health_check(client, provider):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "exchange"
    assert data["status"] == "ok"
    assert data["dependencies"] == {"identity_provider": "ok", "credential_backend": "ok"}


def test_health_check_degraded(client, provider):
    """Test health check when the provider is unreachable."""
    provider.check_health.return_value = False

    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["dependencies"]["identity_provider"] == "error"


def test_exchange_token(client, backend):
    """Test the documented end-to-end example."""
    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert isinstance(data["credential"], str) and data["credential"]
    assert data["identity"] == {
        "internalId": "extprov:u1",
        "email": "u1@test.com",
        "displayName": "Jo",
        "externalSubject": "u1",
    }
    assert "extprov:u1" in backend.users


@pytest.mark.parametrize("field", ["externalToken", "authgearToken", "authgear_token"])
def test_exchange_token_field_aliases(client, field):
    """Test every deployment's token field name is accepted."""
    response = client.post("/exchange-token", json={field: "tok123"})
    assert response.status_code == 200


@pytest.mark.parametrize("body", [
    {},
    {"externalToken": ""},
    {"externalToken": None},
    {"externalToken": "Bearer "},
    {"authgearToken": "  bearer  "},
    {"token": "tok123"},
])
def test_missing_token(client, provider, backend, body):
    """Test missing token is rejected with no remote calls."""
    response = client.post("/exchange-token", json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "MISSING_TOKEN"
    assert data["error"].startswith("Missing")
    provider.introspect.assert_not_awaited()
    assert backend.side_effect_calls == 0


def test_empty_body(client, provider):
    """Test an empty body counts as a missing token."""
    response = client.post("/exchange-token", content=b"")

    assert response.status_code == 400
    assert response.json()["code"] == "MISSING_TOKEN"
    provider.introspect.assert_not_awaited()


@pytest.mark.parametrize("content", [b"not json", b"[1, 2]", b'{"externalToken": 42}'])
def test_malformed_body(client, provider, content):
    """Test malformed input."""
    response = client.post(
        "/exchange-token",
        content=content,
        headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"
    provider.introspect.assert_not_awaited()


def test_invalid_token(client):
    """Test inactive tokens map to 401."""
    response = client.post("/exchange-token", json={"externalToken": "revoked"})

    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_INVALID"


def test_incomplete_identity(client, profiles, tokens):
    """Test identities without contact details map to 400."""
    profiles["u3"] = ({"sub": "u3"}, {"identities": []})
    tokens["tok-u3"] = "u3"

    response = client.post("/exchange-token", json={"externalToken": "tok-u3"})

    assert response.status_code == 400
    assert response.json()["code"] == "INCOMPLETE_IDENTITY"


def test_provider_unavailable(client, provider):
    """Test provider connection failures map to 502."""
    provider.introspect.side_effect = ProviderTransportError("refused", "introspect")

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 502
    assert response.json()["code"] == "PROVIDER_UNAVAILABLE"


def test_provider_timeout(client, provider):
    """Test provider timeouts map to 504."""
    provider.introspect.side_effect = ProviderTransportError("timed out", "introspect", timeout=True)

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 504
    assert response.json()["code"] == "PROVIDER_TIMEOUT"


def test_identity_fetch_failed(client, provider):
    """Test lookup failures map to 502."""
    provider.get_user_detail.side_effect = ProviderHTTPError(500, "user_detail")

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 502
    assert response.json()["code"] == "IDENTITY_FETCH_FAILED"


def test_provision_error(client, backend):
    """Test provisioning failures map to 500."""
    backend.fail_on["update_user"] = BackendError("permission denied", "update_user")

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 500
    assert response.json()["code"] == "PROVISION_ERROR"


def test_mint_failure(client, backend):
    """Test minting failures map to 500."""
    backend.fail_on["mint_credential"] = BackendError("signing failed", "mint_credential")

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 500
    assert response.json()["code"] == "CREDENTIAL_MINT_FAILED"


def test_unexpected_error_is_generic(client, provider):
    """Test unclassified failures surface as INTERNAL_ERROR with diagnostics outside production."""
    provider.introspect.side_effect = RuntimeError("kaboom")

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 500
    data = response.json()
    assert data["code"] == "INTERNAL_ERROR"
    assert data["error"] == "Internal server error"
    assert "kaboom" in data["details"]["exception"]


def test_production_hides_details(bridge_config, provider, backend):
    """Test production responses carry no diagnostic details."""
    config = bridge_config.model_copy(update={"env": "production"})
    client = TestClient(create_app(config, provider=provider, backend=backend))
    provider.introspect.side_effect = RuntimeError("kaboom")

    response = client.post("/exchange-token", json={"externalToken": "tok123"})

    assert response.status_code == 500
    assert "details" not in response.json()
    assert "kaboom" not in response.text


def test_request_id_header(client):
    """Test request ids are propagated."""
    response = client.get("/", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"

    generated = client.get("/")
    assert generated.headers["X-Request-ID"]


def test_metrics_endpoint(client):
    """Test Prometheus exposition includes exchange counters."""
    client.post("/exchange-token", json={"externalToken": "tok123"})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert 'token_exchanges_total{outcome="success"} 1.0' in response.text


def test_cors_allowed_origin(bridge_config, provider, backend):
    """Test configured origins receive CORS headers."""
    config = bridge_config.model_copy(update={"allowed_origins": "https://app.example.com"})
    client = TestClient(create_app(config, provider=provider, backend=backend))

    response = client.options(
        "/exchange-token",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.headers["access-control-allow-origin"] == "https://app.example.com"


def test_shutdown_closes_clients(bridge_config, provider, backend):
    """Test clients are released when the app stops."""
    service = ExchangeService(bridge_config, provider=provider, backend=backend)

    with TestClient(service.app):
        pass

    provider.aclose.assert_awaited_once()
