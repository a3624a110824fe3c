"""
HTTP client for the external identity provider.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from shared.logging import get_logger


class ProviderRequestError(Exception):
    """Base class for failures talking to the identity provider."""

    def __init__(self, message: str, operation: str):
        self.operation = operation
        super().__init__(message)


class ProviderTransportError(ProviderRequestError):
    """Connection failure or timeout; no response was received."""

    def __init__(self, message: str, operation: str, timeout: bool = False):
        self.timeout = timeout
        super().__init__(message, operation)


class ProviderHTTPError(ProviderRequestError):
    """Provider answered with a non-2xx status."""

    def __init__(self, status_code: int, operation: str):
        self.status_code = status_code
        super().__init__(f"{operation} returned HTTP {status_code}", operation)


class ProviderPayloadError(ProviderRequestError):
    """Provider answered 2xx with a body that is not a JSON object."""


class IdentityProviderClient:
    """Client for the provider's introspection, userinfo and user-detail endpoints.

    The underlying ``httpx.AsyncClient`` is created once by the service and
    shared across requests; every call carries an explicit timeout.
    """

    def __init__(
        self,
        endpoint: str,
        client_id: str,
        http_client: httpx.AsyncClient,
        timeout: float = 5.0,
        admin_token: Optional[str] = None,
        introspection_path: str = "/oauth2/introspect",
        userinfo_path: str = "/oauth2/userinfo",
        user_detail_path: str = "/api/users/{subject}",
        discovery_path: str = "/.well-known/openid-configuration",
    ):
        self.endpoint = endpoint.rstrip("/")
        self.client_id = client_id
        self.timeout = timeout
        self.admin_token = admin_token
        self.introspection_path = introspection_path
        self.userinfo_path = userinfo_path
        self.user_detail_path = user_detail_path
        self.discovery_path = discovery_path
        self._http = http_client
        self.logger = get_logger("exchange.provider")

    async def introspect(self, token: str) -> Dict[str, Any]:
        """POST ``{client_id, token}`` to the introspection endpoint."""
        return await self._request(
            "introspect",
            "POST",
            self.introspection_path,
            data={"client_id": self.client_id, "token": token},
        )

    async def get_userinfo(self, token: str) -> Dict[str, Any]:
        """Current-user profile for the bearer token."""
        return await self._request(
            "userinfo",
            "GET",
            self.userinfo_path,
            headers=self._bearer(token),
        )

    async def get_user_detail(self, subject: str, token: str) -> Dict[str, Any]:
        """User record (identities, name) by subject.

        Authorized with the admin token when one is configured, else with the
        user's own token.
        """
        path = self.user_detail_path.format(subject=quote(subject, safe=""))
        return await self._request(
            "user_detail",
            "GET",
            path,
            headers=self._bearer(self.admin_token or token),
        )

    async def check_health(self) -> bool:
        try:
            await self._request("discovery", "GET", self.discovery_path)
            return True
        except ProviderRequestError:
            return False

    async def aclose(self):
        await self._http.aclose()

    @staticmethod
    def _bearer(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        try:
            response = await self._http.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            self.logger.warning("Provider call timed out", operation=operation, timeout=self.timeout)
            raise ProviderTransportError(str(e) or "timed out", operation, timeout=True) from e
        except httpx.TransportError as e:
            self.logger.warning("Provider call failed", operation=operation, error=str(e))
            raise ProviderTransportError(str(e) or type(e).__name__, operation) from e

        if not response.is_success:
            self.logger.warning(
                "Provider returned error status",
                operation=operation,
                status_code=response.status_code
            )
            raise ProviderHTTPError(response.status_code, operation)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderPayloadError(f"{operation} returned a non-JSON body", operation) from e

        if not isinstance(data, dict):
            raise ProviderPayloadError(f"{operation} returned a non-object body", operation)

        return data
