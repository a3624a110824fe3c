"""
Error taxonomy for the token exchange pipeline.

Every stage raises only the classified errors below; nothing unclassified is
allowed to cross a component boundary.
"""

from typing import Any, Dict, Optional

from shared.errors import BridgeException


class ExchangeError(BridgeException):
    """Base class for classified exchange failures."""


class MissingToken(ExchangeError):
    status_code = 400

    def __init__(self, message: str = "Missing externalToken"):
        super().__init__("MISSING_TOKEN", message)


class TokenInvalid(ExchangeError):
    status_code = 401

    def __init__(self, message: str = "Token is not active"):
        super().__init__("TOKEN_INVALID", message)


class ProviderUnavailable(ExchangeError):
    """Provider could not be reached or answered with a server error."""

    status_code = 502

    def __init__(self, message: str = "Identity provider unavailable",
                 details: Optional[Dict[str, Any]] = None, code: str = "PROVIDER_UNAVAILABLE"):
        super().__init__(code, message, details)


class ProviderTimeout(ProviderUnavailable):
    status_code = 504

    def __init__(self, message: str = "Identity provider timed out",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="PROVIDER_TIMEOUT")


class ProviderProtocolError(ExchangeError):
    """Provider answered, but not in the shape its contract promises."""

    status_code = 502

    def __init__(self, message: str = "Identity provider returned an invalid response",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("PROVIDER_PROTOCOL_ERROR", message, details)


class IdentityFetchFailed(ExchangeError):
    status_code = 502

    def __init__(self, message: str = "Failed to fetch identity from provider",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("IDENTITY_FETCH_FAILED", message, details)


class IncompleteIdentity(ExchangeError):
    status_code = 400

    def __init__(self, message: str = "Identity has neither email nor phone number",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("INCOMPLETE_IDENTITY", message, details)


class ProvisionError(ExchangeError):
    status_code = 500

    def __init__(self, message: str = "Failed to provision internal user",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("PROVISION_ERROR", message, details)


class ProvisionConflict(ExchangeError):
    """Concurrent create lost the race; the record exists."""

    status_code = 409

    def __init__(self, internal_id: str):
        self.internal_id = internal_id
        super().__init__("PROVISION_CONFLICT", "Internal user was created concurrently",
                         {"internal_id": internal_id})


class CredentialMintFailed(ExchangeError):
    status_code = 500

    def __init__(self, message: str = "Failed to mint credential",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("CREDENTIAL_MINT_FAILED", message, details)
