"""
Firebase Admin implementation of the credential backend.
"""

import asyncio
import base64
import binascii
import json
from typing import Any, Callable, Dict, Optional

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin.exceptions import FirebaseError

from shared.config import BridgeConfig, ConfigurationError
from shared.logging import get_logger
from .base import BackendError, BackendUserExists, BackendUserNotFound, CredentialBackend
from ..models import UserAttributes

APP_NAME = "token-bridge"


def service_account_info(config: BridgeConfig) -> Dict[str, Any]:
    """Service-account JSON from either the base64 blob or the split fields."""
    if config.firebase_service_account_base64:
        try:
            raw = base64.b64decode(config.firebase_service_account_base64, validate=True)
            info = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise ConfigurationError("firebase_service_account_base64 is not base64-encoded JSON") from e
        if not isinstance(info, dict):
            raise ConfigurationError("firebase_service_account_base64 must decode to a JSON object")
        return info

    return {
        "type": "service_account",
        "project_id": config.firebase_project_id,
        "client_email": config.firebase_client_email,
        # Env files usually carry the PEM with escaped newlines
        "private_key": (config.firebase_private_key or "").replace("\\n", "\n"),
        "token_uri": "https://oauth2.googleapis.com/token",
    }


class FirebaseCredentialBackend(CredentialBackend):
    """Firebase Auth user records and custom tokens.

    The Admin SDK is blocking, so each call runs in a worker thread bounded by
    ``timeout``. A timed-out thread is abandoned, not cancelled; its result
    is discarded.
    """

    name = "firebase"

    def __init__(self, app: firebase_admin.App, timeout: float = 5.0):
        self.app = app
        self.timeout = timeout
        self.logger = get_logger("exchange.backend.firebase")

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "FirebaseCredentialBackend":
        try:
            app = firebase_admin.get_app(APP_NAME)
        except ValueError:
            options: Dict[str, Any] = {"httpTimeout": config.request_timeout}
            if config.firebase_database_url:
                options["databaseURL"] = config.firebase_database_url
            try:
                certificate = credentials.Certificate(service_account_info(config))
            except ValueError as e:
                raise ConfigurationError(f"Invalid Firebase service account: {e}") from e
            app = firebase_admin.initialize_app(certificate, options, name=APP_NAME)
        return cls(app, timeout=config.request_timeout)

    async def update_user(self, internal_id: str, attributes: UserAttributes) -> None:
        await self._call(
            "update_user",
            auth.update_user,
            internal_id,
            email=attributes.email,
            email_verified=attributes.email_verified,
            display_name=attributes.display_name,
            disabled=attributes.disabled,
            app=self.app,
        )

    async def create_user(self, internal_id: str, attributes: UserAttributes) -> None:
        await self._call(
            "create_user",
            auth.create_user,
            uid=internal_id,
            email=attributes.email,
            email_verified=attributes.email_verified,
            display_name=attributes.display_name,
            disabled=attributes.disabled,
            app=self.app,
        )

    async def mint_credential(self, internal_id: str, claims: Optional[Dict[str, Any]] = None) -> str:
        token = await self._call(
            "create_custom_token",
            auth.create_custom_token,
            internal_id,
            developer_claims=claims or None,
            app=self.app,
        )
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token

    async def check_health(self) -> bool:
        """The named app is still registered and holds a credential."""
        try:
            app = firebase_admin.get_app(self.app.name)
        except ValueError:
            return False
        return app is self.app and app.credential is not None

    async def aclose(self) -> None:
        firebase_admin.delete_app(self.app)

    async def _call(self, operation: str, func: Callable, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            self.logger.warning("Firebase call timed out", operation=operation, timeout=self.timeout)
            raise BackendError("timed out", operation, timeout=True) from e
        except auth.UserNotFoundError as e:
            raise BackendUserNotFound(str(e), operation) from e
        except auth.UidAlreadyExistsError as e:
            raise BackendUserExists(str(e), operation) from e
        except (FirebaseError, ValueError) as e:
            self.logger.error("Firebase call failed", operation=operation, error=str(e))
            raise BackendError(str(e), operation) from e
