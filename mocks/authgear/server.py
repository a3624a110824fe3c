"""
Mock Authgear server providing introspection, userinfo and user-detail endpoints.
"""

import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Form, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared.logging import get_logger


class MockAuthgearServer:
    """Mock Authgear server implementation.

    Tokens are opaque random strings mapped to a subject; ``issue_token`` and
    ``revoke_token`` let tests drive the token lifecycle directly. When
    ``admin_token`` is set it may read any user's detail record.
    """

    def __init__(self, port: int = 3100, client_id: str = "bridge-client", admin_token: Optional[str] = None):
        self.port = port
        self.client_id = client_id
        self.admin_token = admin_token
        self.issuer = f"http://localhost:{port}"
        self.logger = get_logger("mock.authgear")
        self.app = FastAPI(title="Mock Authgear", version="1.0.0")

        self.users: Dict[str, Dict[str, Any]] = {
            "u1": {
                "profile": {"sub": "u1", "email": "u1@test.com", "name": "Jo"},
                "detail": {"identities": [], "name": "Jo"},
            },
            "u2": {
                "profile": {"sub": "u2", "email": None, "name": None},
                "detail": {
                    "identities": [
                        {"type": "oauth", "claims": {"email": "u2@social.example"}},
                        {"type": "login_id", "claims": {"email": "u2@login.example"}},
                    ],
                    "name": "Second User",
                },
            },
            "phone-only": {
                "profile": {"sub": "phone-only"},
                "detail": {
                    "identities": [{"type": "login_id", "claims": {"phone_number": "+15555550100"}}],
                },
            },
            "no-contact": {
                "profile": {"sub": "no-contact", "name": "Nobody"},
                "detail": {"identities": []},
            },
        }

        self.tokens: Dict[str, str] = {"tok123": "u1"}
        self._setup_routes()

    def issue_token(self, subject: str) -> str:
        if subject not in self.users:
            raise KeyError(subject)
        token = secrets.token_urlsafe(24)
        self.tokens[token] = subject
        return token

    def revoke_token(self, token: str):
        self.tokens.pop(token, None)

    def _subject_for(self, token: str) -> Optional[str]:
        return self.tokens.get(token)

    def _setup_routes(self):
        """Set up mock Authgear routes."""

        @self.app.get("/.well-known/openid-configuration")
        async def openid_configuration():
            """OpenID Connect configuration."""
            return {
                "issuer": self.issuer,
                "introspection_endpoint": f"{self.issuer}/oauth2/introspect",
                "userinfo_endpoint": f"{self.issuer}/oauth2/userinfo",
                "token_endpoint": f"{self.issuer}/oauth2/token",
                "scopes_supported": ["openid", "offline_access"],
            }

        @self.app.post("/oauth2/introspect")
        async def introspect(client_id: str = Form(...), token: str = Form(...)):
            """RFC 7662 style introspection."""
            if client_id != self.client_id:
                raise HTTPException(status_code=401, detail="Invalid client")

            subject = self._subject_for(token)
            if subject is None:
                return {"active": False}
            return {"active": True, "sub": subject, "client_id": client_id}

        @self.app.get("/oauth2/userinfo")
        async def userinfo(credentials: HTTPAuthorizationCredentials = Depends(HTTPBearer())):
            """Profile of the token's owner."""
            subject = self._subject_for(credentials.credentials)
            if subject is None:
                raise HTTPException(status_code=401, detail="Invalid token")
            return self.users[subject]["profile"]

        @self.app.get("/api/users/{subject}")
        async def user_detail(subject: str, credentials: HTTPAuthorizationCredentials = Depends(HTTPBearer())):
            """User record with its identities."""
            bearer = credentials.credentials
            is_admin = self.admin_token is not None and bearer == self.admin_token
            if not is_admin and self._subject_for(bearer) != subject:
                raise HTTPException(status_code=403, detail="Forbidden")
            if subject not in self.users:
                raise HTTPException(status_code=404, detail="User not found")
            return self.users[subject]["detail"]


def create_app():
    """Create mock Authgear application."""
    server = MockAuthgearServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=3100)
