"""
Identity resolution: profile and user-detail lookups merged into one identity.
"""

import asyncio
from typing import Any, Dict, Optional

from shared.logging import get_logger
from ..errors import IdentityFetchFailed, IncompleteIdentity
from ..models import ExternalIdentity
from ..provider.client import IdentityProviderClient, ProviderRequestError

LOGIN_ID_IDENTITY = "login_id"


def primary_login_identity(detail: Dict[str, Any]) -> Dict[str, Any]:
    """First identity of type ``login_id`` in a user-detail record, or ``{}``."""
    identities = detail.get("identities") or []
    if not isinstance(identities, list):
        return {}
    for identity in identities:
        if isinstance(identity, dict) and identity.get("type") == LOGIN_ID_IDENTITY:
            return identity
    return {}


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def merge_identity(subject: str, profile: Dict[str, Any], detail: Dict[str, Any]) -> ExternalIdentity:
    """Combine both provider answers. Profile values win; the primary
    login identity fills in what the profile omits."""
    login_claims = primary_login_identity(detail).get("claims") or {}
    if not isinstance(login_claims, dict):
        login_claims = {}

    return ExternalIdentity(
        subject=subject,
        email=_text(profile.get("email")) or _text(login_claims.get("email")),
        phone_number=_text(profile.get("phone_number")) or _text(login_claims.get("phone_number")),
        display_name=_text(profile.get("name")) or _text(detail.get("name")),
    )


class IdentityResolver:
    """Resolves the canonical external identity for a verified subject."""

    def __init__(self, provider: IdentityProviderClient):
        self.provider = provider
        self.logger = get_logger("exchange.resolver")

    async def resolve(self, subject: str, token: str) -> ExternalIdentity:
        profile_task = asyncio.ensure_future(self.provider.get_userinfo(token))
        detail_task = asyncio.ensure_future(self.provider.get_user_detail(subject, token))
        lookups = {profile_task: "profile", detail_task: "detail"}

        try:
            done, _ = await asyncio.wait(lookups, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # The first failure decides; the sibling's answer is not needed
            for task in lookups:
                if not task.done():
                    task.cancel()

        failures = [
            (lookups[task], task.exception())
            for task in lookups
            if task in done and task.exception() is not None
        ]
        for lookup, error in failures:
            if isinstance(error, ProviderRequestError):
                self.logger.warning("Identity lookup failed", lookup=lookup, error=str(error))
                raise IdentityFetchFailed(
                    details={"lookup": lookup, "error": str(error)}
                ) from error
        if failures:
            raise failures[0][1]

        profile_result, detail_result = profile_task.result(), detail_task.result()

        profile_subject = profile_result.get("sub")
        if profile_subject is not None and profile_subject != subject:
            self.logger.error(
                "Profile subject does not match introspected subject",
                profile_subject=profile_subject
            )
            raise IdentityFetchFailed(
                "Profile belongs to a different subject",
                details={"lookup": "profile"}
            )

        identity = merge_identity(subject, profile_result, detail_result)
        if not identity.has_contact:
            raise IncompleteIdentity(details={"subject": subject})

        return identity
