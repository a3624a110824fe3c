"""
Unit tests for identity resolution and the merge rule.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from service_exchange.app.errors import IdentityFetchFailed, IncompleteIdentity
from service_exchange.app.identity.resolver import IdentityResolver, merge_identity, primary_login_identity
from service_exchange.app.provider.client import (
    IdentityProviderClient,
    ProviderHTTPError,
    ProviderTransportError,
)

LOGIN_DETAIL = {"identities": [{"type": "login_id", "claims": {"email": "b@x.com"}}]}


class TestMergeIdentity:
    """Test cases for merge_identity."""

    def test_profile_email_wins(self):
        identity = merge_identity("u1", {"email": "a@x.com"}, LOGIN_DETAIL)
        assert identity.email == "a@x.com"

    def test_login_identity_fills_missing_email(self):
        identity = merge_identity("u1", {"email": None}, LOGIN_DETAIL)
        assert identity.email == "b@x.com"

    def test_first_login_id_entry_is_primary(self):
        detail = {
            "identities": [
                {"type": "oauth", "claims": {"email": "social@x.com"}},
                {"type": "login_id", "claims": {"email": "first@x.com"}},
                {"type": "login_id", "claims": {"email": "second@x.com"}},
            ]
        }
        assert primary_login_identity(detail)["claims"]["email"] == "first@x.com"
        assert merge_identity("u1", {}, detail).email == "first@x.com"

    def test_phone_from_login_identity(self):
        detail = {"identities": [{"type": "login_id", "claims": {"phone_number": "+15555550100"}}]}
        identity = merge_identity("u1", {}, detail)
        assert identity.phone_number == "+15555550100"
        assert identity.email is None
        assert identity.has_contact

    def test_display_name_fallback(self):
        assert merge_identity("u1", {"name": "Jo"}, {"name": "Joanna"}).display_name == "Jo"
        assert merge_identity("u1", {}, {"name": "Joanna"}).display_name == "Joanna"

    def test_malformed_detail_is_ignored(self):
        identity = merge_identity("u1", {"email": "a@x.com"}, {"identities": "nope"})
        assert identity.email == "a@x.com"
        assert primary_login_identity({"identities": [None, {"type": "login_id", "claims": None}]}) == {
            "type": "login_id", "claims": None
        }

    def test_blank_values_are_absent(self):
        identity = merge_identity("u1", {"email": "  "}, LOGIN_DETAIL)
        assert identity.email == "b@x.com"


class TestIdentityResolver:
    """Test cases for IdentityResolver."""

    @pytest.fixture
    def provider(self):
        client = MagicMock(spec=IdentityProviderClient)
        client.get_userinfo = AsyncMock(return_value={"sub": "u1", "email": "u1@test.com", "name": "Jo"})
        client.get_user_detail = AsyncMock(return_value={"identities": []})
        return client

    @pytest.fixture
    def resolver(self, provider):
        return IdentityResolver(provider)

    @pytest.mark.asyncio
    async def test_resolve(self, resolver, provider):
        """Test successful resolution."""
        identity = await resolver.resolve("u1", "tok123")

        assert identity.subject == "u1"
        assert identity.email == "u1@test.com"
        assert identity.display_name == "Jo"
        provider.get_userinfo.assert_awaited_once_with("tok123")
        provider.get_user_detail.assert_awaited_once_with("u1", "tok123")

    @pytest.mark.asyncio
    async def test_lookups_run_concurrently(self, resolver, provider):
        """Test the profile lookup can wait on the detail lookup without deadlock."""
        detail_started = asyncio.Event()

        async def userinfo(token):
            await asyncio.wait_for(detail_started.wait(), timeout=1.0)
            return {"sub": "u1", "email": "u1@test.com"}

        async def detail(subject, token):
            detail_started.set()
            return {"identities": []}

        provider.get_userinfo.side_effect = userinfo
        provider.get_user_detail.side_effect = detail

        identity = await resolver.resolve("u1", "tok123")
        assert identity.email == "u1@test.com"

    @pytest.mark.asyncio
    async def test_profile_failure(self, resolver, provider):
        """Test a failed profile lookup fails the whole resolution."""
        provider.get_userinfo.side_effect = ProviderHTTPError(500, "userinfo")

        with pytest.raises(IdentityFetchFailed) as exc_info:
            await resolver.resolve("u1", "tok123")

        assert exc_info.value.details["lookup"] == "profile"
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_detail_failure(self, resolver, provider):
        """Test a failed detail lookup fails even when the profile is complete."""
        provider.get_user_detail.side_effect = ProviderTransportError("timed out", "user_detail", timeout=True)

        with pytest.raises(IdentityFetchFailed) as exc_info:
            await resolver.resolve("u1", "tok123")

        assert exc_info.value.details["lookup"] == "detail"

    @pytest.mark.asyncio
    async def test_first_failure_returns_without_waiting(self, resolver, provider):
        """Test a fast profile failure is not held up by a slow detail lookup."""
        detail_cancelled = asyncio.Event()

        async def slow_detail(subject, token):
            try:
                await asyncio.sleep(2.0)
            except asyncio.CancelledError:
                detail_cancelled.set()
                raise
            return {"identities": []}

        provider.get_userinfo.side_effect = ProviderTransportError("refused", "userinfo")
        provider.get_user_detail.side_effect = slow_detail

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(IdentityFetchFailed) as exc_info:
            await resolver.resolve("u1", "tok123")
        elapsed = loop.time() - started

        assert exc_info.value.details["lookup"] == "profile"
        assert elapsed < 0.5
        await asyncio.wait_for(detail_cancelled.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_incomplete_identity(self, resolver, provider):
        """Test neither email nor phone anywhere."""
        provider.get_userinfo.return_value = {"sub": "u1", "name": "Jo"}
        provider.get_user_detail.return_value = {"identities": [{"type": "oauth", "claims": {"email": "x@y.z"}}]}

        with pytest.raises(IncompleteIdentity) as exc_info:
            await resolver.resolve("u1", "tok123")

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "INCOMPLETE_IDENTITY"

    @pytest.mark.asyncio
    async def test_profile_subject_mismatch(self, resolver, provider):
        """Test a profile for a different subject is rejected."""
        provider.get_userinfo.return_value = {"sub": "someone-else", "email": "other@test.com"}

        with pytest.raises(IdentityFetchFailed):
            await resolver.resolve("u1", "tok123")

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, resolver, provider):
        """Test non-provider errors are not disguised as fetch failures."""
        provider.get_user_detail.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await resolver.resolve("u1", "tok123")
