"""
Tests for the session lifecycle: login, logout, refresh rotation, password change.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from core.errors import (
    InvalidCredentials,
    InvalidToken,
    NotFound,
    TokenReuseOrExpiry,
    Unauthorized,
    UpstreamFailure,
)
from services.session_service import SessionManager


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_by_username_or_email(self, session_manager, account_factory):
        account = await account_factory(username="alice", email="a@x.com", password="p1")

        by_name = await session_manager.login("alice", "p1")
        by_email = await session_manager.login("A@X.com", "p1")

        assert by_name.user.id == account.id
        assert by_email.user.id == account.id
        assert by_name.access_token != by_name.refresh_token

    @pytest.mark.asyncio
    async def test_login_persists_refresh_token(self, session_manager, sql_store, account_factory):
        account = await account_factory(username="alice", password="p1")
        result = await session_manager.login("alice", "p1")
        stored = await sql_store.find_by_id(account.id)
        assert stored.refresh_token == result.refresh_token

    @pytest.mark.asyncio
    async def test_projection_hides_secrets(self, session_manager, account_factory):
        await account_factory(username="alice", password="p1")
        result = await session_manager.login("alice", "p1")
        dumped = result.model_dump(by_alias=True)
        assert "password_hash" not in dumped["user"]
        assert "refresh_token" not in dumped["user"]
        assert dumped["user"]["username"] == "alice"

    @pytest.mark.asyncio
    async def test_unknown_identifier(self, session_manager):
        with pytest.raises(NotFound):
            await session_manager.login("ghost", "p1")

    @pytest.mark.asyncio
    async def test_wrong_password_does_not_touch_store(self, session_manager, sql_store, account_factory):
        account = await account_factory(username="alice", password="p1")
        first = await session_manager.login("alice", "p1")

        with pytest.raises(InvalidCredentials):
            await session_manager.login("alice", "wrong")

        stored = await sql_store.find_by_id(account.id)
        assert stored.refresh_token == first.refresh_token

    @pytest.mark.asyncio
    async def test_new_login_invalidates_previous_refresh_token(self, session_manager, account_factory):
        await account_factory(username="alice", password="p1")
        first = await session_manager.login("alice", "p1")
        await session_manager.login("alice", "p1")

        with pytest.raises(TokenReuseOrExpiry):
            await session_manager.refresh(first.refresh_token)

    @pytest.mark.asyncio
    async def test_store_failure_becomes_internal_error(self, token_service):
        store = AsyncMock()
        store.find_by_username_or_email.side_effect = RuntimeError("connection reset")
        manager = SessionManager(store, token_service)
        with pytest.raises(UpstreamFailure) as exc_info:
            await manager.login("alice", "p1")
        assert exc_info.value.status_code == 500


class TestRefresh:
    @pytest.mark.asyncio
    async def test_rotation_issues_new_tokens(self, session_manager, sql_store, account_factory):
        account = await account_factory(username="alice", password="p1")
        login = await session_manager.login("alice", "p1")

        rotated = await session_manager.refresh(login.refresh_token)

        assert rotated.refresh_token != login.refresh_token
        assert rotated.access_token != login.access_token
        stored = await sql_store.find_by_id(account.id)
        assert stored.refresh_token == rotated.refresh_token

    @pytest.mark.asyncio
    async def test_rotated_token_cannot_be_reused(self, session_manager, account_factory):
        await account_factory(username="alice", password="p1")
        login = await session_manager.login("alice", "p1")
        rotated = await session_manager.refresh(login.refresh_token)

        with pytest.raises(TokenReuseOrExpiry):
            await session_manager.refresh(login.refresh_token)
        # the latest token is still good
        assert (await session_manager.refresh(rotated.refresh_token)).refresh_token

    @pytest.mark.asyncio
    async def test_missing_token(self, session_manager):
        with pytest.raises(Unauthorized):
            await session_manager.refresh(None)
        with pytest.raises(Unauthorized):
            await session_manager.refresh("")

    @pytest.mark.asyncio
    async def test_invalid_signature(self, session_manager, token_service):
        with pytest.raises(InvalidToken):
            await session_manager.refresh(token_service.issue_access_token("abc"))

    @pytest.mark.asyncio
    async def test_validly_signed_but_unknown_account(self, session_manager, token_service):
        with pytest.raises(NotFound):
            await session_manager.refresh(token_service.issue_refresh_token("0" * 32))

    @pytest.mark.asyncio
    async def test_validly_signed_but_not_stored(self, session_manager, token_service, account_factory):
        account = await account_factory(username="alice", password="p1")
        await session_manager.login("alice", "p1")
        forged_twin = token_service.issue_refresh_token(account.id)
        with pytest.raises(TokenReuseOrExpiry):
            await session_manager.refresh(forged_twin)

    @pytest.mark.asyncio
    async def test_concurrent_refresh_has_single_winner(self, session_manager, account_factory):
        await account_factory(username="alice", password="p1")
        login = await session_manager.login("alice", "p1")

        results = await asyncio.gather(
            session_manager.refresh(login.refresh_token),
            session_manager.refresh(login.refresh_token),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], TokenReuseOrExpiry)


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_token(self, session_manager, sql_store, account_factory):
        account = await account_factory(username="alice", password="p1")
        login = await session_manager.login("alice", "p1")

        await session_manager.logout(account.id)

        assert (await sql_store.find_by_id(account.id)).refresh_token is None
        with pytest.raises(TokenReuseOrExpiry):
            await session_manager.refresh(login.refresh_token)

    @pytest.mark.asyncio
    async def test_logout_when_already_anonymous(self, session_manager, sql_store, account_factory):
        account = await account_factory()
        await session_manager.logout(account.id)
        assert (await sql_store.find_by_id(account.id)).refresh_token is None


class TestChangePassword:
    @pytest.mark.asyncio
    async def test_change_password(self, session_manager, account_factory):
        account = await account_factory(username="alice", password="p1")
        login = await session_manager.login("alice", "p1")

        await session_manager.change_password(account.id, "p1", "p2")

        with pytest.raises(InvalidCredentials):
            await session_manager.login("alice", "p1")
        assert (await session_manager.login("alice", "p2")).refresh_token
        # the session that existed before the change is revoked
        with pytest.raises(TokenReuseOrExpiry):
            await session_manager.refresh(login.refresh_token)

    @pytest.mark.asyncio
    async def test_wrong_old_password(self, session_manager, sql_store, account_factory):
        account = await account_factory(username="alice", password="p1")
        before = await sql_store.find_by_id(account.id)

        with pytest.raises(InvalidCredentials):
            await session_manager.change_password(account.id, "nope", "p2")

        after = await sql_store.find_by_id(account.id)
        assert after.password_hash == before.password_hash
