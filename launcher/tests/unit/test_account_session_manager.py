"""
End-to-end tests of the account facade over a real SQLite file.
"""
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from launcher.core.accounts.identity import offline_uuid
from launcher.core.accounts.refresh import SessionState
from launcher.core.errors import FetchError, NotFound
from launcher.core.session import AccountSessionManager


@pytest_asyncio.fixture
async def accounts(settings, remote_api, clock):
    manager = await AccountSessionManager.open(settings, transport=remote_api.transport())
    # Frozen time everywhere the facade consults the clock
    manager.clock = clock
    manager.identities.clock = clock
    manager.refresher.clock = clock
    async with manager:
        yield manager


class TestOpen:

    @pytest.mark.asyncio
    async def test_creates_database_in_settings_dir(self, settings, tmp_path):
        settings = settings.model_copy(update={'database_url': None})

        async with await AccountSessionManager.open(settings) as accounts:
            assert await accounts.all_users() == []

        assert (tmp_path / "app.db").exists()

    @pytest.mark.asyncio
    async def test_state_survives_reopen(self, settings):
        async with await AccountSessionManager.open(settings) as accounts:
            await accounts.offline_login("Steve")

        async with await AccountSessionManager.open(settings) as accounts:
            assert await accounts.get_default_offline_user() == str(offline_uuid("Steve"))

    @pytest.mark.asyncio
    async def test_refresher_follows_settings(self, settings):
        settings = settings.model_copy(update={
            'session_refresh_attempts': 3,
            'session_guard_window_seconds': 600,
        })

        async with await AccountSessionManager.open(settings) as accounts:
            assert accounts.refresher.max_attempts == 3
            assert accounts.refresher.guard_window == timedelta(minutes=10)
            assert accounts.refresher.refresh_url == "https://api.example.test/session/refresh"
            assert accounts.refresher.clock is accounts.clock

    @pytest.mark.asyncio
    async def test_encrypted_tokens_round_trip(self, settings, remote_api):
        from launcher.core.database.encryption import generate_encryption_key
        settings = settings.model_copy(update={'db_encryption_key': generate_encryption_key()})
        remote_api.user_responses["code"] = {"id": "u1"}

        async with await AccountSessionManager.open(settings, transport=remote_api.transport()) as accounts:
            await accounts.finish_login("code")
            assert (await accounts.get_credentials()).session == "code"


class TestOfflineAccounts:

    @pytest.mark.asyncio
    async def test_offline_login_persists_and_activates(self, accounts):
        creds = await accounts.offline_login("Steve")

        assert await accounts.get_default_offline_user() == creds.id
        users = await accounts.offline_users()
        assert [u.profile.name for u in users] == ["Steve"]

    @pytest.mark.asyncio
    async def test_logging_in_twice_keeps_one_record(self, accounts):
        await accounts.offline_login("Steve")
        await accounts.offline_login("Steve")

        assert len(await accounts.offline_users()) == 1

    @pytest.mark.asyncio
    async def test_latest_login_is_active(self, accounts):
        await accounts.offline_login("Steve")
        alex = await accounts.offline_login("Alex")

        assert await accounts.get_default_offline_user() == alex.id

    @pytest.mark.asyncio
    async def test_switch_accepts_uuid(self, accounts):
        steve = await accounts.offline_login("Steve")
        await accounts.offline_login("Alex")

        await accounts.set_default_offline_user(steve.profile.id)

        assert await accounts.get_default_offline_user() == steve.id

    @pytest.mark.asyncio
    async def test_switch_to_unknown_raises(self, accounts):
        with pytest.raises(NotFound):
            await accounts.set_default_offline_user(offline_uuid("Nobody"))

    @pytest.mark.asyncio
    async def test_remove_active_promotes_other(self, accounts):
        steve = await accounts.offline_login("Steve")
        alex = await accounts.offline_login("Alex")

        await accounts.remove_offline_user(alex.profile.id)

        assert await accounts.get_default_offline_user() == steve.id

    @pytest.mark.asyncio
    async def test_remove_last_leaves_no_default(self, accounts):
        steve = await accounts.offline_login("Steve")

        await accounts.remove_offline_user(steve.id)

        assert await accounts.get_default_offline_user() is None


class TestRemoteAccounts:

    @pytest.mark.asyncio
    async def test_login_url(self, accounts):
        assert accounts.get_login_url() == "https://site.example.test/auth/sign-in"

    @pytest.mark.asyncio
    async def test_finish_login_stores_active_session(self, accounts, remote_api, clock):
        remote_api.user_responses["code-a"] = {"id": "alice"}

        creds = await accounts.finish_login("code-a")

        assert creds.expires == clock() + timedelta(weeks=2)
        assert await accounts.get_default_user() == "alice"
        assert (await accounts.get_credentials()).session == "code-a"

    @pytest.mark.asyncio
    async def test_failed_login_stores_nothing(self, accounts):
        with pytest.raises(FetchError):
            await accounts.finish_login("bad")

        assert await accounts.users() == []

    @pytest.mark.asyncio
    async def test_session_renewed_near_expiry(self, accounts, remote_api, clock):
        remote_api.user_responses["code-a"] = {"id": "alice"}
        remote_api.refresh_responses["code-a"] = {"session": "renewed-a"}
        await accounts.finish_login("code-a")

        clock.advance(timedelta(weeks=2) - timedelta(minutes=30))
        creds = await accounts.get_credentials()

        assert creds.session == "renewed-a"
        assert creds.expires == clock() + timedelta(weeks=2)
        assert accounts.session_state(creds) is SessionState.VALID

    @pytest.mark.asyncio
    async def test_revoked_session_logs_out(self, accounts, remote_api, clock):
        remote_api.user_responses["code-a"] = {"id": "alice"}
        await accounts.finish_login("code-a")

        clock.advance(timedelta(weeks=3))

        assert await accounts.get_credentials() is None
        assert await accounts.users() == []
        assert await accounts.get_default_user() is None

    @pytest.mark.asyncio
    async def test_refresh_all(self, accounts, remote_api):
        remote_api.user_responses["code-a"] = {"id": "alice"}
        remote_api.user_responses["code-b"] = {"id": "bob"}
        remote_api.refresh_responses["code-a"] = {"session": "renewed-a"}
        remote_api.refresh_responses["code-b"] = httpx.ConnectError("refused")
        await accounts.finish_login("code-a")
        await accounts.finish_login("code-b")
        await accounts.set_default_user("alice")

        results = await accounts.refresh_all()

        assert results == {"alice": SessionState.REFRESHED, "bob": SessionState.DISCARDED}
        assert [u.user_id for u in await accounts.users()] == ["alice"]
        assert await accounts.get_default_user() == "alice"
        assert (await accounts.get_credentials()).session == "renewed-a"

    @pytest.mark.asyncio
    async def test_switch_and_remove(self, accounts, remote_api):
        remote_api.user_responses["code-a"] = {"id": "alice"}
        remote_api.user_responses["code-b"] = {"id": "bob"}
        await accounts.finish_login("code-a")
        await accounts.finish_login("code-b")

        await accounts.set_default_user("alice")
        assert await accounts.get_default_user() == "alice"

        await accounts.remove_user("alice")
        assert await accounts.get_default_user() == "bob"

        await accounts.remove_user("alice")
        assert await accounts.get_default_user() == "bob"


class TestAllUsers:

    @pytest.mark.asyncio
    async def test_merges_namespaces_remote_first(self, accounts, remote_api):
        remote_api.user_responses["code-a"] = {"id": "alice"}
        await accounts.offline_login("Steve")
        await accounts.finish_login("code-a")

        users = await accounts.all_users()

        assert [u.id for u in users] == ["alice", str(offline_uuid("Steve"))]

    @pytest.mark.asyncio
    async def test_each_namespace_keeps_its_own_active(self, accounts, remote_api):
        remote_api.user_responses["code-a"] = {"id": "alice"}
        steve = await accounts.offline_login("Steve")
        await accounts.finish_login("code-a")

        assert await accounts.get_default_offline_user() == steve.id
        assert await accounts.get_default_user() == "alice"
