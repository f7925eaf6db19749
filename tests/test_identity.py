"""Tests for identity resolution and the Supabase Auth session lifecycle."""

import asyncio
import pytest

from finnko.models.entities import Identity
from finnko.services.identity import (
    SESSION_KEY,
    AuthenticationError,
    StaticIdentityResolver,
    SupabaseIdentityResolver,
)


@pytest.fixture
def resolver(client, remote, local) -> SupabaseIdentityResolver:
    return SupabaseIdentityResolver(client, remote, local)


class Recorder:
    """Async identity listener that remembers what it was told."""

    def __init__(self):
        self.seen = []

    async def __call__(self, identity):
        self.seen.append(identity.user_id if identity else None)


class TestStaticResolver:

    @pytest.mark.asyncio
    async def test_current_identity_waits_for_settle(self, alice):
        """Test that current_identity blocks until the session check is done."""
        resolver = StaticIdentityResolver(alice, settled=False)
        pending = asyncio.create_task(resolver.current_identity())
        await asyncio.sleep(0.01)
        assert not pending.done()
        resolver.settle()
        assert await pending == alice

    @pytest.mark.asyncio
    async def test_set_identity_notifies(self, alice, bob):
        resolver = StaticIdentityResolver(alice)
        recorder = Recorder()
        unsubscribe = resolver.subscribe(recorder)
        await resolver.set_identity(bob)
        unsubscribe()
        await resolver.set_identity(None)
        assert recorder.seen == ["user-bob"]
        assert await resolver.current_identity() is None

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self, bob):
        """Test that one broken listener is logged and the rest still run."""
        resolver = StaticIdentityResolver(None)
        recorder = Recorder()

        async def broken(_identity):
            raise RuntimeError("listener bug")

        resolver.subscribe(broken)
        resolver.subscribe(recorder)
        await resolver.set_identity(bob)
        assert recorder.seen == ["user-bob"]


class TestSignIn:

    @pytest.mark.asyncio
    async def test_success(self, backend, resolver, local, alice):
        """Test that sign-in stores the session, seeds defaults and notifies."""
        recorder = Recorder()
        resolver.subscribe(recorder)

        identity = await resolver.sign_in("alice@example.com", "s3cret")

        assert identity.user_id == "user-alice"
        assert identity.email == "alice@example.com"
        assert await resolver.current_identity() == identity
        assert local.get(SESSION_KEY)["access_token"] == identity.access_token
        assert ("create_default_categories", {"target_user_id": "user-alice"}) in backend.rpc_calls
        assert recorder.seen == ["user-alice"]

    @pytest.mark.asyncio
    async def test_wrong_password(self, resolver, local, alice):
        with pytest.raises(AuthenticationError):
            await resolver.sign_in("alice@example.com", "wrong")
        assert not resolver.is_settled
        assert local.get(SESSION_KEY) is None

    @pytest.mark.asyncio
    async def test_offline(self, backend, resolver, alice):
        backend.offline = True
        with pytest.raises(AuthenticationError):
            await resolver.sign_in("alice@example.com", "s3cret")

    @pytest.mark.asyncio
    async def test_seed_failure_is_not_fatal(self, backend, resolver, alice):
        """Test that a failing create_default_categories does not fail sign-in."""
        backend.fail("POST", "create_default_categories", status=500)
        identity = await resolver.sign_in("alice@example.com", "s3cret")
        assert identity.user_id == "user-alice"

    @pytest.mark.asyncio
    async def test_sign_up(self, resolver, local):
        identity = await resolver.sign_up("carol@example.com", "pw", {"nome": "Carol"})
        assert identity is not None
        assert await resolver.current_identity() == identity
        assert local.get(SESSION_KEY)["user_id"] == identity.user_id


class TestSignOut:

    @pytest.mark.asyncio
    async def test_clears_session(self, backend, resolver, local, alice):
        await resolver.sign_in("alice@example.com", "s3cret")
        recorder = Recorder()
        resolver.subscribe(recorder)

        await resolver.sign_out()

        assert await resolver.current_identity() is None
        assert local.get(SESSION_KEY) is None
        assert recorder.seen == [None]
        assert any(path == "/auth/v1/logout" for _m, path, _p, _b in backend.requests)

    @pytest.mark.asyncio
    async def test_remote_failure_still_signs_out(self, backend, resolver, local, alice):
        await resolver.sign_in("alice@example.com", "s3cret")
        backend.offline = True
        await resolver.sign_out()
        assert await resolver.current_identity() is None
        assert local.get(SESSION_KEY) is None


class TestRestore:
    """Tests for settling the resolver from a stored session."""

    @pytest.mark.asyncio
    async def test_no_session(self, resolver):
        assert await resolver.restore() is None
        assert resolver.is_settled
        assert await resolver.current_identity() is None

    @pytest.mark.asyncio
    async def test_valid_session(self, resolver, local, alice):
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        identity = await resolver.restore()
        assert identity.user_id == "user-alice"
        assert identity.access_token == "token-alice"
        assert await resolver.current_identity() == identity

    @pytest.mark.asyncio
    async def test_expired_token_refreshed(self, resolver, local, alice):
        """Test that an unknown access token is refreshed with the refresh token."""
        stale = alice.model_copy(update={"access_token": "expired"})
        local.set(SESSION_KEY, stale.model_dump(mode="json"))

        identity = await resolver.restore()

        assert identity is not None
        assert identity.user_id == "user-alice"
        assert identity.access_token != "expired"
        assert local.get(SESSION_KEY)["access_token"] == identity.access_token

    @pytest.mark.asyncio
    async def test_expired_without_refresh_discarded(self, resolver, local):
        stale = Identity(user_id="user-alice", access_token="expired")
        local.set(SESSION_KEY, stale.model_dump(mode="json"))
        assert await resolver.restore() is None
        assert local.get(SESSION_KEY) is None

    @pytest.mark.asyncio
    async def test_offline_keeps_session(self, backend, resolver, local, alice):
        """Test that an unreachable backend does not sign the user out."""
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        backend.offline = True
        identity = await resolver.restore()
        assert identity == alice
        assert local.get(SESSION_KEY) is not None

    @pytest.mark.asyncio
    async def test_invalid_stored_session(self, resolver, local):
        local.set(SESSION_KEY, {"user_id": ""})
        assert await resolver.restore() is None
        assert resolver.is_settled
