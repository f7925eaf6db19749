"""
Identity Resolution

Every repository call asks an injected IdentityResolver who the current user
is, right before choosing a storage backend. There is no process-wide session
global, so tests substitute a StaticIdentityResolver.

Lifecycle:
1. Resolver starts unsettled (session check pending)
2. restore()/settle() marks it settled; current_identity() waits for that
3. sign_in()/sign_out() change the identity and notify subscribers, which
   the application uses to reload its domain contexts
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import structlog

from finnko.models.entities import Identity
from finnko.services.storage.interface import (
    LocalStoreInterface,
    RemoteErrorKind,
    RemoteStoreError,
    RemoteStoreInterface,
)
from finnko.services.storage.remote_store import SupabaseClient


logger = structlog.get_logger(__name__)

IdentityListener = Callable[[Optional[Identity]], Awaitable[None]]

SESSION_KEY = "session"


class AuthenticationError(Exception):
    """Sign-in, sign-up or session refresh was rejected."""
    pass


class IdentityResolver(ABC):
    """
    Source of the current identity.

    None means anonymous: repositories use the local store.
    """

    def __init__(self):
        self._settled = asyncio.Event()
        self._listeners: list[IdentityListener] = []

    @property
    def is_settled(self) -> bool:
        return self._settled.is_set()

    async def wait_until_settled(self) -> None:
        await self._settled.wait()

    def _mark_settled(self) -> None:
        self._settled.set()

    @abstractmethod
    def _resolve(self) -> Optional[Identity]:
        """Return the identity as of right now."""
        pass

    async def current_identity(self) -> Optional[Identity]:
        """
        Wait for the session check to finish, then return the current identity.

        Never cache the result across calls; the session may change at any
        suspension point.
        """
        await self.wait_until_settled()
        return self._resolve()

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register an async listener for identity changes.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(identity)
            except Exception as e:
                logger.error(
                    "identity_listener_failed",
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(e),
                )


class StaticIdentityResolver(IdentityResolver):
    """
    Deterministic resolver for demo mode and tests.

    Args:
        identity: Initial identity (None = anonymous)
        settled: Start settled; pass False to simulate a pending session check
    """

    def __init__(self, identity: Optional[Identity] = None, settled: bool = True):
        super().__init__()
        self._identity = identity
        if settled:
            self._mark_settled()

    def _resolve(self) -> Optional[Identity]:
        return self._identity

    def settle(self) -> None:
        self._mark_settled()

    async def set_identity(self, identity: Optional[Identity]) -> None:
        """Switch identity and notify subscribers."""
        self._identity = identity
        self._mark_settled()
        await self._notify(identity)


class SupabaseIdentityResolver(IdentityResolver):
    """
    Supabase Auth (GoTrue) backed resolver.

    The session (tokens + user) is persisted in the local store under
    "session" so it survives restarts. After every sign-in the default
    categories are seeded remotely; seeding failures are only logged.
    """

    def __init__(
        self,
        client: SupabaseClient,
        remote: RemoteStoreInterface,
        local: LocalStoreInterface,
    ):
        super().__init__()
        self._client = client
        self._remote = remote
        self._local = local
        self._identity: Optional[Identity] = None

    def _resolve(self) -> Optional[Identity]:
        return self._identity

    # -------------------------------------------------------------------------
    # Session handling
    # -------------------------------------------------------------------------

    @staticmethod
    def _identity_from_payload(payload: Any) -> Optional[Identity]:
        if not isinstance(payload, dict):
            return None
        user = payload.get("user") or {}
        access_token = payload.get("access_token")
        if not access_token or not user.get("id"):
            return None
        return Identity(
            user_id=user["id"],
            email=user.get("email"),
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
        )

    def _store_session(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self._local.remove(SESSION_KEY)
        else:
            self._local.set(SESSION_KEY, identity.model_dump(mode="json"))

    async def _set_identity(self, identity: Optional[Identity]) -> None:
        changed = (identity.user_id if identity else None) != (
            self._identity.user_id if self._identity else None
        )
        self._identity = identity
        self._store_session(identity)
        self._mark_settled()
        if identity is not None and changed:
            await self.seed_defaults(identity)
        if changed:
            await self._notify(identity)

    async def restore(self) -> Optional[Identity]:
        """
        Settle the resolver from the stored session.

        An expired access token is refreshed once; an unusable session is
        discarded. When the backend is unreachable the stored session is kept.
        """
        stored = self._local.get(SESSION_KEY)
        identity: Optional[Identity] = None
        if isinstance(stored, dict):
            try:
                identity = Identity.model_validate(stored)
            except ValueError:
                logger.warning("stored_session_invalid")

        if identity is None:
            self._identity = None
            self._mark_settled()
            return None

        try:
            response = await self._client.request("GET", "/auth/v1/user", identity=identity)
            user = response.json()
            identity = identity.model_copy(update={
                "user_id": user.get("id", identity.user_id),
                "email": user.get("email", identity.email),
            })
        except RemoteStoreError as e:
            if e.kind is RemoteErrorKind.NETWORK:
                logger.warning("session_restore_offline", user_id=identity.user_id)
            elif identity.refresh_token:
                identity = await self._refresh(identity)
            else:
                identity = None

        self._identity = identity
        self._store_session(identity)
        self._mark_settled()
        if identity is not None:
            await self.seed_defaults(identity)
        return identity

    async def _refresh(self, identity: Identity) -> Optional[Identity]:
        try:
            response = await self._client.request(
                "POST",
                "/auth/v1/token",
                params=[("grant_type", "refresh_token")],
                json={"refresh_token": identity.refresh_token},
            )
        except RemoteStoreError as e:
            logger.info("session_refresh_failed", user_id=identity.user_id, error=str(e))
            return None
        return self._identity_from_payload(response.json())

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Password sign-in.

        Raises:
            AuthenticationError: credentials rejected or backend unreachable
        """
        try:
            response = await self._client.request(
                "POST",
                "/auth/v1/token",
                params=[("grant_type", "password")],
                json={"email": email, "password": password},
            )
        except RemoteStoreError as e:
            raise AuthenticationError(f"Sign-in failed: {e}") from e

        identity = self._identity_from_payload(response.json())
        if identity is None:
            raise AuthenticationError("Sign-in response did not contain a session")

        logger.info("signed_in", user_id=identity.user_id)
        await self._set_identity(identity)
        return identity

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[Identity]:
        """
        Register a new user.

        Returns:
            The new identity when the backend signs the user in immediately,
            None when e-mail confirmation is pending
        """
        try:
            response = await self._client.request(
                "POST",
                "/auth/v1/signup",
                json={"email": email, "password": password, "data": metadata or {}},
            )
        except RemoteStoreError as e:
            raise AuthenticationError(f"Sign-up failed: {e}") from e

        identity = self._identity_from_payload(response.json())
        if identity is not None:
            await self._set_identity(identity)
        return identity

    async def sign_out(self) -> None:
        """End the session. Local session state is cleared even if the call fails."""
        identity = self._identity
        if identity is not None:
            try:
                await self._client.request("POST", "/auth/v1/logout", identity=identity)
            except RemoteStoreError as e:
                logger.warning("sign_out_remote_failed", error=str(e))
        await self._set_identity(None)

    async def seed_defaults(self, identity: Identity) -> None:
        """Create the default categories for identity (idempotent on the backend)."""
        try:
            await self._remote.rpc(
                "create_default_categories",
                {"target_user_id": identity.user_id},
                identity=identity,
            )
        except RemoteStoreError as e:
            logger.info("seed_default_categories_skipped", user_id=identity.user_id, error=str(e))
