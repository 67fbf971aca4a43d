"""Session manager keeping auth token, user profile and presence in sync.

This module owns the client-side session lifecycle: restoring a persisted
token at startup, validating it against the backend, login / logout /
profile updates, and the realtime presence channel that reports which users
are online.
"""

import logging
from collections.abc import Callable
from typing import Any

from chatpresence.backend import AuthBackend, BackendError, message_for
from chatpresence.channels.base import PresenceChannel
from chatpresence.channels.factory import create_channel
from chatpresence.core.config import Config
from chatpresence.core.logging import mask_token
from chatpresence.core.notify import NotifyCallback, log_notification
from chatpresence.model.notification import NotificationKind
from chatpresence.model.session import AuthState, PresenceState, SessionSnapshot
from chatpresence.model.user import AuthenticatedUser
from chatpresence.stores.token import TOKEN_KEY, TokenStore

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[Config, str], PresenceChannel]
SessionListener = Callable[[SessionSnapshot], None]

LOGOUT_MESSAGE = "Logged out successfully"
PROFILE_UPDATED_MESSAGE = "Profile updated successfully"


class SessionManager:
    """Owns the token, the authenticated user, the online roster and the presence channel.

    All state is mutated only by this class. Every backend call captures the
    session generation before awaiting; when ``logout()`` runs while a call
    is in flight, the late response is dropped instead of resurrecting the
    cleared session.

    Invariants:
    - ``user`` is set only while ``token`` is set.
    - A presence channel is open only while ``user`` is set.
    - At most one presence channel is live; the previous one is closed first.

    Example:
        >>> manager = SessionManager(config, FileTokenStore(config.storage.path))
        >>> await manager.initialize()
        >>> await manager.login("login", {"email": "a@b.c", "password": "secret"})
        >>> manager.online_users
        ['64f1c...', '64f1d...']
        >>> await manager.logout()
    """

    def __init__(
        self,
        config: Config,
        store: TokenStore,
        notify: NotifyCallback | None = None,
        backend: AuthBackend | None = None,
        channel_factory: ChannelFactory | None = None,
    ):
        """Initialize the session manager.

        Args:
            config: Root configuration.
            store: Durable storage for the session token.
            notify: Callback receiving user-facing notifications (defaults to logging).
            backend: Auth backend client (built from config if None).
            channel_factory: Builds presence channels (Socket.IO if None).
        """
        self.config = config
        self.store = store
        self._notify = notify or log_notification
        self._backend = backend or AuthBackend(config)
        self._channel_factory = channel_factory or create_channel

        self._token: str | None = None
        self._user: AuthenticatedUser | None = None
        self._online_users: list[str] = []
        self._channel: PresenceChannel | None = None
        self._auth_state = AuthState.UNAUTHENTICATED

        self._generation = 0
        self._initialized = False
        self._listeners: list[SessionListener] = []

    # =========================================================================
    # State accessors
    # =========================================================================

    @property
    def token(self) -> str | None:
        """Current session token."""
        return self._token

    @property
    def user(self) -> AuthenticatedUser | None:
        """Authenticated user profile."""
        return self._user

    @property
    def online_users(self) -> list[str]:
        """User ids currently reported online (a copy)."""
        return list(self._online_users)

    @property
    def channel(self) -> PresenceChannel | None:
        """Current presence channel handle, for inspection."""
        return self._channel

    @property
    def backend(self) -> AuthBackend:
        """Backend client carrying this session's credential."""
        return self._backend

    @property
    def auth_state(self) -> AuthState:
        """Where the session is in its login lifecycle."""
        return self._auth_state

    @property
    def presence_state(self) -> PresenceState:
        """State of the current presence channel, DISCONNECTED when there is none."""
        if self._channel is None:
            return PresenceState.DISCONNECTED
        return self._channel.state

    def snapshot(self) -> SessionSnapshot:
        """Return an immutable view of the current session."""
        return SessionSnapshot(
            token=self._token,
            user=self._user,
            online_users=tuple(self._online_users),
            auth_state=self._auth_state,
            presence_state=self.presence_state,
        )

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every state change.

        Args:
            listener: Callable receiving a SessionSnapshot.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        """Notify listeners of a state change."""
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    def _persist_token(self, token: str | None) -> None:
        """Write or remove the persisted token. Storage errors are logged."""
        try:
            if token:
                self.store.set(TOKEN_KEY, token)
            else:
                self.store.remove(TOKEN_KEY)
        except (OSError, ValueError) as e:
            logger.error(f"Could not update persisted session token: {e}")

    def _emit(self, kind: NotificationKind, text: str) -> None:
        try:
            self._notify(kind, text)
        except Exception as e:
            logger.error(f"Notify callback failed: {e}", exc_info=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Restore the persisted session. Call once at application startup."""
        if self._initialized:
            logger.warning("SessionManager.initialize() called more than once; ignoring")
            return
        self._initialized = True

        try:
            token = self.store.get(TOKEN_KEY)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read persisted session token: {e}")
            token = None
        if not token:
            logger.info("No persisted session token; starting unauthenticated")
            return

        logger.info(f"Restoring persisted session token {mask_token(token)}")
        self._token = token
        self._backend.set_token(token)
        await self.validate()

    async def validate(self) -> bool:
        """Check the current token against the backend.

        On success the user profile is loaded and presence connected. On any
        failure the error is shown and the session is logged out.

        Returns:
            True if the token was confirmed.
        """
        if not self._token:
            logger.debug("validate() called without a token")
            return False

        generation = self._generation
        self._auth_state = AuthState.VALIDATING
        self._changed()

        error_text: str | None = None
        user: AuthenticatedUser | None = None
        try:
            response = await self._backend.check()
            if response.success:
                user = AuthenticatedUser.from_dict(response.get("user"))
            else:
                error_text = response.message or "Session is no longer valid"
        except BackendError as e:
            error_text = message_for(e)
        except ValueError as e:
            error_text = str(e)

        if generation != self._generation:
            logger.debug("Discarding stale token validation result")
            return False

        if user is None:
            logger.warning(f"Token validation failed: {error_text}")
            self._emit(NotificationKind.ERROR, error_text or "Session is no longer valid")
            await self.logout()
            return False

        self._user = user
        self._auth_state = AuthState.AUTHENTICATED
        logger.info(f"Session validated for user {user.id}")
        self._changed()
        await self._connect_presence(user)
        return True

    async def login(self, mode: str, credentials: dict[str, Any]) -> bool:
        """Sign in or register.

        Args:
            mode: ``"login"`` or ``"signup"``; selects the backend endpoint.
            credentials: Request body for the endpoint.

        Returns:
            True if the session is now authenticated.
        """
        generation = self._generation

        try:
            response = await self._backend.authenticate(mode, credentials)
        except BackendError as e:
            logger.warning(f"{mode} request failed: {e}")
            self._emit(NotificationKind.ERROR, message_for(e))
            return False
        except ValueError as e:
            self._emit(NotificationKind.ERROR, str(e))
            return False

        if not response.success:
            logger.info(f"{mode} rejected: {response.message}")
            self._emit(NotificationKind.ERROR, response.message or f"{mode.capitalize()} failed")
            return False

        token = response.get("token")
        try:
            user = AuthenticatedUser.from_dict(response.get("userData"))
        except ValueError as e:
            user = None
            logger.error(f"{mode} response carried an invalid user: {e}")
        if not isinstance(token, str) or not token or user is None:
            self._emit(NotificationKind.ERROR, "Unexpected response from server")
            return False

        if generation != self._generation:
            logger.debug(f"Discarding stale {mode} response")
            return False

        self._generation += 1
        self._token = token
        self._user = user
        self._online_users = []
        self._auth_state = AuthState.AUTHENTICATED
        self._persist_token(token)
        self._backend.set_token(token)
        logger.info(f"{mode} succeeded for user {user.id}")
        self._changed()

        self._emit(NotificationKind.SUCCESS, response.message or f"{mode.capitalize()} successful")
        await self._connect_presence(user)
        return True

    async def logout(self) -> None:
        """Clear the session. Idempotent."""
        self._generation += 1

        self._user = None
        self._token = None
        self._online_users = []
        self._auth_state = AuthState.UNAUTHENTICATED
        self._backend.clear_token()

        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
        self._persist_token(None)

        logger.info("Session cleared")
        self._changed()
        self._emit(NotificationKind.SUCCESS, LOGOUT_MESSAGE)

    async def update_profile(self, patch: dict[str, Any]) -> bool:
        """Update profile fields of the authenticated user.

        Args:
            patch: Fields to change (e.g. ``{"fullName": "X", "bio": "..."}``).

        Returns:
            True if the profile was updated.
        """
        generation = self._generation

        try:
            response = await self._backend.update_profile(patch)
        except BackendError as e:
            logger.warning(f"Profile update failed: {e}")
            self._emit(NotificationKind.ERROR, message_for(e))
            return False

        if not response.success:
            logger.info(f"Profile update rejected: {response.message}")
            self._emit(NotificationKind.ERROR, response.message or "Profile update failed")
            return False

        try:
            user = AuthenticatedUser.from_dict(response.get("user"))
        except ValueError as e:
            logger.error(f"Profile update response carried an invalid user: {e}")
            self._emit(NotificationKind.ERROR, "Unexpected response from server")
            return False

        if generation != self._generation or self._token is None:
            logger.debug("Discarding stale profile update response")
            return False

        self._user = user
        logger.info(f"Profile updated for user {user.id}")
        self._changed()
        self._emit(NotificationKind.SUCCESS, PROFILE_UPDATED_MESSAGE)
        return True

    async def close(self) -> None:
        """Release the channel and HTTP client. The persisted token is kept."""
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
        await self._backend.aclose()

    # =========================================================================
    # Presence
    # =========================================================================

    async def _connect_presence(self, user: AuthenticatedUser | None) -> None:
        """Open a presence channel for user, closing any previous one first."""
        if user is None or not self.config.presence.enabled:
            return

        generation = self._generation
        previous, self._channel = self._channel, None
        if previous is not None:
            await previous.close()
        if generation != self._generation or self._user is None:
            logger.debug("Session changed while closing previous channel; not reconnecting")
            return

        channel = self._channel_factory(self.config, user.id)

        def on_error(message: Any = None) -> None:
            logger.error(f"Socket connection error: {message}")

        def on_roster(user_ids: Any) -> None:
            self._apply_roster(channel, user_ids)

        channel.on(channel.ERROR_EVENT, on_error)
        channel.on(channel.roster_event, on_roster)
        self._channel = channel
        self._changed()

        try:
            await channel.connect()
        except Exception as e:
            logger.error(f"Presence channel for user {user.id} failed to connect: {e}", exc_info=True)
        if self._channel is channel:
            self._changed()

    def _apply_roster(self, channel: PresenceChannel, user_ids: Any) -> None:
        """Replace the online roster with a channel's payload."""
        if channel is not self._channel:
            logger.debug("Ignoring roster from a superseded presence channel")
            return
        if not isinstance(user_ids, (list, tuple)):
            logger.warning(f"Ignoring malformed roster payload: {type(user_ids).__name__}")
            return

        self._online_users = [str(uid) for uid in user_ids]
        logger.debug(f"Online users updated: {len(self._online_users)}")
        self._changed()
