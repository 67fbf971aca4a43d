"""Tests for SessionManager."""

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from chatpresence.backend import AuthBackend
from chatpresence.channels.base import PresenceChannel
from chatpresence.core.config import Config
from chatpresence.core.notify import NotificationRecorder
from chatpresence.model.session import AuthState, PresenceState, SessionSnapshot
from chatpresence.runtime.session import SessionManager
from chatpresence.stores.token import TOKEN_KEY, FileTokenStore, MemoryTokenStore, TokenStore

USER = {"_id": "u1", "fullName": "Ada Lovelace", "email": "ada@example.com"}


class FakeChannel(PresenceChannel):
    """In-process presence channel recording its lifecycle."""

    name = "fake"

    def __init__(self, identity: str, log: list[str]):
        super().__init__(identity)
        self.log = log
        self.connect_count = 0

    async def connect(self) -> None:
        self.connect_count += 1
        self.log.append(f"open:{self.identity}")
        self.state = PresenceState.CONNECTED

    async def close(self) -> None:
        if not self._closed:
            self.log.append(f"close:{self.identity}")
        self._closed = True
        self.state = PresenceState.DISCONNECTED

    async def push_roster(self, user_ids: Any) -> None:
        await self.emit_local(self.roster_event, user_ids)


class UnreadableStore(TokenStore):
    """Store whose backing data cannot be decoded."""

    def get(self, key: str) -> str | None:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

    def set(self, key: str, value: str) -> None:
        raise OSError("read-only file system")

    def remove(self, key: str) -> None:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


class FakeBackendServer:
    """Routes requests to canned responses keyed by (method, path)."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def respond(self, method: str, path: str, status: int = 200, body: Any = None) -> None:
        self.routes[(method, path)] = (status, body)

    def fail(self, method: str, path: str, error: Exception) -> None:
        self.routes[(method, path)] = error

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        if isinstance(route, Exception):
            raise route
        if isinstance(route, asyncio.Event):
            await route.wait()
            route = self.routes[(request.method, request.url.path, "after")]
        status, body = route
        return httpx.Response(status, json=body)


@pytest.fixture
def config() -> Config:
    return Config(backend_url="http://chat.test")


@pytest.fixture
def server() -> FakeBackendServer:
    return FakeBackendServer()


@pytest.fixture
def channel_log() -> list[str]:
    return []


@pytest.fixture
def channels() -> list[FakeChannel]:
    return []


@pytest.fixture
def notify() -> NotificationRecorder:
    return NotificationRecorder()


@pytest.fixture
def store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def snapshots() -> list[SessionSnapshot]:
    return []


@pytest.fixture(autouse=True)
def check_invariants(snapshots):
    """Check the session invariants on every snapshot published during a test."""
    yield
    for snapshot in snapshots:
        if snapshot.user is not None:
            assert snapshot.token is not None
        if snapshot.presence_state is not PresenceState.DISCONNECTED:
            assert snapshot.user is not None


@pytest.fixture
def make_manager(config, server, channels, channel_log, notify, snapshots):
    """Factory building managers wired to the fake server and channels."""

    def factory(store: TokenStore) -> SessionManager:
        def build_channel(cfg: Config, identity: str) -> FakeChannel:
            channel = FakeChannel(identity, channel_log)
            channels.append(channel)
            return channel

        backend = AuthBackend(config, transport=httpx.MockTransport(server))
        manager = SessionManager(config, store, notify=notify, backend=backend, channel_factory=build_channel)
        manager.subscribe(snapshots.append)
        return manager

    return factory


@pytest.fixture
def manager(make_manager, store) -> SessionManager:
    return make_manager(store)


def login_ok(server: FakeBackendServer, token: str = "t1", user: dict | None = None) -> None:
    server.respond(
        "POST",
        "/api/auth/login",
        body={"success": True, "token": token, "userData": user or USER, "message": "Login successful"},
    )


class TestInitialize:
    """Startup restore and validation."""

    async def test_without_token_stays_unauthenticated(self, manager, server, notify):
        await manager.initialize()

        assert manager.auth_state is AuthState.UNAUTHENTICATED
        assert manager.token is None
        assert manager.user is None
        assert server.requests == []
        assert notify.texts == []

    async def test_valid_token_restores_user_and_presence(self, manager, store, server, channels):
        store.set(TOKEN_KEY, "t1")
        server.respond("GET", "/api/auth/check", body={"success": True, "user": USER})

        await manager.initialize()

        assert manager.token == "t1"
        assert manager.user.id == "u1"
        assert manager.auth_state is AuthState.AUTHENTICATED
        assert server.requests[0].headers["token"] == "t1"
        assert len(channels) == 1
        assert channels[0].identity == "u1"
        assert manager.channel is channels[0]
        assert manager.presence_state is PresenceState.CONNECTED

    async def test_rejected_token_logs_out(self, manager, store, server, notify, channels):
        """Stored token + check failure 'Invalid token' ends unauthenticated with the token removed."""
        store.set(TOKEN_KEY, "stale")
        server.respond("GET", "/api/auth/check", status=401, body={"success": False, "message": "Invalid token"})

        await manager.initialize()

        assert manager.auth_state is AuthState.UNAUTHENTICATED
        assert manager.token is None
        assert manager.user is None
        assert store.get(TOKEN_KEY) is None
        assert manager.backend.token is None
        assert notify.errors() == ["Invalid token"]
        assert channels == []

    async def test_success_false_body_logs_out(self, manager, store, server, notify):
        store.set(TOKEN_KEY, "stale")
        server.respond("GET", "/api/auth/check", body={"success": False, "message": "Invalid token"})

        await manager.initialize()

        assert manager.token is None
        assert store.get(TOKEN_KEY) is None
        assert notify.errors() == ["Invalid token"]

    async def test_transport_failure_logs_out_with_derived_message(self, manager, store, server, notify):
        store.set(TOKEN_KEY, "t1")
        server.fail("GET", "/api/auth/check", httpx.ConnectError("Connection refused"))

        await manager.initialize()

        assert manager.token is None
        assert store.get(TOKEN_KEY) is None
        assert notify.errors() == ["Connection refused"]

    async def test_second_initialize_is_noop(self, manager, store, server):
        store.set(TOKEN_KEY, "t1")
        server.respond("GET", "/api/auth/check", body={"success": True, "user": USER})

        await manager.initialize()
        await manager.initialize()

        assert len(server.requests) == 1

    async def test_undecodable_session_file_starts_unauthenticated(self, make_manager, server, tmp_path: Path):
        path = tmp_path / "session.json"
        path.write_bytes(b'{"token": "\xff\xfe"}')
        manager = make_manager(FileTokenStore(path))

        await manager.initialize()

        assert manager.auth_state is AuthState.UNAUTHENTICATED
        assert manager.token is None
        assert server.requests == []

    async def test_store_read_error_does_not_propagate(self, make_manager, server):
        manager = make_manager(UnreadableStore())

        await manager.initialize()

        assert manager.token is None
        assert server.requests == []


class TestLogin:
    """Login and signup."""

    async def test_login_success(self, manager, store, server, notify, channels):
        login_ok(server)

        ok = await manager.login("login", {"email": "ada@example.com", "password": "pw"})

        assert ok is True
        assert manager.token == "t1"
        assert manager.user.id == "u1"
        assert store.get(TOKEN_KEY) == "t1"
        assert manager.backend.token == "t1"
        assert notify.texts == ["Login successful"]
        assert [c.identity for c in channels] == ["u1"]
        assert json.loads(server.requests[0].content) == {"email": "ada@example.com", "password": "pw"}

    async def test_signup_uses_signup_endpoint(self, manager, server):
        server.respond(
            "POST",
            "/api/auth/signup",
            body={"success": True, "token": "t2", "userData": USER, "message": "Account created successfully"},
        )

        assert await manager.login("signup", {"fullName": "Ada", "email": "a@b.c", "password": "pw", "bio": ""})
        assert server.requests[0].url.path == "/api/auth/signup"
        assert manager.token == "t2"

    async def test_rejected_login_changes_nothing(self, manager, store, server, notify, channels):
        server.respond("POST", "/api/auth/login", body={"success": False, "message": "Invalid credentials"})

        ok = await manager.login("login", {"email": "ada@example.com", "password": "wrong"})

        assert ok is False
        assert manager.token is None
        assert manager.user is None
        assert store.get(TOKEN_KEY) is None
        assert notify.errors() == ["Invalid credentials"]
        assert channels == []

    async def test_http_error_login_uses_backend_message(self, manager, server, notify):
        server.respond("POST", "/api/auth/login", status=400, body={"success": False, "message": "User already exists"})

        assert await manager.login("login", {}) is False
        assert notify.errors() == ["User already exists"]

    async def test_transport_failure_changes_nothing(self, manager, server, notify):
        server.fail("POST", "/api/auth/login", httpx.ConnectError("Connection refused"))

        assert await manager.login("login", {}) is False
        assert manager.user is None
        assert notify.errors() == ["Connection refused"]

    async def test_response_without_token_is_rejected(self, manager, server, notify):
        server.respond("POST", "/api/auth/login", body={"success": True, "userData": USER})

        assert await manager.login("login", {}) is False
        assert manager.user is None
        assert notify.errors() == ["Unexpected response from server"]

    async def test_login_persists_across_restart(self, make_manager, server, tmp_path: Path):
        """After login a fresh manager on the same store restores the same user."""
        path = tmp_path / "session.json"
        login_ok(server)
        first = make_manager(FileTokenStore(path))
        await first.login("login", {"email": "ada@example.com", "password": "pw"})

        server.respond("GET", "/api/auth/check", body={"success": True, "user": USER})
        second = make_manager(FileTokenStore(path))
        await second.initialize()

        assert second.token == "t1"
        assert second.user == first.user


class TestLogout:
    """Logout clears everything."""

    async def test_logout_clears_state_and_closes_channel(self, manager, store, server, notify, channels):
        login_ok(server)
        await manager.login("login", {})
        await channels[0].push_roster(["u1", "u2"])

        await manager.logout()

        assert manager.token is None
        assert manager.user is None
        assert manager.online_users == []
        assert manager.channel is None
        assert manager.presence_state is PresenceState.DISCONNECTED
        assert store.get(TOKEN_KEY) is None
        assert manager.backend.token is None
        assert channels[0].is_closed
        assert notify.texts[-1] == "Logged out successfully"

    async def test_logout_with_undecodable_session_file(self, make_manager, server, channels, notify, tmp_path: Path):
        """A corrupt session file does not stop logout from tearing everything down."""
        path = tmp_path / "session.json"
        login_ok(server)
        manager = make_manager(FileTokenStore(path))
        await manager.login("login", {})
        path.write_bytes(b'{"token": "\xff\xfe"}')

        await manager.logout()

        assert manager.token is None
        assert manager.user is None
        assert manager.backend.token is None
        assert manager.channel is None
        assert channels[0].is_closed
        assert notify.texts[-1] == "Logged out successfully"

    async def test_logout_with_failing_store(self, make_manager, server, channels):
        login_ok(server)
        manager = make_manager(UnreadableStore())
        assert await manager.login("login", {}) is True

        await manager.logout()

        assert manager.token is None
        assert manager.backend.token is None
        assert channels[0].is_closed

    async def test_logout_is_idempotent(self, manager, notify):
        await manager.logout()
        await manager.logout()

        assert manager.token is None
        assert manager.user is None
        assert manager.online_users == []
        assert notify.texts == ["Logged out successfully", "Logged out successfully"]


class TestUpdateProfile:
    """Profile updates."""

    async def test_update_replaces_user(self, manager, server, notify):
        login_ok(server)
        await manager.login("login", {})
        server.respond("PUT", "/api/auth/update-profile", body={"success": True, "user": {**USER, "fullName": "X"}})

        ok = await manager.update_profile({"fullName": "X"})

        assert ok is True
        assert manager.user.full_name == "X"
        assert server.requests[-1].headers["token"] == "t1"
        assert notify.texts[-1] == "Profile updated successfully"

    async def test_rejected_update_keeps_user(self, manager, server, notify):
        """A failed update leaves the profile unchanged and shows the backend message."""
        login_ok(server)
        await manager.login("login", {})
        before = manager.user
        server.respond("PUT", "/api/auth/update-profile", body={"success": False, "message": "Name too long"})

        ok = await manager.update_profile({"name": "X"})

        assert ok is False
        assert manager.user is before
        assert notify.texts[-1] == "Name too long"

    async def test_http_error_update_keeps_user(self, manager, server, notify):
        login_ok(server)
        await manager.login("login", {})
        before = manager.user
        server.respond("PUT", "/api/auth/update-profile", status=400, body={"success": False, "message": "Name too long"})

        assert await manager.update_profile({"name": "X"}) is False
        assert manager.user is before
        assert notify.errors() == ["Name too long"]


class TestPresence:
    """Presence channel handling."""

    async def test_roster_fully_replaced(self, manager, server, channels):
        login_ok(server)
        await manager.login("login", {})

        await channels[0].push_roster(["a", "b"])
        assert manager.online_users == ["a", "b"]

        await channels[0].push_roster(["c"])
        assert manager.online_users == ["c"]

    async def test_malformed_roster_ignored(self, manager, server, channels):
        login_ok(server)
        await manager.login("login", {})
        await channels[0].push_roster(["a"])

        await channels[0].push_roster({"not": "a list"})

        assert manager.online_users == ["a"]

    async def test_reconnect_closes_previous_channel_first(self, manager, server, channels, channel_log):
        """Two logins in a row leave exactly one open channel; the first closes before the second opens."""
        login_ok(server)
        await manager.login("login", {})
        login_ok(server, token="t2", user={"_id": "u2"})
        await manager.login("login", {})

        assert channel_log == ["open:u1", "close:u1", "open:u2"]
        assert [c.is_closed for c in channels] == [True, False]
        assert manager.channel is channels[1]

    async def test_roster_from_superseded_channel_ignored(self, manager, server, channels):
        login_ok(server)
        await manager.login("login", {})
        login_ok(server, token="t2", user={"_id": "u2"})
        await manager.login("login", {})

        await channels[0].push_roster(["ghost"])

        assert manager.online_users == []

    async def test_channel_error_is_not_surfaced(self, manager, server, channels, notify):
        login_ok(server)
        await manager.login("login", {})
        notify.clear()

        await channels[0].emit_local(PresenceChannel.ERROR_EVENT, "xhr poll error")

        assert notify.texts == []
        assert manager.user is not None

    async def test_presence_disabled(self, make_manager, store, server, channels):
        manager = make_manager(store)
        manager.config.presence.enabled = False
        login_ok(server)

        await manager.login("login", {})

        assert manager.user is not None
        assert channels == []


class TestStaleResponses:
    """Responses arriving after logout must not resurrect state."""

    async def test_validation_after_logout_is_discarded(self, manager, store, server, channels):
        gate = asyncio.Event()
        store.set(TOKEN_KEY, "t1")
        server.routes[("GET", "/api/auth/check")] = gate
        server.routes[("GET", "/api/auth/check", "after")] = (200, {"success": True, "user": USER})

        task = asyncio.create_task(manager.initialize())
        while not server.requests:
            await asyncio.sleep(0)

        await manager.logout()
        gate.set()
        await task

        assert manager.token is None
        assert manager.user is None
        assert manager.auth_state is AuthState.UNAUTHENTICATED
        assert channels == []

    async def test_profile_update_after_logout_is_discarded(self, manager, server, notify):
        login_ok(server)
        await manager.login("login", {})
        gate = asyncio.Event()
        server.routes[("PUT", "/api/auth/update-profile")] = gate
        server.routes[("PUT", "/api/auth/update-profile", "after")] = (200, {"success": True, "user": USER})

        task = asyncio.create_task(manager.update_profile({"fullName": "X"}))
        while len(server.requests) < 2:
            await asyncio.sleep(0)

        await manager.logout()
        gate.set()

        assert await task is False
        assert manager.user is None
        assert "Profile updated successfully" not in notify.texts

    async def test_login_after_logout_is_discarded(self, manager, store, server, channels, notify):
        gate = asyncio.Event()
        server.routes[("POST", "/api/auth/login")] = gate
        server.routes[("POST", "/api/auth/login", "after")] = (
            200,
            {"success": True, "token": "t1", "userData": USER, "message": "Login successful"},
        )

        task = asyncio.create_task(manager.login("login", {"email": "ada@example.com", "password": "pw"}))
        while not server.requests:
            await asyncio.sleep(0)

        await manager.logout()
        gate.set()

        assert await task is False
        assert manager.token is None
        assert manager.user is None
        assert manager.backend.token is None
        assert store.get(TOKEN_KEY) is None
        assert channels == []
        assert "Login successful" not in notify.texts


class TestListeners:
    """Snapshot listeners."""

    async def test_listener_receives_snapshots_until_unsubscribed(self, manager, server):
        seen: list[SessionSnapshot] = []
        unsubscribe = manager.subscribe(seen.append)
        login_ok(server)

        await manager.login("login", {})
        count = len(seen)
        unsubscribe()
        await manager.logout()

        assert count > 0
        assert seen[-1].user is not None
        assert len(seen) == count

    async def test_failing_listener_does_not_break_manager(self, manager, server):
        def broken(snapshot: SessionSnapshot) -> None:
            raise RuntimeError("boom")

        manager.subscribe(broken)
        login_ok(server)

        assert await manager.login("login", {}) is True

    async def test_failing_notify_callback_does_not_break_operations(self, config, server, store, channels):
        def broken(kind, text: str) -> None:
            raise RuntimeError("toast failed")

        def build_channel(cfg: Config, identity: str) -> FakeChannel:
            channels.append(FakeChannel(identity, []))
            return channels[-1]

        backend = AuthBackend(config, transport=httpx.MockTransport(server))
        manager = SessionManager(config, store, notify=broken, backend=backend, channel_factory=build_channel)
        login_ok(server)

        assert await manager.login("login", {}) is True
        assert store.get(TOKEN_KEY) == "t1"
        assert channels[0].is_connected

        await manager.logout()

        assert manager.token is None
        assert channels[0].is_closed

    async def test_close_keeps_persisted_token(self, manager, store, server, channels):
        login_ok(server)
        await manager.login("login", {})

        await manager.close()

        assert store.get(TOKEN_KEY) == "t1"
        assert channels[0].is_closed
