"""
Shared test fixtures and configuration for entire test suite.

Provides: isolated Settings factory, Redis client mocks, SIGTERM handler restore,
a socket-level fake Redis server speaking RESP2
Dependencies: pytest
"""

import signal
import socketserver
import threading
from collections import defaultdict
from unittest.mock import MagicMock, patch

import pytest

from cache_service.config import Settings
from cache_service.redis_client import get_connection_manager

ENV_VARS = (
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_PASSWORD",
    "REDIS_TLS_ENABLED",
    "REDIS_MAX_RETRIES_PER_REQUEST",
    "REDIS_SOCKET_CONNECT_TIMEOUT",
    "REDIS_SHUTDOWN_TIMEOUT",
    "APP_ENV",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell environment out of the settings under test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_connection_manager.cache_clear()
    yield
    get_connection_manager.cache_clear()


@pytest.fixture(autouse=True)
def restore_sigterm_handler():
    """Put back whatever SIGTERM handler was installed before the test."""
    previous = signal.getsignal(signal.SIGTERM)
    yield
    signal.signal(signal.SIGTERM, previous)


@pytest.fixture
def make_settings():
    """
    Build Settings from explicit environment values, ignoring any .env file.

    Returns:
        Callable: Factory accepting environment variable names as keyword arguments
    """

    def _make(**env) -> Settings:
        return Settings(_env_file=None, **env)

    return _make


@pytest.fixture
def complete_settings(make_settings) -> Settings:
    """Settings with host, port and password all present."""
    return make_settings(REDIS_HOST="cache.internal", REDIS_PORT="6380", REDIS_PASSWORD="s3cret")


@pytest.fixture
def mock_redis():
    """
    Patch the Redis client and connection pool classes used by the manager.

    Yields:
        tuple: (Redis class mock, ConnectionPool class mock)
    """
    with patch("cache_service.redis_client.Redis") as redis_cls, patch(
        "cache_service.redis_client.ConnectionPool"
    ) as pool_cls:
        redis_cls.return_value = MagicMock(name="redis_client")
        yield redis_cls, pool_cls


# ---------------------------------------------------------
# Fake Redis Server
# ---------------------------------------------------------
class FakeRedisHandler(socketserver.StreamRequestHandler):
    """Answers RESP2 commands: PING with PONG, anything else with OK, unless a reply is scripted."""

    def handle(self) -> None:
        self.server.record_connection()
        while True:
            try:
                command = self._read_command()
            except OSError:
                return
            if command is None:
                return

            reply = self.server.reply_for(command)
            try:
                self.wfile.write(reply)
                self.wfile.flush()
            except OSError:
                return

    def _read_command(self):
        header = self.rfile.readline()
        if not header.startswith(b"*"):
            return None

        args = []
        for _ in range(int(header[1:])):
            length = int(self.rfile.readline()[1:])
            args.append(self.rfile.read(length + 2)[:-2].decode())
        return args


class FakeRedisServer(socketserver.ThreadingTCPServer):
    """
    In-process TCP server standing in for Redis.

    Attributes:
        commands (list): Every command received, as lists of strings
        connections (int): Number of client connections accepted
    """

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), FakeRedisHandler)
        self.commands = []
        self.connections = 0
        self._scripted = defaultdict(list)
        self._state_lock = threading.Lock()

    @property
    def port(self) -> int:
        return self.server_address[1]

    def script(self, command: str, *replies: bytes) -> None:
        """Queue raw RESP replies for the next calls of `command`."""
        with self._state_lock:
            self._scripted[command.upper()].extend(replies)

    def record_connection(self) -> None:
        with self._state_lock:
            self.connections += 1

    def reply_for(self, command) -> bytes:
        name = command[0].upper()
        with self._state_lock:
            self.commands.append(command)
            if self._scripted[name]:
                return self._scripted[name].pop(0)
        return b"+PONG\r\n" if name == "PING" else b"+OK\r\n"


@pytest.fixture
def fake_redis_server():
    """
    Run a FakeRedisServer on an ephemeral localhost port for the test.

    Yields:
        FakeRedisServer: The running server
    """
    server = FakeRedisServer()
    thread = threading.Thread(target=server.serve_forever, name="fake-redis", daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def live_settings(make_settings, fake_redis_server) -> Settings:
    """Complete settings pointing at the fake Redis server."""
    return make_settings(
        REDIS_HOST="127.0.0.1",
        REDIS_PORT=str(fake_redis_server.port),
        REDIS_PASSWORD="s3cret",
        REDIS_SOCKET_CONNECT_TIMEOUT="2",
    )
