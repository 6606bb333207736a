import signal
import threading
from functools import lru_cache
from typing import Optional

from redis import ConnectionPool, Redis
from redis.exceptions import ConnectionError, ReadOnlyError, RedisError, TimeoutError

from .cache_config import CacheConfiguration, MissingConfiguration, resolve_cache_configuration
from .config import Settings, get_settings
from .connection import ObservedConnection, ObservedSSLConnection
from .events import ConnectionEvent, ConnectionEvents, LoggingObserver
from .logger import get_logger
from .retry_policy import ReconnectingRetry

logger = get_logger(__name__)


# ---------------------------------------------------------
# Connection Manager
# ---------------------------------------------------------
class CacheConnectionManager:
    """
    Owns the lifecycle of the single Redis client used for caching.
    Builds the client at most once, attaches lifecycle logging, and closes
    the client exactly once on termination.

    Attributes:
        settings (Settings): The application settings
        events (ConnectionEvents): Dispatcher shared by the client's connections
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.events = ConnectionEvents()

        # Reentrant: the SIGTERM handler may run while the main thread holds it
        self._lock = threading.RLock()
        self._client: Optional[Redis] = None
        self._initialized = False
        self._closed = False
        self._listeners_registered = False
        self._shutdown_hook_registered = False
        self._previous_sigterm_handler = None

    @property
    def client(self) -> Optional[Redis]:
        return self._client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    # ---------------------------------------------------------
    # Initialization
    # ---------------------------------------------------------
    def initialize(self) -> Optional[Redis]:
        """
        Build and connect the Redis client, or disable caching.

        Repeated calls return the handle produced by the first call without
        opening another connection. Concurrent callers wait until the first
        call has attached the listeners and finished the eager connect.
        Connection failures are reported through the `error` event and never raised.

        Returns:
            Redis: The shared client, or None when the configuration is incomplete.
        """
        with self._lock:
            if self._initialized:
                return self._client

            configuration = resolve_cache_configuration(self.settings)
            self._initialized = True

            if isinstance(configuration, MissingConfiguration):
                problems = list(configuration.missing) + [f"{name} (invalid)" for name in configuration.invalid]
                logger.warning(
                    "Missing or invalid Redis credentials (%s). Redis cache will be disabled.",
                    ", ".join(problems),
                )
                return None

            self._client = self._build_client(configuration)
            self.register_listeners()
            self.register_shutdown_hook()
            self._connect(self._client)

            return self._client

    def _build_client(self, configuration: CacheConfiguration) -> Redis:
        retry = ReconnectingRetry(retries=self.settings.redis_max_retries_per_request, events=self.events)
        connection_class = ObservedSSLConnection if configuration.tls_enabled else ObservedConnection

        connection_pool = ConnectionPool(
            connection_class=connection_class,
            host=configuration.host,
            port=configuration.port,
            password=configuration.password.get_secret_value(),
            socket_connect_timeout=self.settings.redis_socket_connect_timeout,
            # RESP2 keeps the handshake to AUTH on every supported redis-py release
            protocol=2,
            retry=retry,
            retry_on_error=[ConnectionError, TimeoutError, ReadOnlyError],
            events=self.events,
            ready_check=True,
        )

        logger.info(
            "Creating Redis client for %s:%s (tls=%s)",
            configuration.host,
            configuration.port,
            configuration.tls_enabled,
        )
        return Redis(connection_pool=connection_pool)

    def _connect(self, client: Redis) -> None:
        # Eager connect; the pool keeps the verified connection for reuse
        try:
            client.ping()
        except (RedisError, OSError) as error:
            self.events.emit(ConnectionEvent.ERROR, error=error)

    # ---------------------------------------------------------
    # Listener Registration
    # ---------------------------------------------------------
    def register_listeners(self) -> None:
        """Attach the logging observer. Runs at most once per manager."""
        with self._lock:
            if self._listeners_registered:
                return
            self._listeners_registered = True

            self.events.subscribe(LoggingObserver(verbose_errors=not self.settings.is_production))

    # ---------------------------------------------------------
    # Shutdown
    # ---------------------------------------------------------
    def register_shutdown_hook(self) -> None:
        """Install the SIGTERM handler that closes the client. Runs at most once per manager."""
        with self._lock:
            if self._shutdown_hook_registered:
                return
            self._shutdown_hook_registered = True

            try:
                self._previous_sigterm_handler = signal.getsignal(signal.SIGTERM)
                signal.signal(signal.SIGTERM, self._handle_sigterm)
            except ValueError:
                # signal.signal only works from the main thread
                logger.warning("Could not install SIGTERM handler; Redis will be closed on application shutdown")

    def _handle_sigterm(self, signum, frame) -> None:
        logger.info("SIGTERM received, closing Redis connection")
        self.shutdown()

        previous = self._previous_sigterm_handler
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            raise SystemExit(128 + signum)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Close the client, waiting at most `timeout` seconds.
        Errors raised while closing are logged, never propagated.

        The close runs on a daemon thread, so a close that hangs past the
        timeout does not hold up interpreter exit.

        Args:
            timeout (float): Seconds to wait. Defaults to settings.redis_shutdown_timeout.
        """
        with self._lock:
            if self._closed or self._client is None:
                return
            self._closed = True
            client = self._client

        timeout = self.settings.redis_shutdown_timeout if timeout is None else timeout
        errors = []
        closer = threading.Thread(
            target=self._close_client,
            args=(client, errors),
            name="redis-shutdown",
            daemon=True,
        )
        closer.start()
        closer.join(timeout)

        if closer.is_alive():
            logger.error("Timed out after %.1fs closing Redis connection", timeout)
        elif errors:
            logger.error("Error closing Redis connection: %s", errors[0])
        else:
            logger.info("Redis connection closed")

    @staticmethod
    def _close_client(client: Redis, errors: list) -> None:
        try:
            client.close()
            client.connection_pool.disconnect()
        except Exception as error:
            errors.append(error)


# ---------------------------------------------------------
# Redis Client Provider
# ---------------------------------------------------------
@lru_cache()
def get_connection_manager() -> CacheConnectionManager:
    """
    Creates and returns the process-wide connection manager.
    Uses lru_cache to ensure a singleton pattern for the manager.
    """
    return CacheConnectionManager(get_settings())


def get_redis_client() -> Optional[Redis]:
    """
    Returns the shared Redis client, initializing it on first use.
    Usable directly or as a FastAPI dependency.

    Returns:
        Redis: The shared client, or None when caching is disabled. Callers must check for None.
    """
    return get_connection_manager().initialize()
