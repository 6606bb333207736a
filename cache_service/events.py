from abc import ABC
from enum import Enum
from typing import List, Optional

from .logger import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------
# Connection Lifecycle Events
# ---------------------------------------------------------
class ConnectionEvent(str, Enum):
    """Lifecycle notifications emitted for the Redis connection."""

    CONNECT = "connect"
    READY = "ready"
    ERROR = "error"
    CLOSE = "close"
    RECONNECTING = "reconnecting"


# ---------------------------------------------------------
# Observer Interface
# ---------------------------------------------------------
class BaseConnectionObserver(ABC):
    """
    Base class for connection lifecycle observers.
    Subclasses override only the notifications they care about.
    """

    def on_connect(self, address: str) -> None:
        pass

    def on_ready(self, address: str) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_close(self, address: str) -> None:
        pass

    def on_reconnecting(self, attempt: int, delay_ms: int) -> None:
        pass


class LoggingObserver(BaseConnectionObserver):
    """
    Writes every lifecycle notification to the service log.

    Attributes:
        verbose_errors (bool): Attach the traceback to error records
    """

    def __init__(self, verbose_errors: bool = False):
        self.verbose_errors = verbose_errors

    def on_connect(self, address: str) -> None:
        logger.info("Connected to Redis at %s", address)

    def on_ready(self, address: str) -> None:
        logger.info("Redis client ready (%s)", address)

    def on_error(self, error: BaseException) -> None:
        logger.error("Redis error: %s", error, exc_info=error if self.verbose_errors else None)

    def on_close(self, address: str) -> None:
        logger.warning("Redis connection closed (%s)", address)

    def on_reconnecting(self, attempt: int, delay_ms: int) -> None:
        logger.info("Reconnecting to Redis (attempt %d, next try in %dms)", attempt, delay_ms)


# ---------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------
class ConnectionEvents:
    """
    Fans lifecycle notifications out to the subscribed observers.

    redis-py deep-copies the retry policy into every connection it creates,
    so copies of this dispatcher resolve to the same instance.
    """

    def __init__(self, observers: Optional[List[BaseConnectionObserver]] = None):
        self.observers: List[BaseConnectionObserver] = list(observers or [])

    def __deepcopy__(self, memo):
        return self

    def subscribe(self, observer: BaseConnectionObserver) -> None:
        self.observers.append(observer)

    def emit(self, event: ConnectionEvent, **details) -> None:
        """
        Deliver an event to every observer.

        Args:
            event (ConnectionEvent): The lifecycle event
            **details: Keyword arguments passed to the observer's handler
        """
        for observer in list(self.observers):
            handler = getattr(observer, f"on_{event.value}")
            try:
                handler(**details)
            except Exception:
                logger.exception("Observer %r failed while handling '%s'", observer, event.value)
