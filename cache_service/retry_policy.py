import errno
import socket
import time
from typing import Any, Callable, Optional, Tuple, Type, Union

from redis.backoff import AbstractBackoff
from redis.exceptions import AuthenticationError, AuthorizationError, ConnectionError, ReadOnlyError, TimeoutError
from redis.retry import Retry

from .events import ConnectionEvent, ConnectionEvents

RECONNECT_STEP_MS = 50
RECONNECT_CAP_MS = 2000
RECONNECT_ERROR_CODES = ("READONLY", "ECONNRESET")
DEFAULT_SUPPORTED_ERRORS = (ConnectionError, TimeoutError, socket.timeout)


# ---------------------------------------------------------
# Backoff
# ---------------------------------------------------------
def reconnect_delay(attempt: int) -> int:
    """
    Delay before reconnect attempt `attempt`, in milliseconds.

    Args:
        attempt (int): 1-based reconnect attempt number

    Returns:
        int: min(attempt * 50, 2000)
    """
    return min(attempt * RECONNECT_STEP_MS, RECONNECT_CAP_MS)


class CappedLinearBackoff(AbstractBackoff):
    """redis-py backoff that grows by 50ms per failure, capped at 2s."""

    def reset(self) -> None:
        pass

    def compute(self, failures: int) -> float:
        return reconnect_delay(failures) / 1000


# ---------------------------------------------------------
# Error Classification
# ---------------------------------------------------------
def is_reconnect_error(error: BaseException) -> bool:
    """
    Check whether an error should drop the connection and reconnect.

    redis-py strips the error code from server replies into `status_code`
    (`-READONLY ...` arrives as ReadOnlyError("You can't write ...")), so the
    code is checked there as well as in the message.

    Args:
        error (BaseException): The error raised by a command or the socket

    Returns:
        bool: True for READONLY replies and connection resets
    """
    if isinstance(error, ReadOnlyError):
        return True
    if getattr(error, "status_code", None) in RECONNECT_ERROR_CODES:
        return True
    if isinstance(error, OSError) and error.errno == errno.ECONNRESET:
        return True

    message = str(error)
    return any(code in message for code in RECONNECT_ERROR_CODES)


def is_retryable_error(
    error: BaseException,
    supported_errors: Tuple[Type[BaseException], ...] = DEFAULT_SUPPORTED_ERRORS,
) -> bool:
    if isinstance(error, (AuthenticationError, AuthorizationError)):
        return False
    if is_reconnect_error(error):
        return True
    return isinstance(error, supported_errors)


# ---------------------------------------------------------
# Retry Loop
# ---------------------------------------------------------
class ReconnectingRetry(Retry):
    """
    Retry policy handed to every Redis connection.

    Retryable failures disconnect the connection (via the `fail` callback),
    emit `error` and `reconnecting` events, sleep for the backoff delay, and
    try again. Anything else is raised to the caller untouched. The error
    types added through the connection's `retry_on_error` are honored.

    Attributes:
        events (ConnectionEvents): Dispatcher receiving the lifecycle events
        max_retries (int): Retries allowed after the first attempt
    """

    def __init__(self, retries: int = 3, events: Optional[ConnectionEvents] = None):
        super().__init__(CappedLinearBackoff(), retries)
        self.max_retries = retries
        self.events = events or ConnectionEvents()

    def call_with_retry(
        self,
        do: Callable[[], Any],
        fail: Union[Callable[[Exception], Any], Callable[[Exception, int], Any]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        with_failure_count: bool = False,
    ) -> Any:
        """
        Run `do`, retrying reconnect-worthy failures up to `max_retries` times.

        Args:
            do (Callable): The operation to run
            fail (Callable): Cleanup invoked with the error (and the failure count
                when `with_failure_count` is set) after each failure
            is_retryable (Callable): Extra predicate supplied by the caller, if any
            with_failure_count (bool): Pass the failure count to `fail`

        Returns:
            The result of `do`

        Raises:
            Exception: The last error once retries are exhausted, or any non-retryable error
        """
        failures = 0
        while True:
            try:
                return do()
            except Exception as error:
                if not is_retryable_error(error, self._supported_errors):
                    raise
                if is_retryable is not None and not is_retryable(error):
                    raise

                failures += 1
                exhausted = failures > self.max_retries
                if not exhausted:
                    self.events.emit(ConnectionEvent.ERROR, error=error)

                if with_failure_count:
                    fail(error, failures)
                else:
                    fail(error)
                if exhausted:
                    raise error

                delay_ms = reconnect_delay(failures)
                self.events.emit(ConnectionEvent.RECONNECTING, attempt=failures, delay_ms=delay_ms)
                time.sleep(delay_ms / 1000)
