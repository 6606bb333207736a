from typing import Optional

from redis.connection import Connection, SSLConnection
from redis.exceptions import ConnectionError
from redis.utils import str_if_bytes

from .events import ConnectionEvent, ConnectionEvents


# ---------------------------------------------------------
# Observed Connection
# ---------------------------------------------------------
class ObservedConnectionMixin:
    """
    Adds lifecycle notifications and a readiness check to a redis-py connection.

    Attributes:
        events (ConnectionEvents): Dispatcher receiving connect / ready / close events
        ready_check (bool): Send PING after the handshake and require PONG
    """

    def __init__(self, *args, events: Optional[ConnectionEvents] = None, ready_check: bool = True, **kwargs):
        self.events = events or ConnectionEvents()
        self.ready_check = ready_check

        # redis-py calls redis_connect_func(connection) in place of on_connect once the socket is open
        kwargs["redis_connect_func"] = ObservedConnectionMixin.establish
        super().__init__(*args, **kwargs)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def establish(self) -> None:
        """
        Run the handshake (AUTH, HELLO, SELECT) and report the connection ready.

        Raises:
            ConnectionError: If the readiness check does not get PONG back
        """
        self.events.emit(ConnectionEvent.CONNECT, address=self.address)
        self.on_connect()

        if self.ready_check:
            self.send_command("PING", check_health=False)
            reply = str_if_bytes(self.read_response())
            if reply != "PONG":
                raise ConnectionError(f"Readiness check failed: unexpected reply {reply!r}")

        self.events.emit(ConnectionEvent.READY, address=self.address)

    def disconnect(self, *args, **kwargs) -> None:
        was_connected = self._sock is not None
        super().disconnect(*args, **kwargs)
        if was_connected:
            self.events.emit(ConnectionEvent.CLOSE, address=self.address)


class ObservedConnection(ObservedConnectionMixin, Connection):
    pass


class ObservedSSLConnection(ObservedConnectionMixin, SSLConnection):
    pass
