"""Per-connection session engine — newline framing over a fixed-size buffer."""

import logging
import select
import socket
import threading
from enum import Enum

from envserver import stats as counters
from envserver.buffer import MessageBuffer
from envserver.errors import ProtocolError, ProviderError
from envserver.protocol import (
    ERROR_RESPONSE,
    Request,
    RequestKind,
    format_ocean_response,
    format_wave_response,
    format_wind_response,
    parse_request,
)
from envserver.providers import EnvironmentProvider
from envserver.stats import ServerStats

logger = logging.getLogger(__name__)


class RequestHandler:
    """Parses one message, queries the matching provider and formats the reply."""

    def __init__(self, provider: EnvironmentProvider, strict_numbers: bool = False):
        self._provider = provider
        self._strict_numbers = strict_numbers

    def dispatch(self, request: Request) -> bytes:
        coord = request.coordinate
        try:
            if request.kind is RequestKind.WIND:
                return format_wind_response(coord, self._provider.get_wind(coord))
            if request.kind is RequestKind.WIND_GUST:
                return format_wind_response(coord, self._provider.get_wind(coord), gust=True)
            if request.kind is RequestKind.OCEAN_CURRENT:
                return format_ocean_response(coord, self._provider.get_ocean(coord))
            if request.kind is RequestKind.SEA_ICE:
                return format_ocean_response(coord, self._provider.get_ocean(coord), sea_ice=True)
            if request.kind is RequestKind.WAVE_HEIGHT:
                return format_wave_response(coord, self._provider.get_wave(coord))
        except ProviderError as exc:
            raise ProtocolError(f"{request.kind.value}: provider failed: {exc}") from exc
        raise ProtocolError(f"no dispatch for {request.kind}")

    def respond(self, message: bytes) -> bytes:
        """Return the full response line for *message*. Raises ProtocolError on failure."""
        request = parse_request(message, self._strict_numbers)
        logger.debug("Request %s %s", request.kind.value, request.args)
        return self.dispatch(request)


class SessionOutcome(Enum):
    PEER_CLOSED = "peer_closed"
    OVERSIZED = "oversized"
    READ_FAILED = "read_failed"
    MESSAGE_FAILED = "message_failed"
    SHUTDOWN = "shutdown"


def _data_ready(conn: socket.socket) -> bool:
    """Non-blocking readiness check."""
    readable, _, _ = select.select([conn], [], [], 0)
    return bool(readable)


class ConnectionSession:
    """Serves every request on one connection until it ends.

    Requests are answered strictly in arrival order. The first request that
    cannot be answered gets ``error\\n`` and ends the session. The caller owns
    the socket and closes it afterwards.
    """

    def __init__(self, conn: socket.socket, peer, handler: RequestHandler,
                 stats: ServerStats, buffer_size: int = 1024,
                 shutdown_event: threading.Event | None = None):
        self._conn = conn
        self._peer = peer
        self._handler = handler
        self._stats = stats
        self._buffer = MessageBuffer(buffer_size)
        self._shutdown = shutdown_event or threading.Event()

    def run(self) -> SessionOutcome:
        buf = self._buffer
        eos = False

        while True:
            if self._shutdown.is_set():
                return SessionOutcome.SHUTDOWN

            if buf.is_full and not buf.has_message():
                logger.warning("Excessive message length from %s", self._peer)
                self._stats.increment(counters.DATA_TOO_LONG)
                return SessionOutcome.OVERSIZED

            if not eos and buf.free_space > 0 and (not buf.has_message() or _data_ready(self._conn)):
                try:
                    n = buf.recv_into(self._conn)
                except OSError as exc:
                    if self._shutdown.is_set():
                        return SessionOutcome.SHUTDOWN
                    logger.warning("Failed read from %s: %s", self._peer, exc)
                    self._stats.increment(counters.READ)
                    self._stats.increment(counters.READ_FAIL)
                    return SessionOutcome.READ_FAILED
                self._stats.increment(counters.READ)
                if n == 0:
                    eos = True

            message = buf.take_message()
            if message is None:
                if eos:
                    if not buf.is_empty:
                        logger.debug("Discarding %d unterminated bytes from %s",
                                     buf.ready_bytes, self._peer)
                    return SessionOutcome.PEER_CLOSED
                continue

            self._stats.increment(counters.MESSAGE)
            if not self._handle_message(message):
                self._stats.increment(counters.MESSAGE_FAIL)
                return SessionOutcome.MESSAGE_FAILED

            if eos and buf.is_empty:
                return SessionOutcome.PEER_CLOSED

    def _handle_message(self, message: bytes) -> bool:
        """Answer one message. Returns False if the session must end."""
        try:
            response = self._handler.respond(message)
        except ProtocolError as exc:
            logger.warning("Failed to handle request from %s: %s", self._peer, exc)
            self._send_error()
            return False
        except Exception:
            logger.exception("Unexpected error handling request from %s", self._peer)
            self._send_error()
            return False

        try:
            self._conn.sendall(response)
        except OSError as exc:
            logger.warning("Failed write to %s: %s", self._peer, exc)
            return False
        return True

    def _send_error(self):
        try:
            self._conn.sendall(ERROR_RESPONSE)
        except OSError as exc:
            logger.warning("Failed to send error response to %s: %s", self._peer, exc)
