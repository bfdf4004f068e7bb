"""TCP accept loop — serves one connection at a time on a dedicated worker thread."""

import logging
import socket
import threading

from envserver import stats as counters
from envserver.config import Config
from envserver.errors import BindError, InvalidPortError, ListenError, StartError
from envserver.handler import ConnectionSession, RequestHandler
from envserver.providers import EnvironmentProvider
from envserver.stats import ServerStats, StatsReporter

logger = logging.getLogger(__name__)

THREAD_NAME = "NetServer"


class NetServer:
    """Single-worker TCP server for environmental queries.

    NOTE: connections are handled one at a time. A slow or stalled client
    delays every client that connects after it.
    """

    def __init__(self, config: Config, provider: EnvironmentProvider,
                 stats: ServerStats | None = None):
        self._config = config
        self._handler = RequestHandler(provider, config.strict_numbers)
        self.stats = stats or ServerStats()
        self._reporter = StatsReporter(config.stats_interval)
        self._shutdown_event = threading.Event()
        self._sock = None
        self._server_address = None
        self._thread = None
        self._active_conn = None
        self._conn_lock = threading.Lock()

    @property
    def server_address(self) -> tuple:
        """Return (host, port) the server is bound to. Useful when port=0."""
        return self._server_address

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def initialize(self):
        """Bind, listen and start the worker thread.

        Raises InvalidPortError, BindError, ListenError or StartError; each
        carries a distinct ``code``. Nothing is retried.
        """
        port = self._config.port
        if port < 0:
            raise InvalidPortError(f"Invalid port {port}")

        self._listen(self._config.host, port)
        logger.info("Listening on %s:%d", *self._server_address)

        self._thread = threading.Thread(target=self._serve, name=THREAD_NAME, daemon=True)
        try:
            self._thread.start()
        except RuntimeError as exc:
            logger.error("Failed to start net server thread: %s", exc)
            self._close_listener()
            self._thread = None
            raise StartError(f"Failed to start worker thread: {exc}") from exc

    def _listen(self, host: str, port: int):
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as exc:
            logger.error("Failed to open socket: %s", exc)
            raise BindError(f"Failed to open socket: {exc}") from exc

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
        except OSError as exc:
            sock.close()
            logger.error("Failed to bind socket to %s:%d: %s", host, port, exc)
            raise BindError(f"Failed to bind {host}:{port}: {exc}") from exc

        try:
            sock.listen(self._config.backlog)
        except OSError as exc:
            sock.close()
            logger.error("Failed to listen on socket: %s", exc)
            raise ListenError(f"Failed to listen on {host}:{port}: {exc}") from exc

        # Accept wakes up once a second to notice shutdown.
        sock.settimeout(1.0)
        self._sock = sock
        self._server_address = sock.getsockname()

    def _serve(self):
        logger.info("Server thread preparing to accept...")
        self._reporter.emit(self.stats)

        while not self._shutdown_event.is_set():
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._shutdown_event.is_set():
                    break
                self.stats.increment(counters.ACCEPT)
                self.stats.increment(counters.ACCEPT_FAIL)
                logger.warning("Failed accept: %s", exc)
                self._reporter.maybe_emit(self.stats)
                continue

            self.stats.increment(counters.ACCEPT)
            self._reporter.maybe_emit(self.stats)
            self._serve_connection(conn, addr)

        logger.info("Server thread exiting")

    def _serve_connection(self, conn: socket.socket, addr: tuple):
        conn.setblocking(True)
        with self._conn_lock:
            self._active_conn = conn
        logger.debug("Client connected: %s:%d", *addr)
        try:
            session = ConnectionSession(
                conn, addr, self._handler, self.stats,
                self._config.buffer_size, self._shutdown_event,
            )
            outcome = session.run()
            logger.debug("Client %s:%d session ended: %s", addr[0], addr[1], outcome.value)
        except Exception:
            logger.exception("Unexpected error serving %s:%d", *addr)
        finally:
            with self._conn_lock:
                self._active_conn = None
            conn.close()

    def _close_listener(self):
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def stop(self, timeout: float = 5.0):
        """Stop accepting, end the active session and join the worker."""
        if self._shutdown_event.is_set():
            return
        logger.info("Server shutting down...")
        self._shutdown_event.set()
        self._close_listener()

        with self._conn_lock:
            if self._active_conn is not None:
                try:
                    self._active_conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._reporter.emit(self.stats)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the worker exits. Returns True if it has exited."""
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()
