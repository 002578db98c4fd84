"""TCP query server answering one request per connection."""

import socketserver
import threading

from hostprobe.config import Config
from hostprobe.exceptions import BodyTooLarge
from hostprobe.logger import get_logger
from hostprobe.router import ERROR_BODY, Router
from hostprobe.store import SnapshotStore

logger = get_logger(__name__)

RESPONSE_PREAMBLE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: application/json; charset=utf-8\r\n"
    b"\r\n"
)


class ProbeRequestHandler(socketserver.BaseRequestHandler):
    """
    Reads one request, sends the preamble and the JSON body, then closes.

    The whole of a single recv() is the request. Errors on this socket only
    abort this connection.
    """

    server: "ProbeServer"

    def setup(self) -> None:
        if self.server.socket_timeout is not None:
            self.request.settimeout(self.server.socket_timeout)

    def handle(self) -> None:
        try:
            raw = self.request.recv(self.server.recv_buffer)
        except OSError as e:
            logger.debug("Receive from %s:%d failed: %s", *self.client_address[:2], e)
            return
        if not raw:
            return

        logger.info("%s:%d %s", *self.client_address[:2], raw.split(b"\n", 1)[0].decode("latin-1").rstrip())

        # Render from one generation even if samplers publish meanwhile.
        snapshot = self.server.store.current()
        try:
            body = self.server.router.handle(raw, snapshot)
        except (BodyTooLarge, ValueError) as e:
            logger.error("Cannot render response: %s", e)
            body = ERROR_BODY

        try:
            self.request.sendall(RESPONSE_PREAMBLE)
            self.request.sendall(body.encode("utf-8") + b"\r\n")
        except OSError as e:
            logger.debug("Send to %s:%d failed: %s", *self.client_address[:2], e)


class ProbeServer(socketserver.ThreadingTCPServer):
    """
    Threaded listener that spawns a handler thread per accepted connection.

    Concurrency is unbounded unless ``max_connections`` is given, in which
    case accepted connections wait for a free slot before being handled.
    """

    allow_reuse_address = True
    daemon_threads = True
    block_on_close = False

    def __init__(self, config: Config, store: SnapshotStore, router: Router | None = None) -> None:
        self.request_queue_size = config.backlog
        self.store = store
        self.router = router or Router(config.max_body_bytes, config.max_interfaces)
        self.recv_buffer = config.recv_buffer
        self.socket_timeout = config.socket_timeout
        self._slots = (
            threading.BoundedSemaphore(config.max_connections)
            if config.max_connections is not None
            else None
        )
        super().__init__((config.host, config.port), ProbeRequestHandler)

    @property
    def address(self) -> tuple[str, int]:
        """The bound (host, port), useful when configured with port 0."""
        host, port = self.server_address[:2]
        return host, port

    def get_request(self):
        try:
            return super().get_request()
        except OSError as e:
            logger.warning("Accept failed: %s", e)
            raise

    def process_request(self, request, client_address) -> None:
        if self._slots is not None:
            self._slots.acquire()
        try:
            super().process_request(request, client_address)
        except Exception:
            if self._slots is not None:
                self._slots.release()
            raise

    def process_request_thread(self, request, client_address) -> None:
        try:
            super().process_request_thread(request, client_address)
        finally:
            if self._slots is not None:
                self._slots.release()

    def handle_error(self, request, client_address) -> None:
        logger.exception("Error handling connection from %s", client_address)


def create_server(config: Config, store: SnapshotStore) -> ProbeServer:
    """Bind and listen. Raises OSError if the port cannot be bound."""
    server = ProbeServer(config, store)
    host, port = server.address
    logger.info("Listening at %s:%d", host, port)
    return server

