"""Tests for the TCP query server."""

import json
import socket
import threading

import pytest

from hostprobe.config import Config
from hostprobe.models import LoadAverage, NetInterface
from hostprobe.server import RESPONSE_PREAMBLE, ProbeServer, create_server
from hostprobe.store import SnapshotStore


def query(address: tuple[str, int], request: bytes, timeout: float = 5.0) -> bytes:
    """Send one request and read the response until the server closes."""
    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(request)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def body_of(response: bytes) -> dict:
    assert response.startswith(RESPONSE_PREAMBLE)
    body = response[len(RESPONSE_PREAMBLE) :]
    assert body.endswith(b"\r\n")
    return json.loads(body)


@pytest.fixture
def store() -> SnapshotStore:
    store = SnapshotStore(cores=4)
    store.update(
        load=LoadAverage(0.10, 0.20, 0.30),
        interfaces=[NetInterface("lo", "127.0.0.1")],
    )
    return store


@pytest.fixture
def server(store):
    """A running server on an ephemeral localhost port."""
    server = create_server(Config(host="127.0.0.1", port=0), store)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5.0)


class TestProbeServer:
    """Tests for the listener and connection handler."""

    def test_server_options(self, server):
        """Test the listener reuses addresses and uses daemon handler threads."""
        assert ProbeServer.allow_reuse_address is True
        assert ProbeServer.daemon_threads is True
        assert server.request_queue_size == 5
        assert server.address[1] != 0

    def test_load_request(self, server):
        """Test a load query returns the preamble and the load body."""
        response = query(server.address, b"GET /load HTTP/1.1\r\n\r\n")
        assert body_of(response) == {"load": [0.1, 0.2, 0.3]}

    def test_content_type_header(self, server):
        """Test the response carries the JSON content type."""
        response = query(server.address, b"GET /cores\n")
        head = response.split(b"\r\n\r\n", 1)[0]
        assert head.startswith(b"HTTP/1.1 200 OK")
        assert b"Content-Type: application/json; charset=utf-8" in head

    def test_unknown_request(self, server):
        """Test an unknown path yields the error object."""
        response = query(server.address, b"GET /unknown HTTP/1.1\r\n\r\n")
        assert body_of(response) == {"err": 1}

    def test_aggregate_request(self, server):
        """Test the aggregate query contains every family."""
        body = body_of(query(server.address, b"GET / HTTP/1.1\r\n\r\n"))
        assert set(body) == {"cpu", "load", "uptime", "procs", "cores", "netifs"}
        assert body["netifs"] == [{"ifname": "lo", "ipv4": "127.0.0.1"}]

    def test_full_non_ascii_interface_list(self, server, store):
        """Test a full list of non-ASCII interface names is served, not the error object."""
        store.update(interfaces=[NetInterface("é" * 7, "255.255.255.255")] * 16)

        body = body_of(query(server.address, b"GET / HTTP/1.1\r\n"))

        assert len(body["netifs"]) == 16
        assert body["netifs"][0]["ifname"] == "é" * 7

    def test_non_finite_metric_yields_error(self, server, store):
        """Test a metric that cannot be rendered as JSON yields the error object."""
        store.update(load=LoadAverage(float("nan"), 0.2, 0.3))

        assert body_of(query(server.address, b"GET /load\n")) == {"err": 1}

    def test_cores_idempotent(self, server):
        """Test /cores answers the same on every call."""
        answers = {json.dumps(body_of(query(server.address, b"GET /cores\n"))) for _ in range(5)}
        assert answers == {'{"cores": 4}'}

    def test_silent_peer_does_not_block_others(self, server):
        """Test a connected client that never sends does not stall the server."""
        idle = socket.create_connection(server.address, timeout=5.0)
        try:
            assert body_of(query(server.address, b"GET /procs\n")) == {"procs": 0}
        finally:
            idle.close()

    def test_client_disconnect_before_request(self, server):
        """Test a client closing without sending does not break the server."""
        socket.create_connection(server.address, timeout=5.0).close()
        assert body_of(query(server.address, b"GET /cores\n")) == {"cores": 4}

    def test_bind_failure_raises(self, server):
        """Test binding an already bound port raises OSError."""
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            taken = blocker.getsockname()[1]
            with pytest.raises(OSError):
                ProbeServer(Config(host="127.0.0.1", port=taken), SnapshotStore(cores=1))
        finally:
            blocker.close()

    def test_bounded_connections(self, store):
        """Test a max_connections bound still serves every client."""
        server = create_server(Config(host="127.0.0.1", port=0, max_connections=2), store)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            results = []

            def client():
                results.append(body_of(query(server.address, b"GET /cores\n")))

            clients = [threading.Thread(target=client) for _ in range(8)]
            for c in clients:
                c.start()
            for c in clients:
                c.join(timeout=10.0)

            assert results == [{"cores": 4}] * 8
        finally:
            server.shutdown()
            server.server_close()
            thread.join(timeout=5.0)
