"""Request routing and JSON rendering of snapshots."""

import json
from collections.abc import Callable

from hostprobe.exceptions import BodyTooLarge
from hostprobe.models import Snapshot
from hostprobe.sources import MAX_IFNAME_BYTES

DEFAULT_MAX_INTERFACES = 16

ERROR_BODY = '{"err":1}'

_COMPACT = (",", ":")

# Longest repr of a float; counters and core counts print shorter.
_WIDEST_NUMBER = -1.2345678901234567e-100

# With ASCII escaping every byte of a name costs at most 6 bytes of JSON
# (control bytes and undecodable bytes become \u00XX or \udcXX).
_WIDEST_INTERFACE = {"ifname": "\x01" * MAX_IFNAME_BYTES, "ipv4": "255.255.255.255"}


def parse_request(raw: bytes) -> tuple[str, str]:
    """
    Split a raw request into its method and path.

    Only the first line is considered; a single trailing newline is trimmed
    and any query string is dropped. Missing parts come back as "".
    """
    text = raw.decode("latin-1")
    if text.endswith("\n"):
        text = text[:-1]
    line = text.split("\n", 1)[0].rstrip("\r")

    parts = line.split()
    method = parts[0] if parts else ""
    path = parts[1] if len(parts) > 1 else ""
    return method, path.split("?", 1)[0]


def uptime_parts(seconds: int) -> list[int]:
    """Split uptime seconds into [days, hours mod 24, minutes mod 60]."""
    return [seconds // 86400, seconds // 3600 % 24, seconds // 60 % 60]


def cpu_fields(snapshot: Snapshot) -> dict:
    """CPU percentages, one decimal."""
    cpu = snapshot.cpu
    return {
        "cpu": {
            "us": round(cpu.user, 1),
            "sy": round(cpu.system, 1),
            "id": round(cpu.idle, 1),
            "wa": round(cpu.iowait, 1),
            "ni": round(cpu.nice, 1),
        }
    }


def load_fields(snapshot: Snapshot) -> dict:
    """Load averages, two decimals."""
    load = snapshot.load
    return {"load": [round(load.one, 2), round(load.five, 2), round(load.fifteen, 2)]}


def uptime_fields(snapshot: Snapshot) -> dict:
    """Uptime as days, hours and minutes."""
    return {"uptime": uptime_parts(snapshot.memory.uptime)}


def procs_fields(snapshot: Snapshot) -> dict:
    """Process count."""
    return {"procs": snapshot.memory.procs}


def cores_fields(snapshot: Snapshot) -> dict:
    """Core count."""
    return {"cores": snapshot.cores}


def net_fields(snapshot: Snapshot) -> dict:
    """Interface list as name/address pairs."""
    return {"netifs": [{"ifname": i.name, "ipv4": i.ipv4} for i in snapshot.interfaces]}


def aggregate_fields(snapshot: Snapshot) -> dict:
    """Every family in one object."""
    fields: dict = {}
    for render in (cpu_fields, load_fields, uptime_fields, procs_fields, cores_fields, net_fields):
        fields.update(render(snapshot))
    return fields


ROUTES: dict[str, Callable[[Snapshot], dict]] = {
    "/cpu": cpu_fields,
    "/load": load_fields,
    "/uptime": uptime_fields,
    "/procs": procs_fields,
    "/cores": cores_fields,
    "/net": net_fields,
    "/": aggregate_fields,
}


def encode(path: str, fields: dict) -> str:
    """Serialize a route's fields: pretty for the aggregate, compact otherwise."""
    if path == "/":
        return json.dumps(fields, indent=4, allow_nan=False)
    return json.dumps(fields, separators=_COMPACT, allow_nan=False)


def body_capacity(max_interfaces: int) -> int:
    """
    Largest body any route can produce with up to ``max_interfaces`` entries.

    The aggregate is the largest route, so this renders it with the widest
    numbers and ``max_interfaces`` worst-case interface entries.
    """
    n = _WIDEST_NUMBER
    fields = {
        "cpu": {key: n for key in ("us", "sy", "id", "wa", "ni")},
        "load": [n, n, n],
        "uptime": [n, n, n],
        "procs": n,
        "cores": n,
        "netifs": [_WIDEST_INTERFACE] * max(0, max_interfaces),
    }
    return len(encode("/", fields).encode("utf-8"))


# Worst-case cost of one interface in the aggregate, separators included.
MAX_INTERFACE_ENTRY_BYTES = body_capacity(1) - body_capacity(0)


class Router:
    """
    Maps request paths to JSON bodies rendered from one snapshot.

    Routing is exact-match on the path of a GET request; every other request
    falls back to the error object. The router only reads the snapshot it
    is given.
    """

    def __init__(
        self,
        max_body_bytes: int | None = None,
        max_interfaces: int = DEFAULT_MAX_INTERFACES,
    ) -> None:
        """
        Initialize the router.

        Args:
            max_body_bytes: Largest body to send. Defaults to the size needed
                for ``max_interfaces`` worst-case interfaces.
            max_interfaces: Most interfaces a snapshot may carry.
        """
        self.max_interfaces = max_interfaces
        self.max_body_bytes = max_body_bytes if max_body_bytes is not None else body_capacity(max_interfaces)

    @property
    def max_interface_bytes(self) -> int:
        """Upper bound on the encoded size of the interface list."""
        return self.max_interfaces * MAX_INTERFACE_ENTRY_BYTES

    def route(self, method: str, path: str, snapshot: Snapshot) -> str:
        """
        Render the body for a request, or the error object if unmapped.

        Raises:
            BodyTooLarge: The snapshot holds more interfaces than allowed, or
                the body exceeds ``max_body_bytes``.
            ValueError: A metric is not a finite number.
        """
        render = ROUTES.get(path) if method == "GET" else None
        if render is None:
            return ERROR_BODY

        count = len(snapshot.interfaces)
        if count > self.max_interfaces:
            raise BodyTooLarge(count * MAX_INTERFACE_ENTRY_BYTES, self.max_interface_bytes)

        body = encode(path, render(snapshot))

        size = len(body.encode("utf-8"))
        if size > self.max_body_bytes:
            raise BodyTooLarge(size, self.max_body_bytes)
        return body

    def handle(self, raw: bytes, snapshot: Snapshot) -> str:
        """Parse a raw request and render its body."""
        method, path = parse_request(raw)
        return self.route(method, path, snapshot)
