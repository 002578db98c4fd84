"""
Raw metric sources.

These wrap the operating system facilities the samplers read from: virtual
stat files for CPU counters and load averages, and psutil for the memory,
process, uptime and interface queries. Samplers take them as callables so
tests can substitute fixed data.
"""

import socket
import time
from dataclasses import dataclass

import psutil

from hostprobe.exceptions import SourceError

IPV4_FAMILY = int(socket.AF_INET)

IFNAMSIZ = 16
MAX_IFNAME_BYTES = IFNAMSIZ - 1  # without the terminating NUL


@dataclass(slots=True, frozen=True)
class RawMemory:
    """Result of the memory query, with quantities in units of ``mem_unit`` bytes."""

    total_ram: int
    free_ram: int
    shared_ram: int
    buffer_ram: int
    total_swap: int
    free_swap: int
    total_high: int
    free_high: int
    mem_unit: int
    procs: int
    uptime: int


def read_first_line(path: str) -> str:
    """Read the first line of a text file such as /proc/stat."""
    try:
        with open(path, "r") as f:
            line = f.readline()
    except OSError as e:
        raise SourceError(f"cannot read {path}: {e}") from e
    if not line:
        raise SourceError(f"{path} is empty")
    return line


def query_memory() -> RawMemory:
    """
    Query memory, swap, process count and uptime.

    psutil reports bytes, so the unit size is 1. High memory is not exposed
    by psutil and is reported as zero.
    """
    try:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        procs = len(psutil.pids())
        uptime = int(time.time() - psutil.boot_time())
    except (psutil.Error, OSError) as e:
        raise SourceError(f"memory query failed: {e}") from e

    return RawMemory(
        total_ram=mem.total,
        free_ram=mem.free,
        shared_ram=getattr(mem, "shared", 0),
        buffer_ram=getattr(mem, "buffers", 0),
        total_swap=swap.total,
        free_swap=swap.free,
        total_high=0,
        free_high=0,
        mem_unit=1,
        procs=procs,
        uptime=max(0, uptime),
    )


def enumerate_interfaces() -> list[tuple[str, int, str]]:
    """Return ``(name, address family, address)`` for every interface address."""
    try:
        addrs = psutil.net_if_addrs()
    except (psutil.Error, OSError) as e:
        raise SourceError(f"interface enumeration failed: {e}") from e

    return [
        (name, int(addr.family), addr.address)
        for name, entries in addrs.items()
        for addr in entries
    ]


def count_cores() -> int:
    """Number of logical CPUs configured on the host."""
    return psutil.cpu_count(logical=True) or 1

