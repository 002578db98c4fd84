"""Background samplers that keep the snapshot store current."""

import ipaddress
import math
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from hostprobe import sources
from hostprobe.config import MIN_INTERVAL, Config
from hostprobe.exceptions import ParseError, SampleError, ZeroDeltaError
from hostprobe.logger import get_logger
from hostprobe.models import CpuUtilization, LoadAverage, MemoryInfo, NetInterface, Snapshot
from hostprobe.sources import IPV4_FAMILY, MAX_IFNAME_BYTES, RawMemory
from hostprobe.store import SnapshotStore

logger = get_logger(__name__)

CPU_FIELDS = 5  # user, nice, system, idle, iowait
MIN_CPU_FIELDS = 4
MIN_LOAD_FIELDS = 2


def parse_cpu_line(line: str) -> tuple[int, ...]:
    """
    Parse the aggregate ``cpu`` line of /proc/stat.

    Returns (user, nice, system, idle, iowait). Kernels that do not report
    iowait yield 0 for it.
    """
    tokens = line.split()
    if not tokens or not tokens[0].startswith("cpu"):
        raise ParseError(f"not a cpu counter line: {line!r}")

    counters: list[int] = []
    for token in tokens[1 : CPU_FIELDS + 1]:
        try:
            counters.append(int(token))
        except ValueError:
            break

    if len(counters) < MIN_CPU_FIELDS:
        raise ParseError(f"expected at least {MIN_CPU_FIELDS} cpu counters: {line!r}")
    counters.extend([0] * (CPU_FIELDS - len(counters)))
    return tuple(counters)


def compute_cpu_utilization(old: tuple[int, ...], new: tuple[int, ...]) -> CpuUtilization:
    """
    Turn two counter samples into percentages of the elapsed CPU time.

    Deltas are taken as absolute values so a counter reset between samples
    does not produce negative time.
    """
    deltas = [abs(n - o) for o, n in zip(old, new)]
    total = sum(deltas)
    if total == 0:
        raise ZeroDeltaError("cpu counters did not change between samples")

    user, nice, system, idle, iowait = (delta / total * 100 for delta in deltas)
    return CpuUtilization(user=user, nice=nice, system=system, idle=idle, iowait=iowait)


def parse_load_line(line: str, previous: LoadAverage | None = None) -> LoadAverage:
    """
    Parse the 1, 5 and 15 minute load averages from /proc/loadavg.

    At least two leading values must parse as finite, non-negative numbers.
    If the third is missing, the previous fifteen-minute value is kept.
    """
    values: list[float] = []
    for token in line.split()[:3]:
        try:
            value = float(token)
        except ValueError:
            break
        if value < 0 or not math.isfinite(value):
            break
        values.append(value)

    if len(values) < MIN_LOAD_FIELDS:
        raise ParseError(f"expected at least {MIN_LOAD_FIELDS} load averages: {line!r}")
    if len(values) == 2:
        values.append(previous.fifteen if previous is not None else 0.0)
    return LoadAverage(one=values[0], five=values[1], fifteen=values[2])


def convert_memory(raw: RawMemory) -> MemoryInfo:
    """Scale raw memory counters by the unit size into kilobytes."""
    if raw.mem_unit <= 0:
        raise ParseError(f"invalid memory unit size: {raw.mem_unit}")

    def kilobytes(value: int) -> int:
        return max(0, value) * raw.mem_unit // 1024

    return MemoryInfo(
        total_ram=kilobytes(raw.total_ram),
        free_ram=kilobytes(raw.free_ram),
        shared_ram=kilobytes(raw.shared_ram),
        buffer_ram=kilobytes(raw.buffer_ram),
        total_swap=kilobytes(raw.total_swap),
        free_swap=kilobytes(raw.free_swap),
        total_high=kilobytes(raw.total_high),
        free_high=kilobytes(raw.free_high),
        mem_unit=raw.mem_unit,
        procs=max(0, raw.procs),
        uptime=max(0, raw.uptime),
    )


def clip_ifname(name: str) -> str:
    """Cut an interface name to the kernel's limit of MAX_IFNAME_BYTES bytes."""
    raw = name.encode("utf-8", "surrogateescape")
    if len(raw) <= MAX_IFNAME_BYTES:
        return name
    return raw[:MAX_IFNAME_BYTES].decode("utf-8", "surrogateescape")


def select_ipv4(entries: Iterable[tuple[str, int, str]], capacity: int) -> list[NetInterface]:
    """
    Keep IPv4 addresses only, in enumeration order, up to ``capacity`` entries.

    Entries whose address is not a dotted-quad IPv4 address are skipped, and
    names are clipped to MAX_IFNAME_BYTES, so every entry has a bounded size.
    """
    interfaces: list[NetInterface] = []
    for name, family, address in entries:
        if family != IPV4_FAMILY:
            continue
        try:
            ipv4 = str(ipaddress.IPv4Address(address))
        except ValueError:
            logger.debug("Skipping %s: not an IPv4 address: %r", name, address)
            continue
        if len(interfaces) >= capacity:
            break
        interfaces.append(NetInterface(name=clip_ifname(name), ipv4=ipv4))
    return interfaces


class Sampler(ABC):
    """
    Periodic task that measures one metric family and publishes it.

    Runs in its own daemon thread until stop() is called. A failed
    measurement is logged and the loop carries on; the store keeps the
    previous value for this family.
    """

    name = "Sampler"

    def __init__(self, store: SnapshotStore, interval: float = 1.0) -> None:
        """
        Initialize the sampler.

        Args:
            store: Store to publish measurements to.
            interval: Seconds between measurements.
        """
        self._store = store
        self._interval = max(MIN_INTERVAL, interval)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def interval(self) -> float:
        """Get the sampling interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the sampling interval."""
        self._interval = max(MIN_INTERVAL, value)

    @property
    def is_running(self) -> bool:
        """Check if the sampler thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sampler thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=self.name,
        )
        self._thread.start()

    def request_stop(self) -> None:
        """Ask the sampler thread to stop without waiting for it."""
        self._stop_event.set()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the sampler thread.

        Args:
            timeout: How long to wait for the thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @abstractmethod
    def sample_once(self) -> Snapshot | None:
        """Take one measurement and publish it. Raises SampleError on failure."""

    def _delay_after(self, succeeded: bool) -> float:
        """Seconds to wait before the next measurement."""
        return self._interval

    def _run(self) -> None:
        """Main sampling loop running in the background thread."""
        while not self._stop_event.is_set():
            succeeded = False
            try:
                self.sample_once()
                succeeded = True
            except SampleError as e:
                logger.warning("%s failed: %s", self.name, e)
            except Exception:
                logger.exception("%s failed unexpectedly", self.name)

            self._stop_event.wait(timeout=self._delay_after(succeeded))


class CpuSampler(Sampler):
    """Samples CPU counters twice per window and publishes the percentages."""

    name = "CpuSampler"

    def __init__(
        self,
        store: SnapshotStore,
        interval: float = 3.0,
        read_line: Callable[[], str] | None = None,
        retry_delay: float = 0.1,
    ) -> None:
        super().__init__(store, interval)
        self._read_line = read_line or (lambda: sources.read_first_line("/proc/stat"))
        self._retry_delay = max(0.0, retry_delay)

    def sample_once(self) -> Snapshot | None:
        old = parse_cpu_line(self._read_line())
        if self._stop_event.wait(timeout=self._interval):
            return None
        new = parse_cpu_line(self._read_line())
        return self._store.update(cpu=compute_cpu_utilization(old, new))

    def _delay_after(self, succeeded: bool) -> float:
        # The sampling window already spaces out successful reads.
        return 0.0 if succeeded else self._retry_delay


class LoadSampler(Sampler):
    """Publishes the load averages."""

    name = "LoadSampler"

    def __init__(
        self,
        store: SnapshotStore,
        interval: float = 1.0,
        read_line: Callable[[], str] | None = None,
    ) -> None:
        super().__init__(store, interval)
        self._read_line = read_line or (lambda: sources.read_first_line("/proc/loadavg"))

    def sample_once(self) -> Snapshot:
        load = parse_load_line(self._read_line(), previous=self._store.current().load)
        return self._store.update(load=load)


class MemorySampler(Sampler):
    """Publishes memory quantities, process count and uptime."""

    name = "MemorySampler"

    def __init__(
        self,
        store: SnapshotStore,
        interval: float = 1.0,
        query: Callable[[], RawMemory] = sources.query_memory,
    ) -> None:
        super().__init__(store, interval)
        self._query = query

    def sample_once(self) -> Snapshot:
        return self._store.update(memory=convert_memory(self._query()))


class NetIfSampler(Sampler):
    """Publishes the list of interfaces that have an IPv4 address."""

    name = "NetIfSampler"

    def __init__(
        self,
        store: SnapshotStore,
        interval: float = 1.0,
        enumerate_interfaces: Callable[[], list[tuple[str, int, str]]] = sources.enumerate_interfaces,
        capacity: int = 16,
    ) -> None:
        super().__init__(store, interval)
        self._enumerate = enumerate_interfaces
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        """Maximum number of interfaces kept per cycle."""
        return self._capacity

    def sample_once(self) -> Snapshot:
        interfaces = select_ipv4(self._enumerate(), self._capacity)
        return self._store.update(interfaces=interfaces)


class SamplerGroup:
    """Starts and stops the four samplers together."""

    def __init__(self, samplers: list[Sampler]) -> None:
        self.samplers = samplers

    @classmethod
    def from_config(cls, config: Config, store: SnapshotStore) -> "SamplerGroup":
        """Build the standard CPU, load, memory and interface samplers."""
        return cls(
            [
                CpuSampler(
                    store,
                    interval=config.cpu_interval,
                    read_line=lambda: sources.read_first_line(config.stat_path),
                    retry_delay=config.cpu_retry_delay,
                ),
                LoadSampler(
                    store,
                    interval=config.load_interval,
                    read_line=lambda: sources.read_first_line(config.loadavg_path),
                ),
                MemorySampler(store, interval=config.memory_interval),
                NetIfSampler(store, interval=config.netif_interval, capacity=config.max_interfaces),
            ]
        )

    @property
    def is_running(self) -> bool:
        """True while any sampler thread is alive."""
        return any(sampler.is_running for sampler in self.samplers)

    def start(self) -> None:
        """Start every sampler."""
        for sampler in self.samplers:
            sampler.start()
        logger.info("Started %d samplers", len(self.samplers))

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal every sampler to stop, then wait for each."""
        for sampler in self.samplers:
            sampler.request_stop()
        for sampler in self.samplers:
            sampler.stop(timeout=timeout)
        logger.info("Stopped samplers")
