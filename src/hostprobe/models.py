"""Data models for hostprobe."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class CpuUtilization:
    """CPU time split over one sampling window, as percentages."""

    user: float = 0.0
    nice: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    iowait: float = 0.0

    @property
    def total(self) -> float:
        return self.user + self.nice + self.system + self.idle + self.iowait


@dataclass(slots=True, frozen=True)
class LoadAverage:
    """System load averages over 1, 5 and 15 minutes."""

    one: float = 0.0
    five: float = 0.0
    fifteen: float = 0.0


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """Memory quantities in kilobytes, plus process count and uptime."""

    total_ram: int = 0
    free_ram: int = 0
    shared_ram: int = 0
    buffer_ram: int = 0
    total_swap: int = 0
    free_swap: int = 0
    total_high: int = 0
    free_high: int = 0
    mem_unit: int = 0
    procs: int = 0
    uptime: int = 0  # Seconds


@dataclass(slots=True, frozen=True)
class NetInterface:
    """A network interface with an assigned IPv4 address."""

    name: str
    ipv4: str


@dataclass(slots=True, frozen=True)
class Snapshot:
    """
    Immutable view of every metric family at one generation.

    A new Snapshot is built for every update and published whole, so a
    reader holding one never sees fields from two different generations.
    """

    cores: int = 0
    cpu: CpuUtilization = field(default_factory=CpuUtilization)
    load: LoadAverage = field(default_factory=LoadAverage)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    interfaces: tuple[NetInterface, ...] = ()
    generation: int = 0
