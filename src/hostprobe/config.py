"""Configuration for hostprobe."""

from dataclasses import dataclass, fields

import yaml

from hostprobe.router import DEFAULT_MAX_INTERFACES, body_capacity

DEFAULT_PORT = 7337
MIN_INTERVAL = 0.1


@dataclass
class Config:
    """Runtime configuration: listener, buffers, cadences and sources."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    backlog: int = 5
    recv_buffer: int = 1024
    max_body_bytes: int | None = None
    max_interfaces: int = DEFAULT_MAX_INTERFACES
    max_connections: int | None = None
    socket_timeout: float | None = None
    cpu_interval: float = 3.0
    cpu_retry_delay: float = 0.1
    load_interval: float = 1.0
    memory_interval: float = 1.0
    netif_interval: float = 1.0
    stat_path: str = "/proc/stat"
    loadavg_path: str = "/proc/loadavg"
    log_level: str = "INFO"
    log_file: str | None = None

    def __post_init__(self):
        """Fix invalid values."""
        if not 0 <= self.port <= 65535:
            self.port = DEFAULT_PORT
        if self.backlog <= 0:
            self.backlog = 5
        if self.recv_buffer <= 0:
            self.recv_buffer = 1024
        if self.max_interfaces <= 0:
            self.max_interfaces = DEFAULT_MAX_INTERFACES
        # The body limit must fit a full interface list of worst-case entries.
        capacity = body_capacity(self.max_interfaces)
        if self.max_body_bytes is None or self.max_body_bytes < capacity:
            self.max_body_bytes = capacity
        if self.max_connections is not None and self.max_connections <= 0:
            self.max_connections = None
        if self.socket_timeout is not None and self.socket_timeout <= 0:
            self.socket_timeout = None
        for name in ("cpu_interval", "load_interval", "memory_interval", "netif_interval"):
            if getattr(self, name) < MIN_INTERVAL:
                setattr(self, name, MIN_INTERVAL)
        if self.cpu_retry_delay < 0:
            self.cpu_retry_delay = 0.0


class ConfigManager:
    """Configuration loading and management."""

    @staticmethod
    def load_config(config_path: str | None = None, **overrides) -> Config:
        """
        Load configuration from a YAML file, then apply overrides.

        Overrides whose value is None are ignored so unset CLI flags keep the
        file (or default) value. Unknown keys raise ValueError.
        """
        data = {}
        if config_path:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"{config_path}: top level must be a mapping")

        data.update({key: value for key, value in overrides.items() if value is not None})

        known = {f.name for f in fields(Config)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        return Config(**data)
