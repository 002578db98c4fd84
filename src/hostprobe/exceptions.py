"""Exceptions raised by hostprobe."""


class HostProbeError(Exception):
    """Base class for hostprobe errors."""


class SampleError(HostProbeError):
    """A sampler could not produce a measurement this cycle."""


class SourceError(SampleError):
    """A raw metric source could not be read."""


class ParseError(SampleError):
    """A raw metric line did not have the expected shape."""


class ZeroDeltaError(SampleError):
    """Two CPU counter samples were identical, so no percentage exists."""


class BodyTooLarge(HostProbeError):
    """A rendered response body exceeds the configured capacity."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"response body of {size} bytes exceeds limit of {limit}")
        self.size = size
        self.limit = limit
