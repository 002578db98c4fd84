"""Thread-safe publication of metric snapshots."""

import threading
from dataclasses import replace

from hostprobe.models import Snapshot


class SnapshotStore:
    """
    Holds the latest Snapshot and publishes new generations atomically.

    Writers build a new immutable Snapshot and swap the reference under a
    lock, so concurrent samplers never lose each other's families. Readers
    call current() without locking and always get one complete generation.
    """

    def __init__(self, cores: int) -> None:
        """
        Initialize the store with a zero-valued snapshot.

        Args:
            cores: Number of CPU cores, fixed for the life of the store.
        """
        self._lock = threading.Lock()
        self._current = Snapshot(cores=cores)

    def current(self) -> Snapshot:
        """Get the latest published snapshot."""
        return self._current

    def publish(self, snapshot: Snapshot) -> Snapshot:
        """
        Replace the current snapshot wholesale.

        The snapshot is re-stamped with the next generation number; its core
        count must match the store's.
        """
        with self._lock:
            if snapshot.cores != self._current.cores:
                raise ValueError("core count is fixed at startup")
            published = replace(snapshot, generation=self._current.generation + 1)
            self._current = published
            return published

    def update(self, **families) -> Snapshot:
        """
        Publish a copy of the current snapshot with some families replaced.

        Args:
            **families: Any of ``cpu``, ``load``, ``memory``, ``interfaces``.

        Returns:
            The newly published snapshot.
        """
        if "cores" in families or "generation" in families:
            raise ValueError("cores and generation cannot be updated")
        if "interfaces" in families:
            families["interfaces"] = tuple(families["interfaces"])

        with self._lock:
            published = replace(
                self._current,
                generation=self._current.generation + 1,
                **families,
            )
            self._current = published
            return published
