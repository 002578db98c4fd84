"""Shared fixtures for hostprobe tests."""

import logging

import pytest

from hostprobe.models import CpuUtilization, LoadAverage, MemoryInfo, NetInterface, Snapshot


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logger() so log records keep reaching caplog."""
    yield
    logger = logging.getLogger("hostprobe")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def snapshot() -> Snapshot:
    """A fully populated snapshot."""
    return Snapshot(
        cores=4,
        cpu=CpuUtilization(user=12.34, nice=0.5, system=7.25, idle=78.91, iowait=1.0),
        load=LoadAverage(0.10, 0.20, 0.30),
        memory=MemoryInfo(total_ram=16384, free_ram=8192, mem_unit=1, procs=212, uptime=90061),
        interfaces=(NetInterface("lo", "127.0.0.1"), NetInterface("eth0", "192.168.1.10")),
        generation=7,
    )
