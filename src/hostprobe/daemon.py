"""Detach the process from its controlling terminal."""

import os
import signal
import sys


def _fork_and_exit_parent() -> None:
    try:
        pid = os.fork()
    except OSError as e:
        sys.exit(f"fork failed: {e}")
    if pid > 0:
        os._exit(0)


def daemonize(workdir: str = "/") -> None:
    """
    Turn the current process into a daemon.

    Double-forks around setsid() so the daemon is not a session leader and
    cannot reacquire a terminal, ignores SIGHUP and SIGCHLD, resets the umask
    and working directory, and points the standard streams at /dev/null.
    Call before starting any threads.
    """
    _fork_and_exit_parent()

    os.setsid()
    signal.signal(signal.SIGCHLD, signal.SIG_IGN)
    signal.signal(signal.SIGHUP, signal.SIG_IGN)

    _fork_and_exit_parent()

    os.umask(0)
    os.chdir(workdir)

    sys.stdout.flush()
    sys.stderr.flush()
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    if devnull > 2:
        os.close(devnull)
