"""
Project lock for ghpm.

Uses flock so that two ghpm processes never interleave the
load -> transition -> save sequence on the same state directory.
"""

import atexit
import fcntl
import os
import signal
import sys
import time
from contextlib import contextmanager
from pathlib import Path


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


DEFAULT_LOCK_TIMEOUT = 30

# Poll interval while waiting for a held lock (seconds)
LOCK_POLL_INTERVAL = 0.2


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str):
    """
    Internal helper to acquire a file lock.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = open(lock_file, 'w')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start > timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(LOCK_POLL_INTERVAL)

    def cleanup():
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
            fd.close()
        except (OSError, ValueError):
            pass

    atexit.register(cleanup)
    original_sigterm = signal.signal(signal.SIGTERM, lambda *_: sys.exit(1))

    try:
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        atexit.unregister(cleanup)
        signal.signal(signal.SIGTERM, original_sigterm)
        cleanup()


def project_lock_path(state_dir: Path) -> Path:
    return state_dir / "locks" / "project.lock"


@contextmanager
def project_lock(state_dir: Path, timeout: float = DEFAULT_LOCK_TIMEOUT):
    """
    Acquire the project lock, yield, release on exit.

    Note: lock files are never deleted. Deleting creates a race where two
    processes hold "exclusive" locks on different inodes with the same path.
    """
    with _acquire_lock(project_lock_path(state_dir), timeout, "project lock"):
        yield
