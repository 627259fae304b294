# native_crash.py
import logging
import os
import time
from typing import Callable, FrozenSet, Optional

log = logging.getLogger(__name__)

TOMBSTONE_PREFIX = "tombstone_"
NUM_READ_TOMBSTONE_RETRIES = 5
TOMBSTONE_RETRY_INTERVAL = 1.0


class NativeCrashPoller:
    """Spots new crash artifacts in a directory by diffing mtime snapshots.

    The first poll only records a baseline. Later polls report an artifact
    whose mtime was not in the previous snapshot, once its size has settled.
    """

    def __init__(self, directory, prefix: str = TOMBSTONE_PREFIX,
                 retries: int = NUM_READ_TOMBSTONE_RETRIES,
                 interval: float = TOMBSTONE_RETRY_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep):
        self.directory = os.fspath(directory)
        self.prefix = prefix
        self.retries = retries
        self.interval = interval
        self._sleep = sleep
        self.snapshot: Optional[FrozenSet[int]] = None
        self.found = []

    def poll(self) -> bool:
        try:
            names = sorted(os.listdir(self.directory))
        except FileNotFoundError:
            names = []
        except OSError as e:
            log.error("Failed to list %s: %s", self.directory, e)
            return False

        baseline = self.snapshot is None
        previous = self.snapshot or frozenset()
        current = set()
        result = False
        for name in names:
            if not name.startswith(self.prefix):
                continue
            path = os.path.join(self.directory, name)
            try:
                mtime = os.stat(path).st_mtime_ns
            except OSError:
                # removed between listdir and stat
                continue
            current.add(mtime)
            if baseline or mtime in previous:
                continue
            size = self.wait_until_written(path)
            if size:
                log.info("** New tombstone found: %s, size: %d", path, size)
                self.found.append(path)
                result = True

        self.snapshot = frozenset(current)
        return result

    def wait_until_written(self, path) -> Optional[int]:
        """The settled size once the file is non-empty and stopped growing, else None."""
        try:
            for _ in range(self.retries):
                size = os.path.getsize(path)
                self._sleep(self.interval)
                if size > 0 and os.path.getsize(path) == size:
                    return size
        except OSError as e:
            log.error("Failed to get tombstone file size: %s", e)
            return None
        log.error("Incomplete tombstone file: %s", path)
        return None
