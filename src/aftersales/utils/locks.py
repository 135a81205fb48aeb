"""Per-key mutual exclusion for read-check-write sequences.

A `StripedLock` owns a fixed pool of `threading.Lock`s and maps each key
(a wallet owner id) onto one of them, so writers on the same key always
serialize while most writers on different keys proceed in parallel. The
pool never grows, however many keys pass through it.
"""

import threading
import zlib
from contextlib import contextmanager

DEFAULT_STRIPES = 64


class StripedLock:
    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        if stripes < 1:
            raise ValueError("StripedLock needs at least one stripe")
        self._locks = tuple(threading.Lock() for _ in range(stripes))

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key) -> threading.Lock:
        # crc32 rather than hash() so a key lands on the same stripe in every process
        return self._locks[zlib.crc32(str(key).encode()) % len(self._locks)]

    @contextmanager
    def hold(self, key):
        with self.lock_for(key):
            yield
