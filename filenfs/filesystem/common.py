"""Data structures and helpers used by multiple filesystem adapter components."""

from __future__ import annotations

import collections
from contextlib import contextmanager
from dataclasses import dataclass, field
import datetime
import posixpath
import threading
from typing import Any, Dict, FrozenSet, Iterator, Optional


@dataclass
class ObjectInfo:
    """
    Description of an object that is about to be uploaded.

    The remote is the virtual path relative to the filesystem root. If the size is
    known upfront it is verified against the number of bytes actually read. Without a
    modification time the time of the upload is used.
    """

    remote: str
    mod_time: Optional[datetime.datetime] = None
    size: Optional[int] = None


@dataclass(frozen=True)
class Features:
    """Optional capabilities that a filesystem declares."""

    hashes: FrozenSet[str] = field(default_factory=frozenset)
    can_set_mod_time: bool = False
    can_move: bool = False
    precise_dir_size: bool = False


def clean_remote(remote: str) -> str:
    """
    Normalize a virtual path to its canonical form relative to a root.

    Redundant separators and dots are removed, as are leading and trailing slashes.
    Parent references can't escape the root.
    """
    return posixpath.normpath("/" + remote).lstrip("/")


def to_datetime(timestamp: float) -> datetime.datetime:
    """Convert seconds since the epoch to an aware UTC datetime."""
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc)


class LockIndex:
    """
    Collection of mutexes to lock critical sections by arbitrary values.

    Its use case is to lock critical sections based on unpredictable input values, like
    the virtual paths of directories that are being resolved. Locks are automatically
    garbage collected when no longer in use (no threads in the critical section and
    none waiting to enter).
    """

    def __init__(self) -> None:
        """Instantiate a LockIndex."""
        self._global_lock = threading.Lock()

        self._locks: Dict[Any, threading.Lock] = collections.defaultdict(threading.Lock)
        self._lock_users: Dict[Any, int] = collections.defaultdict(int)

    @contextmanager
    def lock(self, key: Any) -> Iterator[None]:
        """Lock a critical section based on the specified key."""
        with self._global_lock:
            self._lock_users[key] += 1
            lock = self._locks[key]

        try:
            with lock:
                yield
        finally:
            with self._global_lock:
                self._lock_users[key] -= 1

                if self._lock_users[key] == 0:
                    del self._lock_users[key]
                    del self._locks[key]

    @property
    def lock_count(self) -> int:
        """Return the number of locks currently in use."""
        with self._global_lock:
            return len(self._locks)
