"""Module that maps virtual paths to identifiers in the remote store."""

from contextlib import contextmanager
import posixpath
from typing import Dict, Iterator, List, Optional

import fasteners

from filenfs.errors import AlreadyExistsError, NotFoundError
from filenfs.filesystem.common import clean_remote, LockIndex
from filenfs.logger import log
from filenfs.storage import DirectoryRecord, StorageClient


class StaleIdentifierError(NotFoundError):
    """A cached directory identifier is no longer known to the remote store."""


class PathCache:
    """
    Thread safe mapping of absolute directory paths to their identifiers.

    Lookups vastly outnumber insertions and invalidations, so the mapping is guarded by
    a reader/writer lock. A lookup that races with an invalidation may still return the
    old identifier.
    """

    def __init__(self) -> None:
        """Instantiate an empty cache."""
        self._entries: Dict[str, str] = {}
        self._lock = fasteners.ReaderWriterLock()

    def __len__(self) -> int:
        with self._lock.read_lock():
            return len(self._entries)

    def __contains__(self, path: str) -> bool:
        with self._lock.read_lock():
            return path in self._entries

    def get(self, path: str) -> Optional[str]:
        with self._lock.read_lock():
            return self._entries.get(path)

    def put(self, path: str, uuid: str) -> None:
        with self._lock.write_lock():
            self._entries[path] = uuid

    def invalidate(self, path: str) -> List[str]:
        """Forget the identifiers of a path and everything below it."""
        prefix = path.rstrip("/") + "/"

        with self._lock.write_lock():
            stale = [p for p in self._entries if p == path or p.startswith(prefix)]

            for p in stale:
                del self._entries[p]

        return stale


class PathResolver:
    """
    Resolves virtual directory paths to identifiers, one path segment at a time.

    Every resolved segment is cached, so resolving /a/b/c also makes /a and /a/b
    available without further calls. Segments are looked up under a per-path lock to
    make sure that concurrent resolutions that create missing directories don't end up
    creating the same directory twice.
    """

    def __init__(self, client: StorageClient, root: str) -> None:
        """Instantiate a resolver for paths below the given root prefix."""
        self._client = client
        self._root = clean_remote(root)

        self._cache = PathCache()
        self._locks = LockIndex()

    @property
    def cache(self) -> PathCache:
        return self._cache

    def absolute(self, remote: str) -> str:
        """Prepend the root prefix to a virtual path."""
        return posixpath.normpath(posixpath.join("/", self._root, clean_remote(remote)))

    def resolve(self, remote: str, create_intermediate: bool = False) -> str:
        """
        Return the identifier of the directory at the given virtual path.

        Missing directories along the way are created if create_intermediate is set,
        otherwise NotFoundError is raised. If a cached directory along the way was
        removed elsewhere, the path is resolved once more without the cache.
        """
        path = self.absolute(remote)

        cached = self._cache.get(path)
        if cached is not None:
            return cached

        try:
            return self._walk(path, create_intermediate)
        except StaleIdentifierError as e:
            # Everything cached below the first segment is suspect once a directory
            # turns out to be removed elsewhere
            top = "/" + path.strip("/").split("/")[0]
            log.debug(f"{e}, resolving {path} from the root again")

            self._cache.invalidate(top)

            return self._walk(path, create_intermediate)

    def _walk(self, path: str, create: bool) -> str:
        uuid = self._client.root()
        current = "/"

        for segment in path.strip("/").split("/"):
            if not segment:
                continue

            current = posixpath.join(current, segment)
            uuid = self._resolve_segment(current, uuid, segment, create)

        return uuid

    def remember(self, remote: str, uuid: str) -> None:
        """Cache the identifier of a directory that was discovered otherwise."""
        self._cache.put(self.absolute(remote), uuid)

    def invalidate(self, remote: str) -> None:
        """Forget cached identifiers at and below a virtual path."""
        stale = self._cache.invalidate(self.absolute(remote))

        if stale:
            log.debug(f"invalidated cached identifiers {stale}")

    @contextmanager
    def invalidating(self, remote: str) -> Iterator[None]:
        """
        Forget the cached identifier of a directory if the store no longer knows it.

        Wraps calls that pass the identifier of remote to the store. A NotFoundError is
        raised again after the identifier has been forgotten, so the next resolution
        of remote looks it up again.
        """
        try:
            yield
        except NotFoundError:
            self.invalidate(remote)
            raise

    def _resolve_segment(
        self, path: str, parent: str, name: str, create: bool
    ) -> str:
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        with self._locks.lock(path):
            # Another thread may have resolved it while we were waiting for the lock
            cached = self._cache.get(path)
            if cached is not None:
                return cached

            try:
                directory = self._client.find_directory(parent, name)

                if directory is None and create:
                    directory = self._create_directory(path, parent, name)
            except NotFoundError:
                raise StaleIdentifierError(
                    f"cached directory {posixpath.dirname(path)} no longer exists"
                )

            if directory is None:
                raise NotFoundError(f"directory not found: {path}")

            log.debug(f"resolved {path} to {directory.uuid}")
            self._cache.put(path, directory.uuid)

            return directory.uuid

    def _create_directory(self, path: str, parent: str, name: str) -> DirectoryRecord:
        log.debug(f"creating directory {path}")

        try:
            return self._client.create_directory(parent, name)
        except AlreadyExistsError:
            # Created by another client in the meantime, unless the name is a file
            directory = self._client.find_directory(parent, name)

            if directory is None:
                raise

            return directory
