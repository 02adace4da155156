"""Module with the filesystem that exposes the remote store through virtual paths."""

from __future__ import annotations

import datetime
import posixpath
import threading
from typing import FrozenSet, List, Optional

from filenfs.constants import BACKEND_NAME, PRECISION_SECONDS
from filenfs.errors import AlreadyExistsError, NotFoundError, UnsupportedError
from filenfs.filesystem.common import clean_remote, Features, ObjectInfo
from filenfs.filesystem.listing import read_entries
from filenfs.filesystem.objects import DirEntry, File
from filenfs.filesystem.resolver import PathResolver
from filenfs.filesystem.streaming import Source, upload
from filenfs.logger import log
from filenfs.storage import StorageClient


class Filesystem:
    """
    Filesystem view of the remote store below a root prefix.

    All paths passed to its methods are virtual paths relative to the root, using
    slashes as separators. The filesystem owns the cache of directory identifiers and
    can be used by multiple threads at once.
    """

    def __init__(self, name: str, root: str, client: StorageClient) -> None:
        """Instantiate a filesystem for a logged in storage client."""
        self._name = name
        self._root = clean_remote(root)
        self._client = client

        self._resolver = PathResolver(client, self._root)

    def __str__(self) -> str:
        return f"{BACKEND_NAME} root '{self._root}'"

    @property
    def name(self) -> str:
        return self._name

    @property
    def root(self) -> str:
        return self._root

    @property
    def client(self) -> StorageClient:
        return self._client

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    def precision(self) -> datetime.timedelta:
        return datetime.timedelta(seconds=PRECISION_SECONDS)

    def hashes(self) -> FrozenSet[str]:
        """Return the hash kinds that the remote store provides for files."""
        return frozenset(self._client.capabilities().hash_types)

    def features(self) -> Features:
        capabilities = self._client.capabilities()

        return Features(
            hashes=frozenset(capabilities.hash_types),
            can_set_mod_time=capabilities.set_modified,
        )

    #
    # Listing and lookup
    #

    def list(self, remote_dir: str = "") -> List[DirEntry]:
        """
        List the entries of a directory.

        The directory (and any missing parents) is created if it doesn't exist yet.
        """
        remote_dir = clean_remote(remote_dir)
        uuid = self._resolver.resolve(remote_dir, create_intermediate=True)

        with self._resolver.invalidating(remote_dir):
            return read_entries(self, uuid, remote_dir)

    def new_object(self, remote: str) -> File:
        """Look up the file at the given virtual path, or raise NotFoundError."""
        remote = clean_remote(remote)
        parent, name = posixpath.split(remote)

        if not name:
            raise NotFoundError("the root is not a file")

        parent_uuid = self._resolver.resolve(parent)

        with self._resolver.invalidating(parent):
            record = self._client.find_file(parent_uuid, name)

        if record is None:
            raise NotFoundError(f"object not found: {remote}")

        return File(self, record, remote)

    #
    # Modification
    #

    def put(
        self,
        source: Source,
        info: ObjectInfo,
        cancel: Optional[threading.Event] = None,
    ) -> File:
        """
        Upload a new file, replacing any existing file at the same path.

        Missing parent directories are created.
        """
        remote = clean_remote(info.remote)
        parent, name = posixpath.split(remote)

        if not name:
            raise AlreadyExistsError("the root is a directory")

        parent_uuid = self._resolver.resolve(parent, create_intermediate=True)

        with self._resolver.invalidating(parent):
            record = upload(
                self._client,
                parent_uuid,
                name,
                source,
                mod_time=info.mod_time,
                size=info.size,
                cancel=cancel,
            )

        return File(self, record, remote)

    def mkdir(self, remote_dir: str) -> None:
        """Create a directory and its parents, succeeding if it already exists."""
        remote_dir = clean_remote(remote_dir)

        # A cached identifier doesn't prove that the directory still exists
        self._resolver.invalidate(remote_dir)
        self._resolver.resolve(remote_dir, create_intermediate=True)

    def rmdir(self, remote_dir: str) -> None:
        """
        Remove an empty directory, succeeding if it doesn't exist.

        Raises DirectoryNotEmptyError if it still has children.
        """
        remote_dir = clean_remote(remote_dir)

        try:
            uuid = self._resolver.resolve(remote_dir)
        except NotFoundError:
            log.debug(f"not removing {remote_dir}, it doesn't exist")
            return

        if uuid == self._client.root():
            raise UnsupportedError("the root directory can't be removed")

        try:
            self._client.remove_directory(uuid)
        except NotFoundError:
            log.debug(f"{remote_dir} was already removed")

        self._resolver.invalidate(remote_dir)

    def close(self) -> None:
        """Close the storage session, after which the filesystem can't be used."""
        self._client.close()
