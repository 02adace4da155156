"""
Module with the entries that listings are made of.

An entry is either a Directory or a File. Both are snapshots of the remote state at the
time they were listed or looked up, not live handles. They share the metadata accessors
of Entry, while only files can be opened, updated and removed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime
import posixpath
import threading
from typing import Optional, TYPE_CHECKING, Union

from filenfs.errors import UnsupportedError
from filenfs.filesystem.common import ObjectInfo, to_datetime
from filenfs.filesystem.streaming import DownloadStream, Source, upload
from filenfs.logger import log
from filenfs.storage import DirectoryRecord, FileRecord

if TYPE_CHECKING:
    from filenfs.filesystem.filesystem import Filesystem


class Entry:
    """Metadata shared by directories and files."""

    fs: Filesystem
    remote: str

    def __str__(self) -> str:
        return self.remote

    @property
    def name(self) -> str:
        return posixpath.basename(self.remote)

    @property
    def parent(self) -> str:
        """Return the virtual path of the directory containing this entry."""
        return posixpath.dirname(self.remote)


@dataclass(frozen=True)
class Directory(Entry):
    """
    Directory entry.

    The size and number of items of a directory are not known without listing it
    recursively, so they are None rather than zero.
    """

    fs: Filesystem = field(repr=False, compare=False)
    id: str
    remote: str
    created: datetime.datetime
    size: Optional[int] = None
    items: Optional[int] = None

    @staticmethod
    def from_record(fs: Filesystem, record: DirectoryRecord, remote: str) -> Directory:
        return Directory(
            fs=fs, id=record.uuid, remote=remote, created=to_datetime(record.created)
        )

    @property
    def mod_time(self) -> datetime.datetime:
        """
        Return the creation time of the directory.

        The remote store doesn't track modification times of directories, so this is
        only an approximation.
        """
        return self.created


class File(Entry):
    """File entry, which can be opened, updated and removed."""

    def __init__(self, fs: Filesystem, record: FileRecord, remote: str) -> None:
        """Instantiate an entry for a file record at the given virtual path."""
        self.fs = fs
        self.remote = remote
        self._record = record

    def __repr__(self) -> str:
        return f"File(remote={self.remote!r}, id={self.id!r}, size={self.size})"

    @property
    def record(self) -> FileRecord:
        return self._record

    @property
    def id(self) -> str:
        return self._record.uuid

    @property
    def size(self) -> int:
        return self._record.size

    @property
    def mod_time(self) -> datetime.datetime:
        return to_datetime(self._record.last_modified)

    def storable(self) -> bool:
        return True

    def hash(self, kind: str) -> str:
        """
        Return the hex digest of the contents for the given hash kind.

        Raises UnsupportedError if the filesystem doesn't declare the kind, or if the
        remote store has no hash for this particular file.
        """
        if kind not in self.fs.hashes():
            raise UnsupportedError(f"hash type {kind} is not supported")

        if not self._record.hash:
            raise UnsupportedError(f"no {kind} hash available for {self.remote}")

        return self._record.hash

    def set_mod_time(self, mod_time: datetime.datetime) -> None:
        if not self.fs.features().can_set_mod_time:
            raise UnsupportedError("setting the modification time is not supported")

        self._record = self.fs.client.set_modified(self.id, mod_time.timestamp())

    def open(
        self,
        cancel: Optional[threading.Event] = None,
        chunk_size: Optional[int] = None,
    ) -> DownloadStream:
        """
        Open the contents of the file for streamed reading.

        Nothing is transferred until the stream is read from. Close the stream (or use
        it as a context manager) to release the download if it isn't read until the
        end.
        """
        chunks = self.fs.client.download_stream(self._record, chunk_size)
        return DownloadStream(chunks, cancel)

    def update(
        self,
        source: Source,
        info: Optional[ObjectInfo] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """
        Replace the contents of the file.

        The new contents are streamed to a staged upload that replaces the file when it
        completes. If anything fails before that, the previous contents remain.
        """
        parent = self.fs.resolver.resolve(self.parent)

        with self.fs.resolver.invalidating(self.parent):
            self._record = upload(
                self.fs.client,
                parent,
                self.name,
                source,
                mod_time=info.mod_time if info else None,
                size=info.size if info else None,
                cancel=cancel,
            )

        log.debug(f"updated {self.remote}")

    def remove(self) -> None:
        self.fs.client.remove_file(self.id)
        self.fs.resolver.invalidate(self.remote)

        log.debug(f"removed {self.remote}")


DirEntry = Union[Directory, File]
