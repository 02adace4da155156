"""
Module with an identifier-addressed object store that can be exposed as an RPC service.

It plays the role of the remote account: every file and directory is addressed by a
uuid, names are only unique among the children of a directory, and file contents are
transferred in chunks through download and upload handles. Uploads are staged per
handle and only become visible when committed, so an aborted upload leaves no trace.
"""

from dataclasses import dataclass, field, replace
import hashlib
import itertools
import threading
import time
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from filenfs.constants import PROTOCOL_VERSION
from filenfs.errors import (
    AlreadyExistsError,
    AuthError,
    DirectoryNotEmptyError,
    NotFoundError,
    UnsupportedError,
)
from filenfs.logger import log
from filenfs.storage.common import (
    Capabilities,
    Chunk,
    DirectoryRecord,
    FileRecord,
    UploadMetadata,
)


@dataclass
class _Download:
    data: bytes
    offset: int = 0


@dataclass
class _Upload:
    metadata: UploadMetadata
    parts: List[bytes] = field(default_factory=list)
    hasher: Any = field(default_factory=hashlib.sha256)


class StorageService:
    """RPC service that stores files and directories in memory."""

    HASH_TYPE = "sha256"

    def __init__(self, accounts: Dict[str, str]):
        """Instantiate an empty store that accepts the given email/password pairs."""
        self._accounts = dict(accounts)

        self._lock = threading.Lock()
        self._handles = itertools.count(1)

        self._root = DirectoryRecord(
            uuid=str(uuid4()), parent=None, name="", created=time.time()
        )
        self._directories: Dict[str, DirectoryRecord] = {self._root.uuid: self._root}
        self._files: Dict[str, FileRecord] = {}
        self._contents: Dict[str, bytes] = {}

        self._downloads: Dict[int, _Download] = {}
        self._uploads: Dict[int, _Upload] = {}

    #
    # Session
    #

    @staticmethod
    def protocol_version() -> str:
        return PROTOCOL_VERSION

    def authenticate(self, email: str, password: str) -> None:
        if self._accounts.get(email) != password:
            raise AuthError(f"invalid credentials for {email}")

    def capabilities(self) -> Capabilities:
        return Capabilities(hash_types=[self.HASH_TYPE], set_modified=True)

    def root_uuid(self) -> str:
        return self._root.uuid

    #
    # Metadata access
    #

    def find_directory(self, parent: str, name: str) -> Optional[DirectoryRecord]:
        with self._lock:
            self._directory(parent)
            return self._find_directory(parent, name)

    def find_file(self, parent: str, name: str) -> Optional[FileRecord]:
        with self._lock:
            self._directory(parent)
            return self._find_file(parent, name)

    def read_directory(
        self, uuid: str
    ) -> Tuple[List[FileRecord], List[DirectoryRecord]]:
        """Return the files and directories within a directory in creation order."""
        with self._lock:
            self._directory(uuid)

            files = [f for f in self._files.values() if f.parent == uuid]
            directories = [d for d in self._directories.values() if d.parent == uuid]

            return files, directories

    #
    # Structure modification
    #

    def create_directory(self, parent: str, name: str) -> DirectoryRecord:
        with self._lock:
            self._directory(parent)
            self._check_name_free(parent, name)

            directory = DirectoryRecord(
                uuid=str(uuid4()), parent=parent, name=name, created=time.time()
            )
            self._directories[directory.uuid] = directory

            return directory

    def remove_directory(self, uuid: str) -> None:
        with self._lock:
            self._directory(uuid)

            if uuid == self._root.uuid:
                raise UnsupportedError("the root directory can't be removed")

            has_children = any(
                r.parent == uuid
                for r in itertools.chain(
                    self._files.values(), self._directories.values()
                )
            )

            if has_children:
                raise DirectoryNotEmptyError(f"directory {uuid} is not empty")

            del self._directories[uuid]

    def remove_file(self, uuid: str) -> None:
        with self._lock:
            self._file(uuid)

            del self._files[uuid]
            del self._contents[uuid]

    def set_file_modified(self, uuid: str, last_modified: float) -> FileRecord:
        with self._lock:
            record = replace(self._file(uuid), last_modified=last_modified)
            self._files[uuid] = record

            return record

    #
    # File contents
    #

    def open_download(self, uuid: str) -> int:
        """
        Start downloading the contents of a file.

        The download works on a snapshot of the contents at this point, so concurrent
        updates of the file don't affect it.
        """
        with self._lock:
            self._file(uuid)

            handle = next(self._handles)
            self._downloads[handle] = _Download(data=self._contents[uuid])

            return handle

    def read_chunk(self, handle: int, size: int) -> Optional[Chunk]:
        """Read the next chunk of a download, or None at the end of the contents."""
        with self._lock:
            download = self._download(handle)

            data = download.data[download.offset : download.offset + size]
            download.offset += len(data)

        if not data:
            return None

        return Chunk.from_data(data)

    def close_download(self, handle: int) -> None:
        with self._lock:
            self._downloads.pop(handle, None)

    def begin_upload(self, metadata: UploadMetadata) -> int:
        with self._lock:
            self._directory(metadata.parent)

            if self._find_directory(metadata.parent, metadata.name):
                raise AlreadyExistsError(
                    f"a directory named {metadata.name} already exists"
                )

            handle = next(self._handles)
            self._uploads[handle] = _Upload(metadata=metadata)

            return handle

    def write_chunk(self, handle: int, chunk: Chunk) -> None:
        data = chunk.data

        with self._lock:
            upload = self._upload(handle)

            upload.parts.append(data)
            upload.hasher.update(data)

    def commit_upload(self, handle: int) -> FileRecord:
        """
        Make the uploaded contents visible.

        A file with the same name in the same directory is replaced by the new one in a
        single step.
        """
        with self._lock:
            upload = self._upload(handle)
            metadata = upload.metadata

            # The parent may have disappeared while uploading
            self._directory(metadata.parent)

            previous = self._find_file(metadata.parent, metadata.name)

            data = b"".join(upload.parts)
            record = FileRecord(
                uuid=str(uuid4()),
                parent=metadata.parent,
                name=metadata.name,
                size=len(data),
                last_modified=metadata.last_modified,
                created=time.time(),
                hash=upload.hasher.hexdigest(),
            )

            if previous:
                del self._files[previous.uuid]
                del self._contents[previous.uuid]

            self._files[record.uuid] = record
            self._contents[record.uuid] = data

            del self._uploads[handle]

        log.debug(f"committed {metadata.name} ({record.size} bytes) as {record.uuid}")

        return record

    def abort_upload(self, handle: int) -> None:
        with self._lock:
            self._uploads.pop(handle, None)

    #
    # Lookup helpers, only to be called with the lock held
    #

    def _directory(self, uuid: str) -> DirectoryRecord:
        try:
            return self._directories[uuid]
        except KeyError:
            raise NotFoundError(f"directory {uuid} not found")

    def _file(self, uuid: str) -> FileRecord:
        try:
            return self._files[uuid]
        except KeyError:
            raise NotFoundError(f"file {uuid} not found")

    def _download(self, handle: int) -> _Download:
        try:
            return self._downloads[handle]
        except KeyError:
            raise NotFoundError(f"no download with handle {handle}")

    def _upload(self, handle: int) -> _Upload:
        try:
            return self._uploads[handle]
        except KeyError:
            raise NotFoundError(f"no upload with handle {handle}")

    def _find_directory(self, parent: str, name: str) -> Optional[DirectoryRecord]:
        for directory in self._directories.values():
            if directory.parent == parent and directory.name == name:
                return directory

        return None

    def _find_file(self, parent: str, name: str) -> Optional[FileRecord]:
        for record in self._files.values():
            if record.parent == parent and record.name == name:
                return record

        return None

    def _check_name_free(self, parent: str, name: str) -> None:
        if self._find_directory(parent, name) or self._find_file(parent, name):
            raise AlreadyExistsError(f"{name} already exists in directory {parent}")
