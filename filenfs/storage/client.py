"""Module with the storage session that the filesystem adapter delegates all I/O to."""

from __future__ import annotations

from typing import Any, BinaryIO, Iterator, List, Optional, Tuple

import semver

from filenfs.constants import DEFAULT_CHUNK_SIZE, PROTOCOL_VERSION
from filenfs.errors import AuthError
from filenfs.logger import log
from filenfs.storage.common import (
    Capabilities,
    Chunk,
    DirectoryRecord,
    FileRecord,
    UploadMetadata,
)


def _check_chunk_size(chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValueError(f"chunk size must be positive, not {chunk_size}")

    return chunk_size


class StorageClient:
    """
    Session with a storage service on behalf of a single account.

    The service is either a StorageService instance or an rpc.Client for one, since
    both expose the same calls. This class turns those primitive calls into the
    operations the filesystem adapter works with: identifier lookups, listings and
    streaming transfers.

    The client keeps no state other than the session itself, so it can be shared by
    any number of threads as long as the service can.
    """

    def __init__(self, service: Any, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        """Instantiate a client that is not logged in yet."""
        self._service = service
        self._chunk_size = _check_chunk_size(chunk_size)

        self._root: Optional[str] = None
        self._capabilities: Optional[Capabilities] = None

    @classmethod
    def connect(
        cls,
        service: Any,
        email: str,
        password: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> StorageClient:
        """Instantiate a client and log in."""
        client = cls(service, chunk_size)
        client.login(email, password)

        return client

    def login(self, email: str, password: str) -> None:
        """
        Establish the session.

        The major protocol version of the service must match ours, after which the
        account credentials are checked.
        """
        remote_protocol = semver.VersionInfo.parse(self._service.protocol_version())
        local_protocol = semver.VersionInfo.parse(PROTOCOL_VERSION)

        if remote_protocol.major != local_protocol.major:
            raise AuthError(
                f"incompatible protocol ({remote_protocol} != {local_protocol})"
            )

        self._service.authenticate(email, password)

        self._root = self._service.root_uuid()
        self._capabilities = self._service.capabilities()

        log.info(f"storage session established for {email}")

    def close(self) -> None:
        """
        End the session.

        The connection to the service is closed too if the service has one, like an
        rpc.Client does.
        """
        self._root = None
        self._capabilities = None

        close = getattr(self._service, "close", None)

        if close is not None:
            close()

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def root(self) -> str:
        """Return the identifier of the account's root directory."""
        if self._root is None:
            raise AuthError("not logged in")

        return self._root

    def capabilities(self) -> Capabilities:
        if self._capabilities is None:
            raise AuthError("not logged in")

        return self._capabilities

    #
    # Metadata
    #

    def find_directory(self, parent: str, name: str) -> Optional[DirectoryRecord]:
        return self._service.find_directory(parent, name)

    def find_file(self, parent: str, name: str) -> Optional[FileRecord]:
        return self._service.find_file(parent, name)

    def list_children(
        self, uuid: str
    ) -> Tuple[List[FileRecord], List[DirectoryRecord]]:
        files, directories = self._service.read_directory(uuid)
        return files, directories

    def set_modified(self, uuid: str, last_modified: float) -> FileRecord:
        return self._service.set_file_modified(uuid, last_modified)

    #
    # Structure
    #

    def create_directory(self, parent: str, name: str) -> DirectoryRecord:
        return self._service.create_directory(parent, name)

    def remove_directory(self, uuid: str) -> None:
        self._service.remove_directory(uuid)

    def remove_file(self, uuid: str) -> None:
        self._service.remove_file(uuid)

    #
    # Transfers
    #

    def download_stream(
        self, record: FileRecord, chunk_size: Optional[int] = None
    ) -> Iterator[bytes]:
        """
        Lazily download the contents of a file chunk by chunk.

        Nothing is requested from the service until the first chunk is consumed. The
        download handle is released when the contents are exhausted or the generator
        is closed early.
        """
        if chunk_size is None:
            chunk_size = self._chunk_size

        return self._download_chunks(record, _check_chunk_size(chunk_size))

    def _download_chunks(self, record: FileRecord, chunk_size: int) -> Iterator[bytes]:
        handle = self._service.open_download(record.uuid)

        try:
            while True:
                chunk = self._service.read_chunk(handle, chunk_size)

                if chunk is None:
                    return

                yield chunk.data
        finally:
            self._service.close_download(handle)

    def upload_stream(
        self,
        reader: BinaryIO,
        metadata: UploadMetadata,
        chunk_size: Optional[int] = None,
    ) -> FileRecord:
        """
        Upload everything the reader produces as a new file.

        The contents are staged by the service and only become visible once the whole
        stream has been read. If reading or transferring fails, the upload is aborted
        and the error is raised again.
        """
        if chunk_size is None:
            chunk_size = self._chunk_size

        _check_chunk_size(chunk_size)

        handle = self._service.begin_upload(metadata)

        try:
            while True:
                data = reader.read(chunk_size)

                if not data:
                    break

                self._service.write_chunk(handle, Chunk.from_data(data))

            return self._service.commit_upload(handle)
        except BaseException:
            self._abort_upload(handle, metadata)
            raise

    def _abort_upload(self, handle: int, metadata: UploadMetadata) -> None:
        log.debug(f"aborting upload of {metadata.name}")

        try:
            self._service.abort_upload(handle)
        except Exception as e:
            # The original failure is more relevant to the caller
            log.error(f"failed to abort upload of {metadata.name}: {e}")
