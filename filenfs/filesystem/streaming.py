"""
Module that bridges generic readers and writers to chunked transfers.

Neither direction ever holds more than a chunk of the contents in memory. Downloads
only fetch the next chunk once the consumer has read the previous one, and uploads only
read the next chunk from the source once the previous one has been sent.
"""

import datetime
import io
import threading
from typing import BinaryIO, Generator, Iterable, Iterator, Optional, Union

from filenfs.errors import CancelledError, TransportError
from filenfs.logger import log
from filenfs.storage import FileRecord, StorageClient, UploadMetadata

Source = Union[bytes, bytearray, memoryview, BinaryIO, Iterable[bytes]]


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    """Raise CancelledError if the caller has requested cancellation."""
    if cancel is not None and cancel.is_set():
        raise CancelledError("transfer cancelled")


class DownloadStream(io.RawIOBase):
    """
    Read-only, non-seekable stream over the chunks of a download.

    The chunks come from a generator that holds the download handle on the service.
    Closing the stream closes the generator, which releases the handle even if the
    contents were not read completely. The cancellation event is checked before every
    chunk that is fetched.
    """

    def __init__(
        self,
        chunks: Generator[bytes, None, None],
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Wrap a chunk generator, which should not have been started yet."""
        super().__init__()

        self._chunks = chunks
        self._cancel = cancel
        self._buffer = memoryview(b"")
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed stream")

        if not self._fill():
            return 0

        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]

        return n

    def chunks(self) -> Iterator[bytes]:
        """Yield the remaining contents chunk by chunk."""
        while self._fill():
            data = bytes(self._buffer)
            self._buffer = memoryview(b"")

            yield data

    def close(self) -> None:
        if not self.closed:
            self._chunks.close()
            self._buffer = memoryview(b"")

        super().close()

    def _fill(self) -> bool:
        """Make sure the buffer is non-empty, returning False at the end of the stream."""
        while not self._buffer:
            if self._eof:
                return False

            try:
                check_cancelled(self._cancel)
            except CancelledError:
                self.close()
                raise

            try:
                self._buffer = memoryview(next(self._chunks))
            except StopIteration:
                self._eof = True

        return True


class UploadReader:
    """
    Reader that feeds an upload from bytes, a file-like object or an iterable of bytes.

    The cancellation event is checked on every read. If the expected size is known, the
    number of bytes read is verified against it so that truncated sources fail the
    upload instead of silently storing partial contents.
    """

    def __init__(
        self,
        source: Source,
        cancel: Optional[threading.Event] = None,
        expected_size: Optional[int] = None,
    ) -> None:
        """Wrap the source of an upload."""
        self._cancel = cancel
        self._expected_size = expected_size
        self._bytes_read = 0

        self._stream: Optional[BinaryIO] = None
        self._iterator: Optional[Iterator[bytes]] = None
        self._pending = bytearray()

        if isinstance(source, (bytes, bytearray, memoryview)):
            self._stream = io.BytesIO(source)
        elif hasattr(source, "read"):
            self._stream = source  # type: ignore
        else:
            self._iterator = iter(source)

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    def read(self, size: int = -1) -> bytes:
        check_cancelled(self._cancel)

        if self._stream is not None:
            data = self._stream.read(size)
        else:
            data = self._read_iterator(size)

        self._bytes_read += len(data)
        self._verify_size(at_end=not data)

        return data

    def _read_iterator(self, size: int) -> bytes:
        assert self._iterator is not None

        while size < 0 or len(self._pending) < size:
            try:
                self._pending.extend(next(self._iterator))
            except StopIteration:
                break

        if size < 0:
            size = len(self._pending)

        data = bytes(self._pending[:size])
        del self._pending[:size]

        return data

    def _verify_size(self, at_end: bool) -> None:
        if self._expected_size is None:
            return

        if self._bytes_read > self._expected_size or (
            at_end and self._bytes_read != self._expected_size
        ):
            raise TransportError(
                f"expected {self._expected_size} bytes, read {self._bytes_read}"
            )


def upload(
    client: StorageClient,
    parent: str,
    name: str,
    source: Source,
    mod_time: Optional[datetime.datetime] = None,
    size: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
) -> FileRecord:
    """
    Stream the source into a file named name within the parent directory.

    An existing file with that name is only replaced once the upload has completed.
    """
    if mod_time is None:
        mod_time = datetime.datetime.now(datetime.timezone.utc)

    reader = UploadReader(source, cancel, size)
    metadata = UploadMetadata(
        parent=parent, name=name, last_modified=mod_time.timestamp()
    )

    record = client.upload_stream(reader, metadata)

    log.debug(f"uploaded {name} ({reader.bytes_read} bytes) as {record.uuid}")

    return record
