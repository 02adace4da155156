import datetime
import io
import threading

import pytest

from filenfs.errors import CancelledError, TransportError
from filenfs.filesystem.streaming import DownloadStream, upload, UploadReader


class ChunkSource:
    """Chunk generator that records how far it got."""

    def __init__(self, chunks):
        self.chunks = chunks
        self.fetched = 0
        self.closed = False

    def generate(self):
        try:
            for chunk in self.chunks:
                self.fetched += 1
                yield chunk
        finally:
            self.closed = True


def test_download_read_all():
    source = ChunkSource([b"hell", b"o wo", b"rld"])

    with DownloadStream(source.generate()) as stream:
        assert stream.read() == b"hello world"

    assert source.closed


def test_download_small_reads():
    source = ChunkSource([b"hell", b"o wo", b"rld"])
    stream = DownloadStream(source.generate())

    assert stream.read(3) == b"hel"
    assert stream.read(3) == b"l"
    assert stream.read(10) == b"o wo"
    assert stream.read(10) == b"rld"
    assert stream.read(10) == b""


def test_download_empty():
    stream = DownloadStream(ChunkSource([]).generate())

    assert stream.read() == b""
    assert stream.read(10) == b""


def test_download_is_lazy():
    source = ChunkSource([b"abc", b"def"])
    stream = DownloadStream(source.generate())

    assert source.fetched == 0

    stream.read(1)
    assert source.fetched == 1

    stream.read(2)
    assert source.fetched == 1


def test_download_close_early():
    source = ChunkSource([b"abc", b"def", b"ghi"])
    stream = DownloadStream(source.generate())

    stream.read(1)
    stream.close()

    assert source.closed
    assert source.fetched == 1

    with pytest.raises(ValueError):
        stream.read(1)


def test_download_cancel():
    cancel = threading.Event()
    source = ChunkSource([b"abc", b"def"])
    stream = DownloadStream(source.generate(), cancel)

    assert stream.read(3) == b"abc"

    cancel.set()

    with pytest.raises(CancelledError):
        stream.read(3)

    assert stream.closed
    assert source.closed
    assert source.fetched == 1


def test_download_buffered_data_before_cancel():
    cancel = threading.Event()
    stream = DownloadStream(ChunkSource([b"abcdef"]).generate(), cancel)

    assert stream.read(3) == b"abc"

    cancel.set()

    # Already fetched data doesn't require another round trip
    assert stream.read(3) == b"def"

    with pytest.raises(CancelledError):
        stream.read(3)


def test_download_chunks():
    stream = DownloadStream(ChunkSource([b"abc", b"def"]).generate())

    assert stream.read(1) == b"a"
    assert list(stream.chunks()) == [b"bc", b"def"]


def test_download_buffered_reader():
    stream = io.BufferedReader(DownloadStream(ChunkSource([b"ab", b"cd"]).generate()))

    assert stream.read() == b"abcd"


def test_download_not_seekable():
    stream = DownloadStream(ChunkSource([]).generate())

    assert stream.readable()
    assert not stream.seekable()
    assert not stream.writable()


def test_upload_reader_bytes():
    reader = UploadReader(b"hello world")

    assert reader.read(4) == b"hell"
    assert reader.read() == b"o world"
    assert reader.read(4) == b""
    assert reader.bytes_read == 11


def test_upload_reader_file():
    reader = UploadReader(io.BytesIO(b"hello world"))

    assert reader.read(6) == b"hello "
    assert reader.read(6) == b"world"
    assert reader.read(6) == b""


def test_upload_reader_iterable():
    reader = UploadReader(iter([b"he", b"", b"llo wo", b"rld"]))

    assert reader.read(4) == b"hell"
    assert reader.read(4) == b"o wo"
    assert reader.read(4) == b"rld"
    assert reader.read(4) == b""


def test_upload_reader_iterable_read_all():
    reader = UploadReader([b"ab", b"cd"])

    assert reader.read() == b"abcd"
    assert reader.read() == b""


def test_upload_reader_expected_size():
    reader = UploadReader(b"abc", expected_size=3)

    assert reader.read(10) == b"abc"
    assert reader.read(10) == b""


def test_upload_reader_truncated_source():
    reader = UploadReader(b"abc", expected_size=5)

    assert reader.read(10) == b"abc"

    with pytest.raises(TransportError):
        reader.read(10)


def test_upload_reader_oversized_source():
    reader = UploadReader(b"abcdef", expected_size=3)

    with pytest.raises(TransportError):
        reader.read(10)


def test_upload_reader_cancel():
    cancel = threading.Event()
    reader = UploadReader(b"abcdef", cancel)

    assert reader.read(3) == b"abc"

    cancel.set()

    with pytest.raises(CancelledError):
        reader.read(3)


def test_upload(client, service):
    root = service.root_uuid()
    mod_time = datetime.datetime(2020, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)

    record = upload(client, root, "file", b"hello world", mod_time=mod_time, size=11)

    assert record.size == 11
    assert record.last_modified == mod_time.timestamp()
    assert service.find_file(root, "file") == record


def test_upload_default_mod_time(client, service):
    before = datetime.datetime.now(datetime.timezone.utc).timestamp()

    record = upload(client, service.root_uuid(), "file", b"abc")

    assert record.last_modified >= before


def test_upload_size_mismatch_aborts(client, service):
    root = service.root_uuid()

    with pytest.raises(TransportError):
        upload(client, root, "file", b"abc", size=4)

    assert service.find_file(root, "file") is None


def test_upload_cancelled(client, service):
    root = service.root_uuid()
    cancel = threading.Event()

    def chunks():
        yield b"abcd"
        cancel.set()
        yield b"efgh"

    with pytest.raises(CancelledError):
        upload(client, root, "file", chunks(), cancel=cancel)

    assert service.find_file(root, "file") is None
