import io
from unittest import mock

import pytest

from filenfs.errors import AuthError, NotFoundError, TransportError
from filenfs.storage import Capabilities, StorageClient, UploadMetadata
from filenfs.tests.helpers import ClosableService, EMAIL, PASSWORD, upload_bytes


class FailingReader:
    """Reader that fails after producing some data."""

    def __init__(self, data):
        self._stream = io.BytesIO(data)

    def read(self, size):
        data = self._stream.read(size)

        if not data:
            raise TransportError("connection reset")

        return data


def test_connect(service):
    client = StorageClient.connect(service, EMAIL, PASSWORD)

    assert client.root() == service.root_uuid()
    assert client.capabilities() == service.capabilities()


def test_connect_wrong_password(service):
    with pytest.raises(AuthError):
        StorageClient.connect(service, EMAIL, "wrong")


def test_connect_incompatible_protocol():
    mock_service = mock.Mock()
    mock_service.protocol_version.return_value = "2.0.0"

    with pytest.raises(AuthError):
        StorageClient.connect(mock_service, EMAIL, PASSWORD)

    assert not mock_service.authenticate.called


def test_connect_compatible_protocol():
    mock_service = mock.Mock()
    mock_service.protocol_version.return_value = "1.7.3"
    mock_service.root_uuid.return_value = "root"
    mock_service.capabilities.return_value = Capabilities()

    client = StorageClient.connect(mock_service, EMAIL, PASSWORD)

    mock_service.authenticate.assert_called_with(EMAIL, PASSWORD)
    assert client.root() == "root"


def test_not_logged_in(service):
    client = StorageClient(service)

    with pytest.raises(AuthError):
        client.root()

    with pytest.raises(AuthError):
        client.capabilities()


def test_list_children(client, service):
    root = service.root_uuid()
    directory = service.create_directory(root, "docs")
    record = upload_bytes(service, root, "file", b"abc")

    files, directories = client.list_children(root)

    assert files == [record]
    assert directories == [directory]


def test_download_stream(client, service):
    record = upload_bytes(service, service.root_uuid(), "file", b"hello world")

    chunks = list(client.download_stream(record))

    assert chunks == [b"hell", b"o wo", b"rld"]


def test_download_stream_chunk_size(client, service):
    record = upload_bytes(service, service.root_uuid(), "file", b"hello world")

    assert list(client.download_stream(record, chunk_size=6)) == [b"hello ", b"world"]


def test_download_stream_is_lazy(service):
    record = upload_bytes(service, service.root_uuid(), "file", b"hello world")

    spy = mock.Mock(wraps=service)
    client = StorageClient(spy, chunk_size=4)

    chunks = client.download_stream(record)
    assert not spy.open_download.called

    assert next(chunks) == b"hell"
    assert spy.open_download.call_count == 1
    assert spy.read_chunk.call_count == 1

    chunks.close()
    assert spy.close_download.call_count == 1


def test_download_stream_removed_file(client, service):
    record = upload_bytes(service, service.root_uuid(), "file", b"abc")
    service.remove_file(record.uuid)

    with pytest.raises(NotFoundError):
        list(client.download_stream(record))


def test_upload_stream(client, service):
    root = service.root_uuid()

    record = client.upload_stream(
        io.BytesIO(b"hello world"), UploadMetadata(root, "file", 10.0)
    )

    assert record.size == 11
    assert record.last_modified == 10.0
    assert service.find_file(root, "file") == record


def test_upload_stream_empty(client, service):
    root = service.root_uuid()

    record = client.upload_stream(io.BytesIO(b""), UploadMetadata(root, "file", 0.0))

    assert record.size == 0


def test_upload_stream_failure_aborts(client, service):
    root = service.root_uuid()

    with pytest.raises(TransportError):
        client.upload_stream(
            FailingReader(b"hello world"), UploadMetadata(root, "file", 0.0)
        )

    assert service.find_file(root, "file") is None
    assert service._uploads == {}


def test_upload_stream_failure_keeps_previous(client, service):
    root = service.root_uuid()
    previous = upload_bytes(service, root, "file", b"previous")

    with pytest.raises(TransportError):
        client.upload_stream(
            FailingReader(b"hello world"), UploadMetadata(root, "file", 0.0)
        )

    assert service.find_file(root, "file") == previous


def test_upload_stream_abort_failure_raises_original(service):
    spy = mock.Mock(wraps=service)
    spy.abort_upload.side_effect = TransportError("abort failed")

    client = StorageClient(spy, chunk_size=4)

    with pytest.raises(TransportError, match="connection reset"):
        client.upload_stream(
            FailingReader(b"abc"), UploadMetadata(service.root_uuid(), "file", 0.0)
        )

    assert spy.abort_upload.called


def test_set_modified(client, service):
    record = upload_bytes(service, service.root_uuid(), "file", b"abc")

    assert client.set_modified(record.uuid, 99.0).last_modified == 99.0


@pytest.mark.parametrize("chunk_size", [0, -1])
def test_invalid_chunk_size(service, chunk_size):
    with pytest.raises(ValueError):
        StorageClient(service, chunk_size)

    with pytest.raises(ValueError):
        StorageClient.connect(service, EMAIL, PASSWORD, chunk_size)


@pytest.mark.parametrize("chunk_size", [0, -1])
def test_invalid_transfer_chunk_size(client, service, chunk_size):
    root = service.root_uuid()
    record = upload_bytes(service, root, "file", b"abc")

    with pytest.raises(ValueError):
        client.download_stream(record, chunk_size)

    with pytest.raises(ValueError):
        client.upload_stream(
            io.BytesIO(b"hello"), UploadMetadata(root, "file", 0.0), chunk_size
        )

    # Nothing was transferred, the previous contents remain
    assert service.find_file(root, "file") == record
    assert service._downloads == {}
    assert service._uploads == {}


def test_close():
    service = ClosableService({EMAIL: PASSWORD})
    client = StorageClient.connect(service, EMAIL, PASSWORD)

    client.close()

    assert service.closed

    with pytest.raises(AuthError):
        client.root()


def test_close_without_connection(client):
    client.close()

    with pytest.raises(AuthError):
        client.capabilities()
