"""Constants and helpers shared by the tests."""

from filenfs.storage import Chunk, StorageService, UploadMetadata

EMAIL = "user@example.com"
PASSWORD = "correct horse battery staple"

# Small enough to split test contents into multiple chunks
CHUNK_SIZE = 4


def upload_bytes(service, parent, name, data, last_modified=0.0):
    """Upload contents straight to a service, bypassing the client."""
    handle = service.begin_upload(UploadMetadata(parent, name, last_modified))

    for i in range(0, len(data), CHUNK_SIZE):
        service.write_chunk(handle, Chunk.from_data(data[i : i + CHUNK_SIZE]))

    return service.commit_upload(handle)


class ClosableService(StorageService):
    """Service that records whether its connection was closed, like an rpc.Client."""

    closed = False

    def close(self):
        self.closed = True
