from filenfs.storage.common import Chunk


def test_chunk_from_data():
    chunk = Chunk.from_data(b"abc")

    assert chunk.size == 3
    assert chunk.data == b"abc"


def test_chunk_compression():
    data = b"a" * 4096
    chunk = Chunk.from_data(data)

    assert len(chunk.compressed_data) < len(data)
    assert chunk.data == data


def test_empty_chunk():
    chunk = Chunk.from_data(b"")

    assert chunk.size == 0
    assert chunk.data == b""
