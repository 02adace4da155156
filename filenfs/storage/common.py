"""Data structures exchanged between the storage client and the storage service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import lz4.frame


@dataclass
class DirectoryRecord:
    """A directory in the remote store, addressed by its uuid."""

    uuid: str
    parent: Optional[str]
    name: str
    created: float


@dataclass
class FileRecord:
    """
    A file in the remote store, addressed by its uuid.

    Timestamps are seconds since the epoch. The hash is the hex digest of the contents
    if the store computed one, with the kind listed in Capabilities.hash_types.
    """

    uuid: str
    parent: str
    name: str
    size: int
    last_modified: float
    created: float
    hash: Optional[str] = None


@dataclass
class Capabilities:
    """Optional features that the storage service offers."""

    hash_types: List[str] = field(default_factory=list)
    set_modified: bool = False


@dataclass
class UploadMetadata:
    """Where an upload should end up and which modification time it should carry."""

    parent: str
    name: str
    last_modified: float


@dataclass
class Chunk:
    """
    Piece of file contents as sent over the wire.

    Chunks are compressed with LZ4 since it is fast enough to not become the bottleneck
    of a transfer, while still saving bandwidth on compressible contents.
    """

    compressed_data: bytes
    size: int

    @staticmethod
    def from_data(data: bytes) -> Chunk:
        """Wrap raw file data into a Chunk object."""
        return Chunk(compressed_data=lz4.frame.compress(data), size=len(data))

    @property
    def data(self) -> bytes:
        """Retrieve and decompress the original file data."""
        return lz4.frame.decompress(self.compressed_data)
