"""
Modules that make up the storage collaborator of the filesystem adapter.

The remote store addresses everything by identifiers, not by paths. StorageService is
an in-memory implementation of such a store that can be served over RPC, and
StorageClient is the session that the filesystem adapter talks to. The client only
relies on the primitive calls of the service, so it works the same whether the service
lives in the same process or behind an rpc.Client.
"""

from .client import StorageClient
from .common import Capabilities, Chunk, DirectoryRecord, FileRecord, UploadMetadata
from .service import StorageService

__all__ = [
    "Capabilities",
    "Chunk",
    "DirectoryRecord",
    "FileRecord",
    "StorageClient",
    "StorageService",
    "UploadMetadata",
]
