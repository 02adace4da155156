"""
Modules that expose the remote store as a hierarchical filesystem.

The remote store knows nothing about paths. Every file and directory has an
identifier, and a directory can only be asked for its children or for a child with a
given name. Tools that synchronize files across many kinds of storage, however, think
in terms of slash separated paths. This package translates between the two:

* PathResolver walks a virtual path segment by segment to find the identifier of a
directory, optionally creating missing directories, and caches every segment it
resolves. Removing a directory invalidates its cached identifier and those below it.
* read_entries() turns the children of a remote directory into Directory and File
entries with virtual paths.
* Directory and File implement the metadata every backend provides (path, size,
modification time) and File adds streaming reads and writes on top of that.
* DownloadStream and UploadReader move file contents chunk by chunk, so memory usage
does not depend on the size of a file, and honor cancellation between chunks.
* Filesystem ties all of this together for a root prefix and a storage session.

The adapter performs no retries of its own. Errors from the storage session are raised
to the caller as is, and operations that the remote store can't perform raise
UnsupportedError instead of pretending to succeed.
"""

from .common import Features, ObjectInfo
from .filesystem import Filesystem
from .objects import DirEntry, Directory, File
from .resolver import PathCache, PathResolver
from .streaming import DownloadStream, UploadReader

__all__ = [
    "DirEntry",
    "Directory",
    "DownloadStream",
    "Features",
    "File",
    "Filesystem",
    "ObjectInfo",
    "PathCache",
    "PathResolver",
    "UploadReader",
]
