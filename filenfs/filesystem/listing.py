"""Module that turns the children of a remote directory into entries."""

from __future__ import annotations

import posixpath
from typing import List, TYPE_CHECKING

from filenfs.filesystem.common import clean_remote
from filenfs.filesystem.objects import DirEntry, Directory, File

if TYPE_CHECKING:
    from filenfs.filesystem.filesystem import Filesystem


def read_entries(fs: Filesystem, directory_uuid: str, remote_dir: str) -> List[DirEntry]:
    """
    List the directory with the given identifier, which lives at remote_dir.

    Directories come first, followed by files. Within each group the order is whatever
    the remote store returns, which callers should not rely on being stable across
    calls. The identifiers of child directories are cached along the way.
    """
    remote_dir = clean_remote(remote_dir)
    files, directories = fs.client.list_children(directory_uuid)

    entries: List[DirEntry] = []

    for directory in directories:
        remote = posixpath.join(remote_dir, directory.name)

        fs.resolver.remember(remote, directory.uuid)
        entries.append(Directory.from_record(fs, directory, remote))

    for record in files:
        entries.append(File(fs, record, posixpath.join(remote_dir, record.name)))

    return entries
