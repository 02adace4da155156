"""
Exceptions raised by the filesystem adapter and its storage collaborator.

All of them derive from FilenFSError so callers can handle backend failures in one
place. They only carry a message, which allows the RPC layer to recreate them on the
client side from their arguments.
"""


class FilenFSError(Exception):
    """Base class of all filenfs errors."""


class ConfigError(FilenFSError):
    """Missing or invalid configuration, like absent credentials."""


class AuthError(FilenFSError):
    """The storage session could not be established."""


class NotFoundError(FilenFSError):
    """A path or identifier does not exist."""


class AlreadyExistsError(FilenFSError):
    """Something with the same name already exists."""


class DirectoryNotEmptyError(FilenFSError):
    """A directory can't be removed because it still has children."""


class TransportError(FilenFSError, IOError):
    """Transfer failure while talking to the storage service."""


class UnsupportedError(FilenFSError):
    """The operation is not offered by the backend's capability set."""


class CancelledError(FilenFSError):
    """A stream was cancelled by the caller."""
