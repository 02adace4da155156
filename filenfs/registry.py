"""
Module with the registry of backends that filesystems can be constructed from.

Rather than having backends register themselves in a global map as a side effect of
being imported, the host builds a Registry at startup (usually with default_registry())
and passes it to whatever needs to construct filesystems.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from filenfs.config import RemoteConfig
from filenfs.constants import BACKEND_NAME
from filenfs.errors import AlreadyExistsError, ConfigError, NotFoundError
from filenfs.filesystem import Filesystem
from filenfs.logger import log
import filenfs.rpc as rpc
from filenfs.storage import StorageClient, StorageService


@dataclass
class Option:
    """Configuration option that a backend understands."""

    name: str
    help: str
    required: bool = False
    is_password: bool = False


@dataclass
class RegInfo:
    """Description of a backend and the factory for its filesystems."""

    name: str
    description: str
    new_fs: Callable[[str, str, RemoteConfig], Filesystem]
    options: List[Option] = field(default_factory=list)


class Registry:
    """Backends by name."""

    def __init__(self) -> None:
        self._backends: Dict[str, RegInfo] = {}

    def register(self, info: RegInfo) -> None:
        if info.name in self._backends:
            raise AlreadyExistsError(f"backend {info.name} is already registered")

        self._backends[info.name] = info

    def get(self, name: str) -> RegInfo:
        try:
            return self._backends[name]
        except KeyError:
            raise NotFoundError(f"unknown backend '{name}'")

    def names(self) -> List[str]:
        return sorted(self._backends)

    def new_fs(self, name: str, root: str, config: RemoteConfig) -> Filesystem:
        """
        Construct a filesystem for a configured remote.

        The backend is selected by the type of the remote configuration, and every
        option the backend requires must be set.
        """
        info = self.get(config.type)

        for option in info.options:
            if option.required and not getattr(config, option.name, None):
                raise ConfigError(f"remote {name} is missing option '{option.name}'")

        log.debug(f"creating {info.name} filesystem {name} at '{root}'")

        return info.new_fs(name, root, config)


def new_filen_fs(name: str, root: str, config: RemoteConfig) -> Filesystem:
    """Connect to the storage service of a remote and log in."""
    email, password = config.credentials()

    service = rpc.Client(
        StorageService, config.endpoint, config.token, config.timeout_ms
    )

    try:
        client = StorageClient.connect(service, email, password, config.chunk_size)
    except Exception:
        service.close()
        raise

    return Filesystem(name, root, client)


FILEN = RegInfo(
    name=BACKEND_NAME,
    description="Filen",
    new_fs=new_filen_fs,
    options=[
        Option(name="email", help="Filen account email", required=True),
        Option(
            name="password",
            help="Filen account password",
            required=True,
            is_password=True,
        ),
    ],
)


def default_registry() -> Registry:
    """Return a registry with all built-in backends."""
    registry = Registry()
    registry.register(FILEN)

    return registry
