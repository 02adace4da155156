"""Module for remote configurations with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from filenfs.constants import BACKEND_NAME, DEFAULT_CHUNK_SIZE
from filenfs.errors import ConfigError
from filenfs.logger import log
from filenfs.obscure import reveal


@dataclass
class RemoteConfig:
    """Configuration variables of a single configured remote."""

    type: str = BACKEND_NAME

    email: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    endpoint: str = "tcp://127.0.0.1:7000"
    token: Optional[str] = field(default=None, repr=False)
    timeout_ms: int = 30000

    chunk_size: int = DEFAULT_CHUNK_SIZE

    @staticmethod
    def load(section: SectionProxy) -> RemoteConfig:
        """Load overridden variables from a section within a config file."""
        config = RemoteConfig()

        config.type = section.get("type", fallback=config.type)

        config.email = section.get("email", fallback=config.email)
        config.password = section.get("password", fallback=config.password)

        config.endpoint = section.get("endpoint", fallback=config.endpoint)
        config.token = section.get("token", fallback=config.token)
        config.timeout_ms = section.getint("timeout_ms", fallback=config.timeout_ms)

        config.chunk_size = section.getint("chunk_size", fallback=config.chunk_size)

        if config.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive, not {config.chunk_size}")

        return config

    def credentials(self) -> Tuple[str, str]:
        """
        Return the email address and the revealed password.

        Raises ConfigError if either of them is missing or the password can't be
        revealed.
        """
        if not self.email:
            raise ConfigError("missing email")
        if not self.password:
            raise ConfigError("missing password")

        return self.email, reveal(self.password)


@dataclass
class Config:
    """Configured remotes by name."""

    remotes: Dict[str, RemoteConfig] = field(default_factory=dict)

    def remote(self, name: str) -> RemoteConfig:
        """Look up the configuration of a remote."""
        try:
            return self.remotes[name]
        except KeyError:
            raise ConfigError(f"no remote named '{name}' in config")

    @staticmethod
    def load(filename: str) -> Config:
        """Load configured remotes from a config file."""
        parser = ConfigParser(interpolation=None)

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            for name in parser.sections():
                config.remotes[name] = RemoteConfig.load(parser[name])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since the
            # remotes can also be configured programmatically.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
