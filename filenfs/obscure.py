"""
Obscuring of secrets stored in configuration files.

This is not encryption. It only keeps passwords from being readable at a glance when
a config file is shown on screen. The password is revealed right before the storage
session is established.
"""

import base64
import binascii

from filenfs.errors import ConfigError

_PREFIX = "obs:"


def obscure(secret: str) -> str:
    """Turn a plain secret into its obscured config file representation."""
    encoded = base64.urlsafe_b64encode(secret.encode("utf-8")).decode("ascii")
    return _PREFIX + encoded.rstrip("=")


def reveal(obscured: str) -> str:
    """Recover the plain secret from an obscured value."""
    if not obscured.startswith(_PREFIX):
        raise ConfigError("password is not obscured")

    encoded = obscured[len(_PREFIX) :]
    padding = "=" * (-len(encoded) % 4)

    try:
        return base64.urlsafe_b64decode(encoded + padding).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigError(f"failed to reveal password: {e}")
