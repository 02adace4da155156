"""Module defining various global constants."""

# filenfs version
VERSION = "1.0.0"

# Protocol spoken between the storage client and the storage service.
# The major version must be identical on both ends.
PROTOCOL_VERSION = "1.0.0"

# Name under which the backend is registered.
BACKEND_NAME = "filen"

# Size of the chunks that are transferred per download/upload call.
DEFAULT_CHUNK_SIZE = 1024 * 1024

# Modification times are only stored with second precision by the remote store.
PRECISION_SECONDS = 1
