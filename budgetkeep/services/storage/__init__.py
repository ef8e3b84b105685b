"""
Storage Services Package

Provides the storage interfaces, the codec, the key namespace and the
concrete backends (file, in-memory, Google Sheets).
"""

from budgetkeep.services.storage.codec import (
    CodecError,
    DecodingError,
    EncodingError,
    JsonCodec,
)
from budgetkeep.services.storage.interface import (
    IOFailure,
    LocalBackend,
    RemoteBackend,
    RemoteFailure,
    StorageError,
    WriteFailedError,
)
from budgetkeep.services.storage.keys import (
    CommonKey,
    StorageDomain,
    build_key,
    keys_for_domain,
    keys_for_user,
    parse_key,
    setup_completed_key,
)
from budgetkeep.services.storage.local_files import FileLocalBackend
from budgetkeep.services.storage.memory import (
    InMemoryLocalBackend,
    InMemoryRemoteBackend,
    OfflineRemoteBackend,
)
from budgetkeep.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteBackend,
)

__all__ = [
    # Codec
    "CodecError",
    "DecodingError",
    "EncodingError",
    "JsonCodec",
    # Interfaces
    "LocalBackend",
    "RemoteBackend",
    # Exceptions
    "IOFailure",
    "RemoteFailure",
    "StorageError",
    "WriteFailedError",
    # Keys
    "CommonKey",
    "StorageDomain",
    "build_key",
    "keys_for_domain",
    "keys_for_user",
    "parse_key",
    "setup_completed_key",
    # Implementations
    "FileLocalBackend",
    "InMemoryLocalBackend",
    "InMemoryRemoteBackend",
    "OfflineRemoteBackend",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteBackend",
]
