"""
Storage Services Package

Provides the local (anonymous) and remote (authenticated) storage adapters
behind small abstract interfaces.
"""

from finnko.services.storage.interface import (
    LOCAL_STORE_KEYS,
    LocalStoreInterface,
    NotFoundError,
    RemoteErrorKind,
    RemoteStoreError,
    RemoteStoreInterface,
    StorageError,
    decode_remote_error,
)
from finnko.services.storage.local_store import (
    FileLocalStore,
    MemoryLocalStore,
)
from finnko.services.storage.remote_store import (
    SupabaseClient,
    SupabaseRemoteStore,
    format_filter,
)

__all__ = [
    # Interfaces
    "LOCAL_STORE_KEYS",
    "LocalStoreInterface",
    "RemoteStoreInterface",
    # Exceptions
    "NotFoundError",
    "RemoteErrorKind",
    "RemoteStoreError",
    "StorageError",
    "decode_remote_error",
    # Implementations
    "FileLocalStore",
    "MemoryLocalStore",
    "SupabaseClient",
    "SupabaseRemoteStore",
    "format_filter",
]
