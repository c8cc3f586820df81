"""Services package."""

from src.services.storage import (
    AuthenticationError,
    DeviceStorage,
    FirestoreBackend,
    LocalBackend,
    NetworkError,
    NotFoundError,
    SerializationError,
    StorageBackend,
    StorageError,
    StoreNotReadyError,
)

__all__ = [
    "AuthenticationError",
    "DeviceStorage",
    "FirestoreBackend",
    "LocalBackend",
    "NetworkError",
    "NotFoundError",
    "SerializationError",
    "StorageBackend",
    "StorageError",
    "StoreNotReadyError",
]
