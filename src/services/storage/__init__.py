"""
Storage Services Package

Provides the backend interface and its two implementations: device storage
(local mode) and Firestore with live subscriptions (remote mode).
"""

from src.services.storage.interface import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    SerializationError,
    StorageBackend,
    StorageError,
    StoreNotReadyError,
)
from src.services.storage.channel import SnapshotChannel
from src.services.storage.device import DeviceStorage
from src.services.storage.local import LocalBackend
from src.services.storage.firestore import (
    FirebaseAuthClient,
    FirebaseCredentials,
    FirebaseSession,
    FirestoreBackend,
    build_firestore_client,
)

__all__ = [
    # Interface
    "StorageBackend",
    # Exceptions
    "AuthenticationError",
    "NetworkError",
    "NotFoundError",
    "SerializationError",
    "StorageError",
    "StoreNotReadyError",
    # Local implementation
    "DeviceStorage",
    "LocalBackend",
    # Firestore implementation
    "FirebaseAuthClient",
    "FirebaseCredentials",
    "FirebaseSession",
    "FirestoreBackend",
    "SnapshotChannel",
    "build_firestore_client",
]
