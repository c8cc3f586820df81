"""
Abstract Storage Interface

DESIGN DECISION: The store talks to exactly one backend for the lifetime of
a session, through this interface. This allows us to:
1. Select device storage or the remote document store once, at startup
2. Keep mode checks out of every call site
3. Use in-memory fakes for testing

Backends do not return data from writes. They publish state into the
StoreState they were started with: the local backend synchronously after
each write, the remote backend whenever a subscription re-delivers a
collection.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from src.models.records import Collection
from src.models.store import FailureKind, StoreMode
from src.state import StoreState


class StorageBackend(ABC):
    """
    Abstract interface for the store's persistence backends.

    Payloads are already normalized by the gateway: wire (camelCase) keys,
    JSON-safe values, no `id` key.
    """

    mode: StoreMode

    @abstractmethod
    async def start(self, state: StoreState) -> None:
        """
        Acquire the backend and begin publishing into `state`.

        Raises:
            AuthenticationError: If the session could not be established
            NetworkError: If the backend could not be reached
        """
        pass

    @abstractmethod
    async def add(self, collection: Collection, item: Mapping[str, Any]) -> str:
        """
        Create a record.

        Returns:
            The identifier assigned to the new record
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: Collection,
        record_id: str,
        fields: Mapping[str, Any],
    ) -> None:
        """
        Merge fields into an existing record. Absent fields are kept.

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: Collection, record_id: str) -> None:
        """Remove a record from its collection."""
        pass

    @abstractmethod
    async def save_settings(self, fields: Mapping[str, Any]) -> None:
        """Merge fields into the singleton settings record."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the backend. No state may be published afterwards."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    kind: FailureKind = FailureKind.STORAGE
    retryable: bool = False


class AuthenticationError(StorageError):
    """Could not establish a session with the remote backend."""
    kind = FailureKind.AUTHENTICATION


class NetworkError(StorageError):
    """Remote backend unreachable, or a round-trip did not complete."""
    kind = FailureKind.NETWORK
    retryable = True


class SerializationError(StorageError):
    """A payload or stored document could not be encoded/decoded."""
    kind = FailureKind.SERIALIZATION


class NotFoundError(StorageError):
    """Entity not found in storage."""
    kind = FailureKind.NOT_FOUND


class StoreNotReadyError(StorageError):
    """No backend has been committed yet."""
    kind = FailureKind.NOT_READY
    retryable = True
