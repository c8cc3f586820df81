"""
Local Storage Implementation

The whole application state lives in memory and, after every mutation, is
rewritten as one JSON blob in device storage.

DESIGN DECISION: A mutation is persisted BEFORE it is published to the
state. If the write fails the caller gets a typed error and the in-memory
snapshot still matches what is on disk.

TRADEOFFS:
- Rewriting the full snapshot on each write is O(size of project); fine for
  a personal project tracker
- No history: the blob is the latest state only
"""

from typing import Any, Callable, Mapping, Optional
from uuid import uuid4

from pydantic import ValidationError

from src.audit import AuditLogger
from src.models.records import DEFAULT_STAGES, Collection
from src.models.store import StoreData, StoreMode
from src.services.storage.device import DeviceStorage
from src.services.storage.interface import (
    NotFoundError,
    SerializationError,
    StorageBackend,
    StorageError,
    StoreNotReadyError,
)
from src.state import StoreState


def _new_id() -> str:
    return str(uuid4())


class LocalBackend(StorageBackend):
    """Device-storage backend: synchronous, immediately visible writes."""

    mode = StoreMode.LOCAL

    def __init__(
        self,
        device: DeviceStorage,
        snapshot_key: str,
        audit_logger: Optional[AuditLogger] = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._device = device
        self._snapshot_key = snapshot_key
        self._audit_logger = audit_logger or AuditLogger()
        self._id_factory = id_factory
        self._state: Optional[StoreState] = None

    # ---------- lifecycle ----------
    async def start(self, state: StoreState) -> None:
        """Load the saved snapshot (if any) and seed default stages."""
        data = self._load()

        if not data.stages:
            data = data.with_records(Collection.STAGES, DEFAULT_STAGES)
            try:
                self._persist(data)
            except StorageError as e:
                # Seeds are still usable in memory; the next write retries
                self._audit_logger.log_mutation_failed(
                    "add", self.mode.value, Collection.STAGES.value, None,
                    e.kind.value, str(e),
                )

        self._state = state
        state.replace(data)

    async def close(self) -> None:
        self._state = None

    def _load(self) -> StoreData:
        blob = self._device.read_json(self._snapshot_key)
        if blob is None:
            return StoreData()
        if not isinstance(blob, Mapping):
            self._audit_logger.log_skipped_documents(
                "snapshot", [{"id": self._snapshot_key, "error": "snapshot is not an object"}]
            )
            return StoreData()

        data, skipped = StoreData.from_blob(blob)
        self._audit_logger.log_skipped_documents("snapshot", skipped)
        return data

    # ---------- mutations ----------
    async def add(self, collection: Collection, item: Mapping[str, Any]) -> str:
        data = self._current()
        record_id = self._id_factory()
        record = self._validate(collection, {**item, "id": record_id})
        self._commit(data.with_records(collection, (*data.records(collection), record)))
        return record_id

    async def update(
        self,
        collection: Collection,
        record_id: str,
        fields: Mapping[str, Any],
    ) -> None:
        data = self._current()
        records = list(data.records(collection))
        for index, existing in enumerate(records):
            if existing.id == record_id:
                records[index] = self._validate(
                    collection, {**existing.to_document(), **fields, "id": record_id}
                )
                break
        else:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")

        self._commit(data.with_records(collection, records))

    async def delete(self, collection: Collection, record_id: str) -> None:
        data = self._current()
        remaining = [r for r in data.records(collection) if r.id != record_id]
        self._commit(data.with_records(collection, remaining))

    async def save_settings(self, fields: Mapping[str, Any]) -> None:
        data = self._current()
        try:
            settings = data.settings.merged(fields)
        except ValidationError as e:
            raise SerializationError(f"Invalid settings: {e}") from e
        self._commit(data.with_settings(settings))

    # ---------- helpers ----------
    def _current(self) -> StoreData:
        if self._state is None:
            raise StoreNotReadyError("Local backend is not started")
        return self._state.data

    @staticmethod
    def _validate(collection: Collection, document: Mapping[str, Any]):
        try:
            return collection.record_model.model_validate(document)
        except ValidationError as e:
            raise SerializationError(f"Invalid {collection.value} record: {e}") from e

    def _persist(self, data: StoreData) -> None:
        self._device.write_json(self._snapshot_key, data.to_blob())

    def _commit(self, data: StoreData) -> None:
        self._persist(data)
        if self._state is not None:
            self._state.replace(data)
