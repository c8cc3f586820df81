"""
Store Facade for Album Tracker

This module ties the persistence layer and the read model together:
1. Mode selection (remote if a saved connection works, local otherwise)
2. The mutation gateway (add / update / delete / save_settings)
3. The read model (data, stats, mode) via StoreState

DESIGN DECISION: The backend is chosen once per initialization and every
mutation goes through the same four calls, whichever backend is active.
Switching modes is a full reinitialization - the connection config is
saved or cleared and the store starts over - never a live migration of
data between backends.

Mutations never raise for storage problems: they return a MutationResult
carrying a typed failure the caller can turn into a retry affordance.
"""

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from src.audit import AuditLogger, configure_logging
from src.config import Settings, StorageSettings, get_settings
from src.models.records import Collection, ProjectSettings
from src.models.store import (
    CostTotals,
    FailureKind,
    InitializationFailure,
    MutationOperation,
    MutationResult,
    RemoteConfig,
    StoreData,
    StoreMode,
)
from src.services.storage import (
    DeviceStorage,
    FirestoreBackend,
    LocalBackend,
    SerializationError,
    StorageBackend,
    StorageError,
    StoreNotReadyError,
)
from src.state import Listener, StoreState


CollectionRef = Union[Collection, str]
Payload = Union[Mapping[str, Any], BaseModel]
RemoteBackendFactory = Callable[[RemoteConfig], StorageBackend]


class Store:
    """
    Single entry point for reading and mutating project data.

    Usage:
        store = create_store()
        await store.initialize()
        result = await store.add("tasks", {"title": "Mix", "estimatedCost": 400})
        store.stats  # CostTotals(min=..., max=..., actual=...)
    """

    def __init__(
        self,
        device: DeviceStorage,
        storage_settings: Optional[StorageSettings] = None,
        remote_backend_factory: Optional[RemoteBackendFactory] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._device = device
        self._settings = storage_settings or get_settings().storage
        self._audit_logger = audit_logger or AuditLogger()
        self._state = StoreState(audit_logger=self._audit_logger)
        self._remote_backend_factory = remote_backend_factory or self._firestore_backend

        self._backend: Optional[StorageBackend] = None
        self._init_error: Optional[InitializationFailure] = None
        self._lifecycle = asyncio.Lock()

    # ---------- read model ----------
    @property
    def mode(self) -> StoreMode:
        return self._state.mode

    @property
    def data(self) -> StoreData:
        return self._state.data

    @property
    def stats(self) -> CostTotals:
        return self._state.stats

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def init_error(self) -> Optional[InitializationFailure]:
        """Why the last initialization could not use the saved remote config."""
        return self._init_error

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._state.subscribe(listener)

    # ---------- mode selection ----------
    async def initialize(self) -> StoreMode:
        """Commit to a backend. Safe to call once per store lifetime."""
        async with self._lifecycle:
            await self._initialize()
        return self.mode

    async def connect_remote(self, config: Union[RemoteConfig, Mapping[str, Any]]) -> StoreMode:
        """
        Save a remote connection and reinitialize.

        Raises:
            ValidationError: If the config is incomplete (nothing is saved)
            StorageError: If the config could not be saved
        """
        if not isinstance(config, RemoteConfig):
            config = RemoteConfig.model_validate(config)
        self._device.write_json(self._settings.remote_config_key, config.to_document())
        self._audit_logger.log_mode_switch_requested(StoreMode.REMOTE.value)
        return await self._reinitialize()

    async def disconnect_remote(self) -> StoreMode:
        """Forget the remote connection and reinitialize into local mode."""
        self._device.remove_item(self._settings.remote_config_key)
        self._audit_logger.log_mode_switch_requested(StoreMode.LOCAL.value)
        return await self._reinitialize()

    async def retry(self) -> StoreMode:
        """Run initialization again, e.g. after a failed remote connection."""
        return await self._reinitialize()

    async def close(self) -> None:
        """Release the backend (cancels remote subscriptions)."""
        async with self._lifecycle:
            await self._close_backend()
            self._state.set_mode(StoreMode.INITIALIZING)

    async def _reinitialize(self) -> StoreMode:
        async with self._lifecycle:
            await self._close_backend()
            self._state.reset()
            await self._initialize()
        return self.mode

    async def _initialize(self) -> None:
        self._state.set_mode(StoreMode.INITIALIZING)
        self._init_error = None

        config = self._load_remote_config()
        if config is not None:
            backend: Optional[StorageBackend] = None
            try:
                backend = self._remote_backend_factory(config)
                await backend.start(self._state)
            except Exception as e:
                await self._fallback(backend, e)
            else:
                self._commit(backend)
                return

        local = LocalBackend(self._device, self._settings.app_id, self._audit_logger)
        await local.start(self._state)
        self._commit(local)

    async def _fallback(self, backend: Optional[StorageBackend], error: Exception) -> None:
        kind = error.kind if isinstance(error, StorageError) else FailureKind.STORAGE
        self._record_init_failure(kind, str(error) or type(error).__name__)
        if backend is None:
            return
        try:
            await backend.close()
        except Exception as e:
            self._audit_logger.log_remote_connection_failed(FailureKind.STORAGE.value, str(e))

    def _record_init_failure(self, kind: FailureKind, message: str) -> None:
        self._init_error = InitializationFailure(failure=kind, error_message=message)
        self._audit_logger.log_remote_connection_failed(kind.value, message)

    def _commit(self, backend: StorageBackend) -> None:
        self._backend = backend
        self._state.set_mode(backend.mode)
        self._audit_logger.log_store_initialized(backend.mode.value)

    async def _close_backend(self) -> None:
        backend, self._backend = self._backend, None
        if backend is not None:
            await backend.close()

    def _load_remote_config(self) -> Optional[RemoteConfig]:
        raw = self._device.read_json(self._settings.remote_config_key)
        if raw is None:
            return None
        try:
            return RemoteConfig.model_validate(raw)
        except ValidationError as e:
            self._record_init_failure(FailureKind.SERIALIZATION, f"Saved remote config is invalid: {e}")
            return None

    def _firestore_backend(self, config: RemoteConfig) -> StorageBackend:
        return FirestoreBackend(
            config,
            app_id=self._settings.app_id,
            audit_logger=self._audit_logger,
        )

    # ---------- mutation gateway ----------
    async def add(self, collection: CollectionRef, item: Payload) -> MutationResult:
        """Create a record; the result carries the assigned id."""
        target = Collection.parse(collection)

        async def run(backend: StorageBackend) -> str:
            return await backend.add(target, self._prepare(target, item))

        return await self._execute(MutationOperation.ADD, target, None, run)

    async def update(
        self,
        collection: CollectionRef,
        record_id: str,
        partial: Payload,
    ) -> MutationResult:
        """Merge fields into a record; fields not given are kept."""
        target = Collection.parse(collection)

        async def run(backend: StorageBackend) -> str:
            await backend.update(target, record_id, self._prepare(target, partial))
            return record_id

        return await self._execute(MutationOperation.UPDATE, target, record_id, run)

    async def delete(self, collection: CollectionRef, record_id: str) -> MutationResult:
        target = Collection.parse(collection)

        async def run(backend: StorageBackend) -> str:
            await backend.delete(target, record_id)
            return record_id

        return await self._execute(MutationOperation.DELETE, target, record_id, run)

    async def save_settings(self, partial: Payload) -> MutationResult:
        """Merge keys into the singleton settings record."""

        async def run(backend: StorageBackend) -> None:
            fields = partial.model_dump() if isinstance(partial, BaseModel) else dict(partial)
            fields.pop("id", None)
            try:
                payload = ProjectSettings.model_validate(fields).to_document()
            except ValueError as e:
                raise SerializationError(f"Invalid settings: {e}") from e
            await backend.save_settings(payload)
            return None

        return await self._execute(MutationOperation.SAVE_SETTINGS, None, None, run)

    @staticmethod
    def _prepare(collection: Collection, payload: Payload) -> dict[str, Any]:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(by_alias=True, exclude_unset=True)
        try:
            return collection.record_model.prepare_fields(payload)
        except ValueError as e:
            raise SerializationError(f"Invalid {collection.value} fields: {e}") from e

    async def _execute(
        self,
        operation: MutationOperation,
        collection: Optional[Collection],
        record_id: Optional[str],
        run: Callable[[StorageBackend], Awaitable[Optional[str]]],
    ) -> MutationResult:
        mode = self.mode
        collection_name = collection.value if collection else None
        try:
            backend = self._backend
            if backend is None or mode == StoreMode.INITIALIZING:
                raise StoreNotReadyError("Store is still initializing")
            record_id = await run(backend) or record_id
        except StorageError as e:
            return self._failed(operation, mode, collection, record_id, e.kind, str(e), e.retryable)
        except Exception as e:
            return self._failed(
                operation, mode, collection, record_id,
                FailureKind.STORAGE, f"{type(e).__name__}: {e}", False,
            )

        self._audit_logger.log_mutation(operation.value, mode.value, collection_name, record_id)
        return MutationResult(
            operation=operation,
            collection=collection,
            record_id=record_id,
            mode=mode,
            success=True,
        )

    def _failed(
        self,
        operation: MutationOperation,
        mode: StoreMode,
        collection: Optional[Collection],
        record_id: Optional[str],
        kind: FailureKind,
        message: str,
        retryable: bool,
    ) -> MutationResult:
        self._audit_logger.log_mutation_failed(
            operation.value,
            mode.value,
            collection.value if collection else None,
            record_id,
            kind.value,
            message,
        )
        return MutationResult(
            operation=operation,
            collection=collection,
            record_id=record_id,
            mode=mode,
            success=False,
            failure=kind,
            error_message=message,
            retryable=retryable,
        )


def create_store(
    settings: Optional[Settings] = None,
    device: Optional[DeviceStorage] = None,
) -> Store:
    """
    Factory function to create a fully wired store.

    Args:
        settings: Settings to use (defaults to environment settings)
        device: Device storage override (defaults to the configured data dir)

    Returns:
        An uninitialized Store - call `await store.initialize()`
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    storage_settings = settings.storage
    firebase_settings = settings.firebase
    audit_logger = AuditLogger()

    def remote_backend_factory(config: RemoteConfig) -> StorageBackend:
        return FirestoreBackend(
            config,
            app_id=storage_settings.app_id,
            settings=firebase_settings,
            audit_logger=audit_logger,
        )

    return Store(
        device=device or DeviceStorage(storage_settings.data_dir),
        storage_settings=storage_settings,
        remote_backend_factory=remote_backend_factory,
        audit_logger=audit_logger,
    )
