"""Tests for the store facade: mode selection and the mutation gateway."""

import pytest

from src.config import Settings
from src.models.records import DEFAULT_STAGES, Collection, Task
from src.models.store import FailureKind, MutationOperation, StoreMode
from src.services.storage import AuthenticationError
from src.store import Store, create_store

from .fakes import remote_path, wait_until


def saved_config(device, storage_settings, remote_config):
    device.write_json(storage_settings.remote_config_key, remote_config.to_document())


class TestModeSelection:
    """Backend chosen once per initialization."""

    @pytest.mark.asyncio
    async def test_no_saved_config_means_local(self, store):
        assert store.mode == StoreMode.INITIALIZING

        assert await store.initialize() == StoreMode.LOCAL
        assert store.init_error is None
        assert store.data.stages == DEFAULT_STAGES

    @pytest.mark.asyncio
    async def test_saved_config_means_remote(
        self, store, device, storage_settings, remote_config, fake_client
    ):
        saved_config(device, storage_settings, remote_config)
        fake_client.seed(
            remote_path(storage_settings.app_id, "album_tasks"), "t1", {"estimatedCost": 70}
        )

        assert await store.initialize() == StoreMode.REMOTE
        await wait_until(lambda: bool(store.data.tasks))
        assert store.stats.max == 70
        await store.close()

    @pytest.mark.asyncio
    async def test_failed_sign_in_falls_back_to_local(
        self, store, device, storage_settings, remote_config, auth_client
    ):
        saved_config(device, storage_settings, remote_config)
        auth_client.error = AuthenticationError("anonymous sign-in disabled")

        assert await store.initialize() == StoreMode.LOCAL

        assert store.init_error.failure == FailureKind.AUTHENTICATION
        assert "anonymous sign-in disabled" in store.init_error.error_message
        assert store.init_error.retryable

    @pytest.mark.asyncio
    async def test_invalid_saved_config_falls_back_to_local(self, store, device, storage_settings):
        device.write_json(storage_settings.remote_config_key, {"apiKey": "only-a-key"})

        assert await store.initialize() == StoreMode.LOCAL
        assert store.init_error.failure == FailureKind.SERIALIZATION

    @pytest.mark.asyncio
    async def test_damaged_local_snapshot_still_initializes(self, store, device, storage_settings):
        device.write_json(storage_settings.app_id, {
            "tasks": [{"id": 7, "estimatedCost": -1}, {"id": "t1", "estimatedCost": 40}],
        })

        assert await store.initialize() == StoreMode.LOCAL
        assert [t.id for t in store.data.tasks] == ["t1"]
        assert store.stats.max == 40

    @pytest.mark.asyncio
    async def test_backend_construction_failure_falls_back_to_local(
        self, device, storage_settings, remote_config
    ):
        def broken_factory(config):
            raise RuntimeError("FIREBASE_WRITE_TIMEOUT_SECONDS is not a number")

        store = Store(
            device=device,
            storage_settings=storage_settings,
            remote_backend_factory=broken_factory,
        )
        saved_config(device, storage_settings, remote_config)

        assert await store.initialize() == StoreMode.LOCAL
        assert store.init_error.failure == FailureKind.STORAGE
        assert "FIREBASE_WRITE_TIMEOUT_SECONDS" in store.init_error.error_message

        added = await store.add("tasks", {"title": "Still works offline"})
        assert added.success

    @pytest.mark.asyncio
    async def test_retry_after_failure(
        self, store, device, storage_settings, remote_config, auth_client
    ):
        saved_config(device, storage_settings, remote_config)
        auth_client.error = AuthenticationError("offline")
        await store.initialize()
        assert store.mode == StoreMode.LOCAL

        auth_client.error = None
        assert await store.retry() == StoreMode.REMOTE
        assert store.init_error is None
        await store.close()

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(
        self, store, device, storage_settings, remote_config, fake_client
    ):
        await store.initialize()
        await store.add("tasks", {"title": "Local only", "estimatedCost": 10})

        assert await store.connect_remote(remote_config) == StoreMode.REMOTE
        assert device.read_json(storage_settings.remote_config_key)["projectId"] == "demo-album"
        assert fake_client.active_watches() == len(Collection)
        assert store.data.tasks == ()

        assert await store.disconnect_remote() == StoreMode.LOCAL
        assert device.read_json(storage_settings.remote_config_key) is None
        assert fake_client.active_watches() == 0
        assert [t.title for t in store.data.tasks] == ["Local only"]

    @pytest.mark.asyncio
    async def test_connect_with_incomplete_config_saves_nothing(self, store, device, storage_settings):
        await store.initialize()
        with pytest.raises(ValueError):
            await store.connect_remote({"apiKey": "key"})
        assert device.read_json(storage_settings.remote_config_key) is None
        assert store.mode == StoreMode.LOCAL

    @pytest.mark.asyncio
    async def test_round_trip_through_remote_keeps_local_stats(self, store, remote_config):
        await store.initialize()
        await store.add("tasks", {"estimatedCost": 100, "isOptional": True})
        await store.add("misc", {"amount": 25})
        before = store.stats

        await store.connect_remote(remote_config)
        await store.disconnect_remote()

        assert store.stats == before

    @pytest.mark.asyncio
    async def test_listeners_follow_mode_changes(self, store):
        modes = []
        store.subscribe(lambda state: modes.append(state.mode))
        await store.initialize()
        assert modes[-1] == StoreMode.LOCAL


class TestMutationGateway:
    """Same contract whichever backend is active."""

    @pytest.mark.asyncio
    async def test_mutation_before_initialization(self, store):
        result = await store.add("tasks", {"title": "Too early"})

        assert not result.success
        assert result.failure == FailureKind.NOT_READY
        assert result.retryable
        assert result.mode == StoreMode.INITIALIZING

    @pytest.mark.asyncio
    async def test_add_update_delete_locally(self, store):
        await store.initialize()

        added = await store.add(Collection.TASKS, {"title": "Mix", "estimated_cost": "300"})
        assert added.success
        assert added.operation == MutationOperation.ADD
        assert added.mode == StoreMode.LOCAL
        assert store.stats.max == 300

        updated = await store.update("tasks", added.record_id, {"actualCost": 280})
        assert updated.success
        assert store.stats.actual == 280

        deleted = await store.delete("tasks", added.record_id)
        assert deleted.success
        assert store.data.tasks == ()

    @pytest.mark.asyncio
    async def test_update_is_idempotent(self, store):
        await store.initialize()
        added = await store.add("tasks", {"title": "Mix"})
        partial = {"quotedCost": 120, "title": "Mix v2"}

        await store.update("tasks", added.record_id, partial)
        once = store.data.find(Collection.TASKS, added.record_id).to_document()
        await store.update("tasks", added.record_id, partial)
        twice = store.data.find(Collection.TASKS, added.record_id).to_document()

        assert once == twice

    @pytest.mark.asyncio
    async def test_update_cannot_change_identifier(self, store):
        await store.initialize()
        added = await store.add("vendors", {"name": "Studio"})
        await store.update("vendors", added.record_id, {"id": "hijacked", "name": "Studio B"})

        assert store.data.find(Collection.VENDORS, "hijacked") is None
        assert store.data.find(Collection.VENDORS, added.record_id).name == "Studio B"

    @pytest.mark.asyncio
    async def test_model_payload(self, store):
        await store.initialize()
        result = await store.add("tasks", Task(id="ignored", estimated_cost=50))
        assert result.success
        assert result.record_id != "ignored"
        assert store.stats.max == 50

    @pytest.mark.asyncio
    async def test_invalid_payload_is_a_serialization_failure(self, store):
        await store.initialize()
        result = await store.add("misc_expenses", {"amount": -5})

        assert not result.success
        assert result.failure == FailureKind.SERIALIZATION
        assert not result.retryable
        assert store.data.misc == ()

    @pytest.mark.asyncio
    async def test_update_unknown_record(self, store):
        await store.initialize()
        result = await store.update("tasks", "missing", {"title": "x"})
        assert result.failure == FailureKind.NOT_FOUND
        assert result.record_id == "missing"

    @pytest.mark.asyncio
    async def test_unknown_collection(self, store):
        await store.initialize()
        with pytest.raises(ValueError):
            await store.add("invoices", {})

    @pytest.mark.asyncio
    async def test_save_settings(self, store):
        await store.initialize()
        first = await store.save_settings({"theme": "dark"})
        await store.save_settings({"currency": "EUR", "id": "ignored"})

        assert first.success
        assert first.operation == MutationOperation.SAVE_SETTINGS
        assert store.data.settings.to_document() == {"theme": "dark", "currency": "EUR"}

    @pytest.mark.asyncio
    async def test_remote_mutations_are_eventually_visible(
        self, store, device, storage_settings, remote_config, fake_client
    ):
        saved_config(device, storage_settings, remote_config)
        await store.initialize()

        result = await store.add("tasks", {"title": "Record vocals", "quotedCost": 900})
        assert result.success
        assert result.mode == StoreMode.REMOTE
        await wait_until(lambda: store.data.find(Collection.TASKS, result.record_id) is not None)
        assert store.stats.max == 900

        settings_result = await store.save_settings({"theme": "dark"})
        assert settings_result.success
        await wait_until(lambda: store.data.settings.to_document() == {"theme": "dark"})
        assert [t.id for t in store.data.tasks] == [result.record_id]
        await store.close()

    @pytest.mark.asyncio
    async def test_mutations_after_close(self, store, device, storage_settings, remote_config, fake_client):
        saved_config(device, storage_settings, remote_config)
        await store.initialize()
        await store.close()

        result = await store.delete("tasks", "t1")
        assert result.failure == FailureKind.NOT_READY
        assert fake_client.active_watches() == 0
        assert fake_client.writes == []


class TestCreateStore:

    @pytest.mark.asyncio
    async def test_factory_uses_configured_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ALBUM_TRACKER_DATA_DIR", str(tmp_path / "data"))
        store = create_store(Settings())

        assert isinstance(store, Store)
        assert await store.initialize() == StoreMode.LOCAL
        assert (tmp_path / "data" / "album-tracker-v2.json").exists()
