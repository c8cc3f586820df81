"""Shared fixtures: isolated device storage, settings and a fake remote store."""

from pathlib import Path
from typing import Callable

import pytest

from src.config import FirebaseSettings, StorageSettings
from src.models import RemoteConfig
from src.services.storage import DeviceStorage, FirestoreBackend
from src.store import Store

from .fakes import FakeAuthClient, FakeFirestoreClient


@pytest.fixture()
def storage_settings(tmp_path: Path) -> StorageSettings:
    return StorageSettings(data_dir=tmp_path / "device")


@pytest.fixture()
def firebase_settings() -> FirebaseSettings:
    return FirebaseSettings(write_timeout_seconds=2.0, auth_max_attempts=1)


@pytest.fixture()
def device(storage_settings: StorageSettings) -> DeviceStorage:
    return DeviceStorage(storage_settings.data_dir)


@pytest.fixture()
def remote_config() -> RemoteConfig:
    return RemoteConfig(api_key="test-api-key", project_id="demo-album")


@pytest.fixture()
def fake_client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


@pytest.fixture()
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture()
def remote_factory(
    fake_client: FakeFirestoreClient,
    auth_client: FakeAuthClient,
    firebase_settings: FirebaseSettings,
    storage_settings: StorageSettings,
) -> Callable[[RemoteConfig], FirestoreBackend]:
    """Builds remote backends wired to the in-memory store."""

    def factory(config: RemoteConfig) -> FirestoreBackend:
        return FirestoreBackend(
            config,
            app_id=storage_settings.app_id,
            settings=firebase_settings,
            auth_client=auth_client,
            client_factory=lambda *_: fake_client,
        )

    return factory


@pytest.fixture()
def store(device, storage_settings, remote_factory) -> Store:
    return Store(
        device=device,
        storage_settings=storage_settings,
        remote_backend_factory=remote_factory,
    )

