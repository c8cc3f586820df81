"""
Store Models

The read model (snapshot + derived cost totals), the persistence mode and
the explicit results the mutation gateway hands back to callers.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.records import (
    ZERO,
    Collection,
    Event,
    MiscExpense,
    Money,
    Photo,
    ProjectSettings,
    Record,
    Stage,
    Task,
    Vendor,
    parse_records,
)


class StoreMode(str, Enum):
    """Which backend the store is committed to."""
    INITIALIZING = "initializing"  # No backend yet - interaction not allowed
    LOCAL = "local"                # Device storage only
    REMOTE = "remote"              # Remote document store with live push


class FailureKind(str, Enum):
    """Typed failure categories reported back to callers."""
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    SERIALIZATION = "serialization"
    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    STORAGE = "storage"


class MutationOperation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    SAVE_SETTINGS = "save_settings"


# =============================================================================
# DERIVED FIGURES
# =============================================================================

class CostTotals(BaseModel):
    """Minimum / maximum / actual-spend figures for a subtree or project."""
    model_config = ConfigDict(frozen=True)

    min: Money = ZERO
    max: Money = ZERO
    actual: Money = ZERO

    def __add__(self, other: "CostTotals") -> "CostTotals":
        return CostTotals(
            min=self.min + other.min,
            max=self.max + other.max,
            actual=self.actual + other.actual,
        )

    def plus_flat(self, amount: Decimal) -> "CostTotals":
        """Add the same amount to all three figures."""
        return CostTotals(
            min=self.min + amount,
            max=self.max + amount,
            actual=self.actual + amount,
        )


# =============================================================================
# SNAPSHOT
# =============================================================================

class StoreData(BaseModel):
    """
    Immutable snapshot of everything the store holds.

    Slices are tuples and are only ever replaced wholesale, so their
    identity doubles as a cheap change marker for derived views.
    """
    model_config = ConfigDict(frozen=True)

    tasks: tuple[Task, ...] = ()
    photos: tuple[Photo, ...] = ()
    vendors: tuple[Vendor, ...] = ()
    misc: tuple[MiscExpense, ...] = ()
    events: tuple[Event, ...] = ()
    stages: tuple[Stage, ...] = ()
    settings: ProjectSettings = Field(default_factory=ProjectSettings)

    def records(self, collection: Collection) -> tuple[Record, ...]:
        return getattr(self, collection.slice_key)

    def find(self, collection: Collection, record_id: str) -> Optional[Record]:
        for record in self.records(collection):
            if record.id == record_id:
                return record
        return None

    def with_records(
        self,
        collection: Collection,
        records: Iterable[Record],
    ) -> "StoreData":
        return self.model_copy(update={collection.slice_key: tuple(records)})

    def with_settings(self, settings: ProjectSettings) -> "StoreData":
        return self.model_copy(update={"settings": settings})

    def to_blob(self) -> dict[str, Any]:
        """
        Convert to the persisted local layout.

        One object: every collection list under its slice key, plus settings.
        """
        blob: dict[str, Any] = {
            collection.slice_key: [
                record.to_document() for record in self.records(collection)
            ]
            for collection in Collection
        }
        blob["settings"] = self.settings.to_document()
        return blob

    @classmethod
    def from_blob(
        cls,
        blob: Mapping[str, Any],
    ) -> tuple["StoreData", list[dict[str, Any]]]:
        """
        Parse a persisted local blob.

        Missing keys read as empty; malformed records are skipped.

        Returns:
            (data, skipped) - skipped entries carry the collection name
        """
        slices: dict[str, Any] = {}
        skipped: list[dict[str, Any]] = []
        for collection in Collection:
            documents = blob.get(collection.slice_key) or []
            if not isinstance(documents, list):
                skipped.append({"collection": collection.value, "id": None,
                                "error": "not a list"})
                continue
            records, bad = parse_records(collection.record_model, documents)
            slices[collection.slice_key] = tuple(records)
            skipped.extend({"collection": collection.value, **entry} for entry in bad)

        settings = blob.get("settings")
        if isinstance(settings, Mapping):
            slices["settings"] = ProjectSettings.from_document(settings)
        return cls(**slices), skipped


# =============================================================================
# REMOTE CONNECTION
# =============================================================================

class RemoteConfig(BaseModel):
    """
    Connection details of the remote project, as pasted by the user.

    Saved in device storage; its presence selects remote mode at startup.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True,
    )

    api_key: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    auth_domain: Optional[str] = None
    storage_bucket: Optional[str] = None
    messaging_sender_id: Optional[str] = None
    app_id: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CollectionSnapshot(BaseModel):
    """
    The entire current content of one remote collection.

    Delivered on every change; consumers replace their slice with it.
    """
    collection: Collection
    documents: list[dict[str, Any]] = Field(default_factory=list)
    received_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# RESULTS
# =============================================================================

class MutationResult(BaseModel):
    """
    Outcome of a gateway operation.

    A success only means the backend accepted the write. In remote mode the
    change becomes visible when the subscription re-delivers the collection.
    """
    operation: MutationOperation
    collection: Optional[Collection] = None
    record_id: Optional[str] = None
    mode: StoreMode
    success: bool
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None
    retryable: bool = False
    completed_at: datetime = Field(default_factory=datetime.utcnow)


class InitializationFailure(BaseModel):
    """Why remote mode could not be entered (store fell back to local)."""
    failure: FailureKind
    error_message: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)
    retryable: bool = True
