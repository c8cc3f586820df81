"""
Data Models Package

This package contains all Pydantic models used by the Album Tracker store.
All data flowing through the store must conform to these schemas.
"""

from src.models.records import (
    CHOICE_GROUP,
    DEFAULT_STAGES,
    SETTINGS_DOCUMENT_ID,
    Collection,
    Event,
    MiscExpense,
    Photo,
    ProjectSettings,
    Record,
    Stage,
    Task,
    Vendor,
    parse_records,
)
from src.models.store import (
    CollectionSnapshot,
    CostTotals,
    FailureKind,
    InitializationFailure,
    MutationOperation,
    MutationResult,
    RemoteConfig,
    StoreData,
    StoreMode,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "CHOICE_GROUP",
    "DEFAULT_STAGES",
    "SETTINGS_DOCUMENT_ID",
    "Collection",
    "Event",
    "MiscExpense",
    "Photo",
    "ProjectSettings",
    "Record",
    "Stage",
    "Task",
    "Vendor",
    "parse_records",
    # Store models
    "CollectionSnapshot",
    "CostTotals",
    "FailureKind",
    "InitializationFailure",
    "MutationOperation",
    "MutationResult",
    "RemoteConfig",
    "StoreData",
    "StoreMode",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
