"""
Audit Models for Album Tracker

Every significant store action produces an audit event:
1. Which backend the store committed to, and why
2. Every mutation routed through the gateway, and its outcome
3. Every remote snapshot applied to the in-memory state
4. Data problems the store tolerated (malformed documents, cycles)

DESIGN DECISION: Events are structured records, not free text, so the same
event can be rendered as a log line today and stored elsewhere later.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Mode selection
    STORE_INITIALIZED = "store_initialized"
    REMOTE_CONNECTION_FAILED = "remote_connection_failed"
    MODE_SWITCH_REQUESTED = "mode_switch_requested"

    # Mutations
    RECORD_ADDED = "record_added"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    SETTINGS_SAVED = "settings_saved"
    MUTATION_FAILED = "mutation_failed"

    # Sync
    SNAPSHOT_APPLIED = "snapshot_applied"
    SUBSCRIPTIONS_CLOSED = "subscriptions_closed"

    # Data integrity
    MALFORMED_DOCUMENT_SKIPPED = "malformed_document_skipped"
    TASK_CYCLE_DETECTED = "task_cycle_detected"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What the event is about
    mode: Optional[str] = None
    collection: Optional[str] = None
    record_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "mode": self.mode,
            "collection": self.collection,
            "record_id": self.record_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.store_initialized("local")
        event = AuditEventBuilder.record_added("local", "tasks", "t1")
    """

    @staticmethod
    def store_initialized(mode: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_INITIALIZED,
            mode=mode,
            description=f"Store committed to {mode} mode",
        )

    @staticmethod
    def remote_connection_failed(failure: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_CONNECTION_FAILED,
            severity=AuditSeverity.ERROR,
            description="Remote backend unavailable, falling back to local mode",
            details={"failure": failure},
            error_message=error_message,
        )

    @staticmethod
    def mode_switch_requested(target: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODE_SWITCH_REQUESTED,
            description=f"Reinitializing store towards {target} mode",
            details={"target": target},
        )

    @staticmethod
    def mutation_succeeded(
        operation: str,
        mode: str,
        collection: Optional[str],
        record_id: Optional[str],
    ) -> AuditEvent:
        event_type = {
            "add": AuditEventType.RECORD_ADDED,
            "update": AuditEventType.RECORD_UPDATED,
            "delete": AuditEventType.RECORD_DELETED,
            "save_settings": AuditEventType.SETTINGS_SAVED,
        }[operation]
        return AuditEvent(
            event_type=event_type,
            mode=mode,
            collection=collection,
            record_id=record_id,
            description=f"{operation} accepted by {mode} backend",
        )

    @staticmethod
    def mutation_failed(
        operation: str,
        mode: str,
        collection: Optional[str],
        record_id: Optional[str],
        failure: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            mode=mode,
            collection=collection,
            record_id=record_id,
            description=f"{operation} failed ({failure})",
            details={"operation": operation, "failure": failure},
            error_message=error_message,
        )

    @staticmethod
    def snapshot_applied(collection: str, record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_APPLIED,
            severity=AuditSeverity.DEBUG,
            mode="remote",
            collection=collection,
            description=f"Replaced {collection} with {record_count} record(s)",
            details={"record_count": record_count},
        )

    @staticmethod
    def subscriptions_closed(count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTIONS_CLOSED,
            mode="remote",
            description=f"Closed {count} remote subscription(s)",
            details={"subscription_count": count},
        )

    @staticmethod
    def malformed_document_skipped(
        collection: str,
        record_id: Any,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MALFORMED_DOCUMENT_SKIPPED,
            severity=AuditSeverity.WARNING,
            collection=collection,
            record_id=None if record_id is None else str(record_id),
            description="Skipped a record that could not be parsed",
            error_message=error_message,
        )

    @staticmethod
    def task_cycle_detected(cycle: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_CYCLE_DETECTED,
            severity=AuditSeverity.WARNING,
            collection="tasks",
            description="Tasks with cyclic parent references excluded from totals",
            details={"cycle": cycle},
        )
