"""
Audit Logger

DESIGN DECISION: Every significant store action is logged as a structured
event. This provides:
1. Traceability of which backend served which write
2. Visibility of failures the UI may not surface yet
3. A record of data problems the store tolerated instead of crashing

Events are rendered locally through structlog as JSON lines.
"""

import logging
from typing import Optional

import structlog
from pydantic import ValidationError

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))
    logging.getLogger("src").setLevel(level.upper())


class AuditLogger:
    """Central audit logging service for the store."""

    def __init__(self, name: str = "src.audit"):
        self._logger = structlog.get_logger(name)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level implied by its severity. Never raises."""
        try:
            log_dict = event.to_log_dict()

            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            self._logger.exception("audit_log_failed", event_type=str(event.event_type))

    def log_store_initialized(self, mode: str) -> None:
        self.log(AuditEventBuilder.store_initialized(mode))

    def log_remote_connection_failed(self, failure: str, error_message: str) -> None:
        self.log(AuditEventBuilder.remote_connection_failed(failure, error_message))

    def log_mode_switch_requested(self, target: str) -> None:
        self.log(AuditEventBuilder.mode_switch_requested(target))

    def log_mutation(
        self,
        operation: str,
        mode: str,
        collection: Optional[str],
        record_id: Optional[str],
    ) -> None:
        self.log(AuditEventBuilder.mutation_succeeded(operation, mode, collection, record_id))

    def log_mutation_failed(
        self,
        operation: str,
        mode: str,
        collection: Optional[str],
        record_id: Optional[str],
        failure: str,
        error_message: str,
    ) -> None:
        self.log(
            AuditEventBuilder.mutation_failed(
                operation, mode, collection, record_id, failure, error_message
            )
        )

    def log_snapshot_applied(self, collection: str, record_count: int) -> None:
        self.log(AuditEventBuilder.snapshot_applied(collection, record_count))

    def log_subscriptions_closed(self, count: int) -> None:
        self.log(AuditEventBuilder.subscriptions_closed(count))

    def log_skipped_documents(self, collection: str, skipped: list[dict]) -> None:
        """Log each document a parser had to drop."""
        for entry in skipped:
            try:
                event = AuditEventBuilder.malformed_document_skipped(
                    collection=entry.get("collection", collection),
                    record_id=entry.get("id"),
                    error_message=entry.get("error", "unparsable"),
                )
            except ValidationError:
                self._logger.exception("audit_log_failed", collection=collection)
                continue
            self.log(event)

    def log_task_cycle(self, cycle: list[str]) -> None:
        self.log(AuditEventBuilder.task_cycle_detected(cycle))
