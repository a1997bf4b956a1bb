"""
Audit events for posting activity.

The posting services report what they changed (batch ingested, batch
auto-posted, bulk transition, manual posting, reopen, archive) to an
`AuditSink`. Storage of those events belongs to the surrounding
application; the default sink emits one structured log line per event.
Details must not carry PHI (no patient names, no raw remittance content).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from rcm.utils.clock import utcnow
from rcm.utils.logger import get_logger

logger = get_logger(__name__)


class AuditSink(ABC):
    @abstractmethod
    def record(
        self,
        action: str,
        entity: str,
        entity_id: Any,
        operator_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record one audit event."""


class LoggingAuditSink(AuditSink):
    """Writes audit events to the `rcm.audit` structured logger."""

    def __init__(self):
        self.logger = get_logger("rcm.audit")

    def record(self, action, entity, entity_id, operator_id, details=None):
        self.logger.info(
            "Audit event",
            action=action,
            entity=entity,
            entity_id=entity_id,
            operator_id=operator_id,
            recorded_at=utcnow().isoformat(),
            **(details or {}),
        )


class InMemoryAuditSink(AuditSink):
    """Keeps events in a list; used by tests and local tooling."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def record(self, action, entity, entity_id, operator_id, details=None):
        self.events.append(
            {
                "action": action,
                "entity": entity,
                "entity_id": entity_id,
                "operator_id": operator_id,
                "details": dict(details or {}),
            }
        )

    def actions(self) -> List[str]:
        return [event["action"] for event in self.events]


default_audit_sink = LoggingAuditSink()
