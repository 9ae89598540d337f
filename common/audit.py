"""
Jewelry Back-Office - Audit Trail
==================================
Write-only sink for business audit records. Services call record()
after a successful commit; nothing in this package reads it back.
"""

import json
import logging
import threading
from decimal import Decimal
from typing import Any, Optional

from common.helpers import now_utc

logger = logging.getLogger("jewelry.audit")


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


class AuditSink:
    """Interface: one call per committed business action."""

    def record(
        self,
        action: str,
        module: str,
        entity_id: Any,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        actor: str = "system",
    ) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    """Default sink: one JSON line per record on the jewelry.audit logger."""

    def record(self, action, module, entity_id, before=None, after=None, actor="system"):
        payload = {
            "action": action,
            "module": module,
            "entity_id": entity_id,
            "before": before,
            "after": after,
            "actor": actor,
            "at": now_utc(),
        }
        logger.info(json.dumps(payload, default=_default, sort_keys=True))


class MemoryAuditSink(AuditSink):
    """Keeps records in a list. Used by tests and local tooling."""

    def __init__(self):
        self.records = []
        self._lock = threading.Lock()

    def record(self, action, module, entity_id, before=None, after=None, actor="system"):
        with self._lock:
            self.records.append({
                "action": action,
                "module": module,
                "entity_id": entity_id,
                "before": before,
                "after": after,
                "actor": actor,
            })

    def actions(self) -> list:
        return [r["action"] for r in self.records]


# Singleton
audit_sink = LoggingAuditSink()
