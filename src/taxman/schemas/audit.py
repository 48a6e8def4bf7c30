"""
Audit metadata.

Non-retention policy: audit events are emitted as structured log lines on the
``taxman.audit`` logger only. Payloads (memos, amounts, tokens) are never
included; the host decides where the log stream goes.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

audit_logger = logging.getLogger("taxman.audit")


@dataclass
class AuditMeta:
    """One audit event about a classification or posting action."""

    event_id: str
    event_type: str
    actor_user_id: str
    status: str  # "success" | "error"
    created_at: str
    organization_id: Optional[str] = None
    provider: Optional[str] = None
    transaction_id: Optional[str] = None
    decision_id: Optional[str] = None
    diagnostic_code: Optional[str] = None
    rule_version: Optional[str] = None
    model_version: Optional[str] = None


def create_audit_meta(
    event_type: str,
    actor_user_id: str,
    status: str,
    **fields: Optional[str],
) -> AuditMeta:
    """Create an audit record with a fresh event id and UTC timestamp."""
    return AuditMeta(
        event_id=str(uuid.uuid4()),
        event_type=event_type,
        actor_user_id=actor_user_id,
        status=status,
        created_at=datetime.now(timezone.utc).isoformat(),
        **fields,
    )


def emit_audit_meta(meta: AuditMeta) -> None:
    """Write the audit record as a single JSON line."""
    payload = {key: value for key, value in asdict(meta).items() if value is not None}
    audit_logger.info("[audit-meta] %s", json.dumps(payload, ensure_ascii=False, sort_keys=True))
