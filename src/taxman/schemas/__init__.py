"""
SSOT (Single Source of Truth) schemas for the core.

These canonical schemas are the ONLY models used across all modules.
No duplicated "near-same" models allowed.
"""

from .audit import AuditMeta, create_audit_meta, emit_audit_meta
from .decision import (
    RULE_ONLY_MODEL_VERSION,
    ClassificationDecision,
    DecisionRank,
    PostingCommand,
    select_postable_commands,
)
from .posting import (
    BatchResult,
    OAuthSession,
    OperationMode,
    PostingResult,
    QueueResult,
    ReviewQueueItem,
    TenantContext,
    TokenResponse,
)
from .transaction import (
    CanonicalTransaction,
    Direction,
    SourceType,
    TransactionValidationError,
)

__all__ = [
    # Transaction
    "CanonicalTransaction",
    "Direction",
    "SourceType",
    "TransactionValidationError",
    # Decision
    "ClassificationDecision",
    "DecisionRank",
    "PostingCommand",
    "RULE_ONLY_MODEL_VERSION",
    "select_postable_commands",
    # Posting
    "BatchResult",
    "OAuthSession",
    "OperationMode",
    "PostingResult",
    "QueueResult",
    "ReviewQueueItem",
    "TenantContext",
    "TokenResponse",
    # Audit
    "AuditMeta",
    "create_audit_meta",
    "emit_audit_meta",
]
