"""
Posting-side schemas: tenant context, OAuth credentials, per-item results,
batch results and review queue entries.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union


class OperationMode(str, Enum):
    """Who drives the workflow: a tax professional or the owner directly."""

    TAX_PRO = "tax_pro"
    DIRECT = "direct"


@dataclass(frozen=True)
class TenantContext:
    """Resolved once per request by the host application; passed through opaquely."""

    region_code: str
    organization_id: str
    user_id: str
    mode: OperationMode = OperationMode.TAX_PRO


@dataclass
class TokenResponse:
    """OAuth token endpoint response (refresh_token grant)."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 0
    token_type: str = "bearer"
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Optional["TokenResponse"]:
        """Parse a token endpoint body; None when no access token was issued."""
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            return None
        try:
            expires_in = int(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return cls(
            access_token=str(access_token),
            refresh_token=payload.get("refresh_token") or None,
            expires_in=expires_in,
            token_type=str(payload.get("token_type") or "bearer"),
            scope=str(payload.get("scope") or ""),
        )


@dataclass(frozen=True)
class OAuthSession:
    """
    Credentials for one provider session.

    account_id is the provider's account context: freee company_id,
    QuickBooks realm_id or Xero tenant_id.
    """

    access_token: str = ""
    refresh_token: str = ""
    account_id: str = ""
    shared_mode: bool = False

    @property
    def connected(self) -> bool:
        return bool(self.access_token)

    def with_tokens(self, refreshed: TokenResponse) -> "OAuthSession":
        """Apply a refresh result; keeps the old refresh token if none was issued."""
        return replace(
            self,
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or self.refresh_token,
        )


@dataclass
class PostingResult:
    """Outcome of one posting attempt for one command."""

    provider: str
    transaction_id: str
    ok: bool
    status: int
    diagnostic_code: str
    message: str
    next_action: str = ""
    contact: str = ""
    remote_id: Optional[Union[str, int]] = None
    request_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BatchResult:
    """Aggregated outcome of one posting batch."""

    provider: str
    ok: bool
    status: int
    diagnostic_code: str
    success: int = 0
    failed: int = 0
    results: list[PostingResult] = field(default_factory=list)
    # Latest token refresh during the batch (caller persists it)
    refreshed: Optional[TokenResponse] = None
    session: Optional[OAuthSession] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "ok": self.ok,
            "status": self.status,
            "diagnostic_code": self.diagnostic_code,
            "success": self.success,
            "failed": self.failed,
            "results": [result.to_dict() for result in self.results],
        }


@dataclass
class ReviewQueueItem:
    """A draft this system created in a provider account, awaiting finalization."""

    provider: str
    id: Optional[Union[str, int]]
    issue_date: str
    amount: float
    status: str
    memo: str
    currency: Optional[str] = None
    next_action: str = ""
    contact: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueueResult:
    """Outcome of one review queue fetch."""

    provider: str
    ok: bool
    status: int
    diagnostic_code: str
    queue: list[ReviewQueueItem] = field(default_factory=list)
    refreshed: Optional[TokenResponse] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "ok": self.ok,
            "status": self.status,
            "diagnostic_code": self.diagnostic_code,
            "queue": [item.to_dict() for item in self.queue],
        }
