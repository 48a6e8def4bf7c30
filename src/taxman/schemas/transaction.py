"""
Canonical transaction object (SSOT).

This is THE single source of truth for an ingested financial event.
Every intake path (manual entry, paper OCR, connector, bank and card feeds)
maps into it; the core reads it and never mutates it.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


class SourceType(str, Enum):
    """Where a transaction was ingested from."""

    MANUAL = "manual"
    PAPER_OCR = "paper_ocr"
    CONNECTOR_API = "connector_api"
    BANK_FEED = "bank_feed"
    CARD_FEED = "card_feed"


class Direction(str, Enum):
    """Money flow relative to the business."""

    INCOME = "income"
    EXPENSE = "expense"


class TransactionValidationError(ValueError):
    """Raw transaction input cannot be turned into a CanonicalTransaction."""

    def __init__(self, message: str, code: str = "INVALID_TRANSACTION"):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


REQUIRED_FIELDS = (
    "transaction_id",
    "source_type",
    "direction",
    "occurred_at",
    "amount",
)


@dataclass(frozen=True)
class CanonicalTransaction:
    """
    Normalized unit of financial activity.

    amount is a positive integer in the smallest currency unit (yen, cents).
    occurred_at is a YYYY-MM-DD string; memo_redacted has already been
    scrubbed of PII by intake (the decision engine scrubs it again).
    """

    transaction_id: str
    source_type: SourceType
    direction: Direction
    occurred_at: str
    amount: int
    currency: str = "JPY"
    memo_redacted: str = ""
    country_code: str = "JP"
    counterparty: Optional[str] = None
    raw_reference: Optional[str] = None

    @property
    def has_receipt(self) -> bool:
        """Paper OCR intake always carries the scanned receipt."""
        return self.source_type == SourceType.PAPER_OCR

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["source_type"] = self.source_type.value
        data["direction"] = self.direction.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanonicalTransaction":
        """
        Build a transaction from raw JSON-like input.

        Raises:
            TransactionValidationError: If a required field is missing, an enum
                value is unknown or the amount is not numeric.
        """
        if not isinstance(data, dict):
            raise TransactionValidationError("transaction must be an object")

        missing = [name for name in REQUIRED_FIELDS if data.get(name) in (None, "")]
        if missing:
            raise TransactionValidationError(f"missing fields: {', '.join(missing)}")

        try:
            source_type = SourceType(str(data["source_type"]).strip().lower())
        except ValueError:
            raise TransactionValidationError(
                f"unknown source_type: {data['source_type']!r}"
            ) from None

        try:
            direction = Direction(str(data["direction"]).strip().lower())
        except ValueError:
            raise TransactionValidationError(
                f"unknown direction: {data['direction']!r}"
            ) from None

        amount = data["amount"]
        if isinstance(amount, bool):
            raise TransactionValidationError("amount must be numeric")
        try:
            amount = int(float(amount))
        except (TypeError, ValueError, OverflowError):
            raise TransactionValidationError(f"amount must be numeric: {amount!r}") from None

        return cls(
            transaction_id=str(data["transaction_id"]),
            source_type=source_type,
            direction=direction,
            occurred_at=str(data["occurred_at"]),
            amount=amount,
            currency=str(data.get("currency") or "JPY").upper(),
            memo_redacted=str(data.get("memo_redacted") or ""),
            country_code=str(data.get("country_code") or "JP").upper(),
            counterparty=data.get("counterparty"),
            raw_reference=data.get("raw_reference"),
        )
