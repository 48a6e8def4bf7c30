"""
QuickBooks Online adapter.

Drafts are cash Purchase transactions (POST /v3/company/{realm}/purchase)
paid from the first active bank account. QuickBooks has no draft state for
purchases, so ours are recognised by the PrivateNote marker.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from ...schemas import OAuthSession, PostingCommand, ReviewQueueItem
from ..base import (
    ENGLISH_ACCOUNT_KEYWORD_MAP,
    ENGLISH_FALLBACK_KEYWORDS,
    AccountingAdapter,
    DraftMappingError,
    DraftRequest,
    ProviderPreconditionError,
    RequestContext,
    allocated_amount,
    build_draft_description,
    has_draft_marker,
    json_object,
    match_account,
    strip_draft_marker,
    to_major_units,
)

logger = logging.getLogger(__name__)

MINOR_VERSION = "73"
MAX_PRIVATE_NOTE = 4000

# Tax code names that mean "taxable purchase" across QBO regions
PREFERRED_TAX_CODE_NAMES = ("tax", "standard", "gst", "vat", "input")
EXCLUDED_TAX_CODE_NAMES = ("non", "exempt", "zero", "out of scope")


@dataclass
class QuickBooksPostingContext:
    expense_accounts: list[dict]
    tax_code_id: str
    bank_account_id: str


def _active(rows: list[dict]) -> list[dict]:
    return [row for row in rows if isinstance(row, dict) and row.get("Active", True) and row.get("Id")]


def pick_tax_code_id(tax_codes: list[dict]) -> Optional[str]:
    """Prefer a taxable-purchase code, else the first active code."""
    for code in tax_codes:
        name = str(code.get("Name") or "").lower()
        if any(word in name for word in EXCLUDED_TAX_CODE_NAMES):
            continue
        if any(word in name for word in PREFERRED_TAX_CODE_NAMES):
            return str(code["Id"])
    return str(tax_codes[0]["Id"]) if tax_codes else None


class QuickBooksAdapter(AccountingAdapter):
    """QuickBooks Online Accounting API."""

    provider = "quickbooks"
    prefix = "QBO"

    def _api_root(self, session: OAuthSession) -> str:
        return f"{self.config.api_base_url.rstrip('/')}/v3/company/{session.account_id}"

    async def _query(
        self,
        ctx: RequestContext,
        statement: str,
        entity: str,
        failure_code: Optional[str] = None,
        message: str = "",
    ) -> list[dict]:
        """Run a QBO query; with failure_code set, errors become precondition failures."""
        params = {"query": statement, "minorversion": MINOR_VERSION}
        if failure_code:
            body = await self._load_resource(ctx, "/query", params, failure_code, message)
        else:
            body = await self._get_json(ctx, "/query", params)
        rows = json_object(json_object(body).get("QueryResponse")).get(entity) or []
        return [row for row in rows if isinstance(row, dict)]

    async def _load_posting_context(self, ctx: RequestContext) -> QuickBooksPostingContext:
        expense_accounts = _active(
            await self._query(
                ctx,
                "select * from Account where AccountType = 'Expense' MAXRESULTS 1000",
                "Account",
                "QBO_ACCOUNTS_UNAVAILABLE",
                "QuickBooks勘定科目の取得に失敗しました。",
            )
        )
        if not expense_accounts:
            raise ProviderPreconditionError(
                "QBO_ACCOUNTS_UNAVAILABLE",
                500,
                "QuickBooks勘定科目の取得に失敗しました。",
                "Check provider settings and retry.",
            )

        tax_codes = _active(
            await self._query(
                ctx,
                "select * from TaxCode",
                "TaxCode",
                "QBO_TAX_CODE_UNAVAILABLE",
                "QuickBooks税コードの取得に失敗しました。",
            )
        )
        tax_code_id = pick_tax_code_id(tax_codes)
        if not tax_code_id:
            raise ProviderPreconditionError(
                "QBO_TAX_CODE_UNAVAILABLE",
                500,
                "QuickBooks税コードが見つかりませんでした。",
                "Set up tax codes in QuickBooks and retry.",
            )

        bank_accounts = _active(
            await self._query(
                ctx,
                "select * from Account where AccountType = 'Bank'",
                "Account",
                "QBO_BANK_ACCOUNT_MISSING",
                "QuickBooks銀行口座の取得に失敗しました。",
            )
        )
        if not bank_accounts:
            raise ProviderPreconditionError(
                "QBO_BANK_ACCOUNT_MISSING",
                500,
                "QuickBooks銀行口座が見つかりませんでした。",
                "Add a bank account in QuickBooks and retry.",
            )

        return QuickBooksPostingContext(
            expense_accounts=expense_accounts,
            tax_code_id=tax_code_id,
            bank_account_id=str(bank_accounts[0]["Id"]),
        )

    def _build_draft_request(
        self, posting_context: QuickBooksPostingContext, command: PostingCommand
    ) -> DraftRequest:
        account = match_account(
            command.decision.category,
            posting_context.expense_accounts,
            ENGLISH_ACCOUNT_KEYWORD_MAP,
            ENGLISH_FALLBACK_KEYWORDS,
            name_field="Name",
        )
        if account is None:
            raise DraftMappingError(f"No QuickBooks account for '{command.decision.category}'")

        description = build_draft_description(command)
        amount = to_major_units(allocated_amount(command), command.transaction.currency)
        return DraftRequest(
            method="POST",
            path="/purchase",
            params={"minorversion": MINOR_VERSION},
            payload={
                "PaymentType": "Cash",
                "AccountRef": {"value": posting_context.bank_account_id},
                "TxnDate": command.decision.date,
                "PrivateNote": description[:MAX_PRIVATE_NOTE],
                "Line": [
                    {
                        "DetailType": "AccountBasedExpenseLineDetail",
                        "Amount": float(amount),
                        "Description": description,
                        "AccountBasedExpenseLineDetail": {
                            "AccountRef": {"value": str(account["Id"])},
                            "TaxCodeRef": {"value": posting_context.tax_code_id},
                        },
                    }
                ],
            },
        )

    def _extract_remote_id(self, body: Any) -> Optional[Union[str, int]]:
        return json_object(json_object(body).get("Purchase")).get("Id")

    def _extract_request_id(self, response: httpx.Response) -> Optional[str]:
        return response.headers.get("intuit_tid")

    async def _list_drafts(self, ctx: RequestContext, limit: int) -> list[dict]:
        # PrivateNote is not queryable, so fetch recent purchases and filter locally
        return await self._query(
            ctx,
            f"select * from Purchase ORDERBY MetaData.CreateTime DESC MAXRESULTS {limit}",
            "Purchase",
        )

    def _to_queue_item(self, draft: dict) -> Optional[ReviewQueueItem]:
        note = draft.get("PrivateNote") or ""
        if not has_draft_marker(note):
            return None
        try:
            amount = float(draft.get("TotalAmt") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        return ReviewQueueItem(
            provider=self.provider,
            id=draft.get("Id"),
            issue_date=str(draft.get("TxnDate") or ""),
            amount=amount,
            status="pending_review",
            memo=strip_draft_marker(note),
            currency=json_object(draft.get("CurrencyRef")).get("value"),
            next_action="Review and finalize in QuickBooks.",
            contact=self.contact,
        )
