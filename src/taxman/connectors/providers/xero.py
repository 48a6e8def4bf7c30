"""
Xero adapter.

Drafts are ACCPAY bills in DRAFT status (PUT /api.xro/2.0/Invoices), raised
against one configured contact. The Reference field carries the marker.
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

MAX_REFERENCE = 255


@dataclass
class XeroPostingContext:
    expense_accounts: list[dict]
    tax_type: str
    contact_id: str


def pick_tax_type(tax_rates: list[dict]) -> Optional[str]:
    """Prefer an active INPUT (purchase) rate usable on expenses."""
    usable = [
        rate
        for rate in tax_rates
        if rate.get("TaxType")
        and str(rate.get("Status") or "ACTIVE").upper() == "ACTIVE"
        and rate.get("CanApplyToExpenses", True)
    ]
    for rate in usable:
        if str(rate["TaxType"]).upper().startswith("INPUT"):
            return rate["TaxType"]
    return usable[0]["TaxType"] if usable else None


def _quote(value: str) -> str:
    return str(value).replace('"', '\\"')


class XeroAdapter(AccountingAdapter):
    """Xero Accounting API."""

    provider = "xero"
    prefix = "XERO"

    def _api_root(self, session: OAuthSession) -> str:
        return f"{self.config.api_base_url.rstrip('/')}/api.xro/2.0"

    def _headers(self, session: OAuthSession) -> dict[str, str]:
        headers = super()._headers(session)
        headers["Xero-tenant-id"] = session.account_id
        return headers

    async def _load_posting_context(self, ctx: RequestContext) -> XeroPostingContext:
        accounts_body = await self._load_resource(
            ctx,
            "/Accounts",
            {"where": 'Class=="EXPENSE"'},
            "XERO_ACCOUNTS_UNAVAILABLE",
            "Xero勘定科目の取得に失敗しました。",
        )
        expense_accounts = [
            account
            for account in json_object(accounts_body).get("Accounts") or []
            if isinstance(account, dict)
            and account.get("Code")
            and str(account.get("Status") or "ACTIVE").upper() == "ACTIVE"
        ]
        if not expense_accounts:
            raise ProviderPreconditionError(
                "XERO_ACCOUNTS_UNAVAILABLE",
                500,
                "Xero勘定科目の取得に失敗しました。",
                "Check provider settings and retry.",
            )

        rates_body = await self._load_resource(
            ctx,
            "/TaxRates",
            None,
            "XERO_TAX_CODE_UNAVAILABLE",
            "Xero税率の取得に失敗しました。",
        )
        tax_rates = [r for r in json_object(rates_body).get("TaxRates") or [] if isinstance(r, dict)]
        tax_type = pick_tax_type(tax_rates)
        if not tax_type:
            raise ProviderPreconditionError(
                "XERO_TAX_CODE_UNAVAILABLE",
                500,
                "Xero税率が見つかりませんでした。",
                "Set up tax rates in Xero and retry.",
            )

        contact_name = self.config.default_contact_name or ""
        contacts_body = await self._load_resource(
            ctx,
            "/Contacts",
            {"where": f'Name=="{_quote(contact_name)}"'},
            "XERO_CONTACT_MISSING",
            "Xero取引先の取得に失敗しました。",
        )
        contacts = [
            c for c in json_object(contacts_body).get("Contacts") or [] if isinstance(c, dict)
        ]
        contact_id = contacts[0].get("ContactID") if contacts else None
        if not contact_id:
            raise ProviderPreconditionError(
                "XERO_CONTACT_MISSING",
                500,
                f"Xero取引先「{contact_name}」が見つかりませんでした。",
                "Create the default contact in Xero and retry.",
            )

        return XeroPostingContext(
            expense_accounts=expense_accounts,
            tax_type=tax_type,
            contact_id=contact_id,
        )

    def _build_draft_request(
        self, posting_context: XeroPostingContext, command: PostingCommand
    ) -> DraftRequest:
        account = match_account(
            command.decision.category,
            posting_context.expense_accounts,
            ENGLISH_ACCOUNT_KEYWORD_MAP,
            ENGLISH_FALLBACK_KEYWORDS,
            name_field="Name",
        )
        if account is None:
            raise DraftMappingError(f"No Xero account for '{command.decision.category}'")

        description = build_draft_description(command)
        currency = command.transaction.currency
        amount = to_major_units(allocated_amount(command), currency)
        invoice = {
            "Type": "ACCPAY",
            "Status": "DRAFT",
            "Contact": {"ContactID": posting_context.contact_id},
            "Date": command.decision.date,
            "Reference": description[:MAX_REFERENCE],
            "LineAmountTypes": "Inclusive",
            "LineItems": [
                {
                    "Description": description,
                    "Quantity": 1,
                    "UnitAmount": float(amount),
                    "AccountCode": account["Code"],
                    "TaxType": posting_context.tax_type,
                }
            ],
        }
        if currency:
            invoice["CurrencyCode"] = currency.upper()
        return DraftRequest(method="PUT", path="/Invoices", payload={"Invoices": [invoice]})

    def _extract_remote_id(self, body: Any) -> Optional[Union[str, int]]:
        invoices = json_object(body).get("Invoices") or []
        if invoices and isinstance(invoices[0], dict):
            return invoices[0].get("InvoiceID")
        return None

    def _extract_request_id(self, response: httpx.Response) -> Optional[str]:
        return response.headers.get("xero-correlation-id")

    async def _list_drafts(self, ctx: RequestContext, limit: int) -> list[dict]:
        body = await self._get_json(
            ctx,
            "/Invoices",
            {
                "where": 'Type=="ACCPAY"&&Status=="DRAFT"',
                "order": "UpdatedDateUTC DESC",
                "page": 1,
            },
        )
        invoices = json_object(body).get("Invoices") or []
        return [invoice for invoice in invoices if isinstance(invoice, dict)]

    def _to_queue_item(self, draft: dict) -> Optional[ReviewQueueItem]:
        reference = draft.get("Reference") or ""
        if not has_draft_marker(reference):
            return None
        try:
            amount = float(draft.get("Total") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        # DateString is ISO ("2026-02-14T00:00:00"); Date is "/Date(...)/"
        issue_date = str(draft.get("DateString") or "")[:10]
        return ReviewQueueItem(
            provider=self.provider,
            id=draft.get("InvoiceID"),
            issue_date=issue_date,
            amount=amount,
            status=str(draft.get("Status") or "DRAFT").lower(),
            memo=strip_draft_marker(reference),
            currency=draft.get("CurrencyCode"),
            next_action="Review and approve the bill in Xero.",
            contact=self.contact,
        )
