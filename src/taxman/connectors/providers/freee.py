"""
freee accounting adapter.

Drafts are expense deals (POST /api/1/deals). freee has no separate draft
state for deals, so our deals are recognised by the description marker.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from ...schemas import OAuthSession, PostingCommand, ReviewQueueItem
from ..base import (
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
)

logger = logging.getLogger(__name__)

MAX_DETAIL_DESCRIPTION = 250

PREFERRED_TAX_NAMES = ("purchase_with_tax_10", "purchase_without_tax_10", "purchase_with_tax_8")

# (category keywords, account item name keywords)
ACCOUNT_KEYWORD_MAP: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("通信", "internet", "hosting"), ("通信費",)),
    (("仕入", "食材", "inventory"), ("仕入",)),
    (("消耗", "備品", "supplies"), ("消耗品",)),
    (("広告", "ad"), ("広告",)),
    (("交通", "運賃", "配送"), ("荷造運賃", "旅費交通費")),
)
FALLBACK_ACCOUNT_KEYWORDS = ("雑費", "消耗品")


@dataclass
class FreeePostingContext:
    company_id: Union[int, str]
    account_items: list[dict]
    tax_code: int


def _company_id(value: str) -> Union[int, str]:
    """freee company ids are numeric; keep the stored form if it is not."""
    return int(value) if str(value).isdigit() else value


def pick_tax_code(taxes: list[dict]) -> Optional[int]:
    """Prefer standard taxable-purchase codes, then any 課税仕入 code, then the first."""
    for tax in taxes:
        if str(tax.get("name") or "").strip() in PREFERRED_TAX_NAMES and tax.get("code"):
            return tax["code"]
    for tax in taxes:
        if "課税仕入" in str(tax.get("name_ja") or "") and tax.get("code"):
            return tax["code"]
    if taxes:
        return taxes[0].get("code")
    return None


def pick_account_item_id(category: str, account_items: list[dict]) -> Optional[int]:
    """Map a decision category onto a freee account item id."""
    item = match_account(
        category, account_items, ACCOUNT_KEYWORD_MAP, FALLBACK_ACCOUNT_KEYWORDS
    )
    return item.get("id") if item else None


class FreeeAdapter(AccountingAdapter):
    """freee Accounting API (Japan)."""

    provider = "freee"
    prefix = "FREEE"
    token_auth_in_body = True

    def _api_root(self, session: OAuthSession) -> str:
        return self.config.api_base_url.rstrip("/")

    def is_connected(self, session: OAuthSession) -> bool:
        return bool(session.access_token)

    def _missing_account(self) -> tuple[int, str, str, str]:
        return (
            400,
            "FREEE_COMPANY_MISSING",
            "freee company_id が未設定です。",
            "Select a company and retry.",
        )

    async def _load_posting_context(self, ctx: RequestContext) -> FreeePostingContext:
        company_id = ctx.session.account_id

        items_body = await self._load_resource(
            ctx,
            "/api/1/account_items",
            {"company_id": company_id},
            "FREEE_ACCOUNT_ITEMS_UNAVAILABLE",
            "freee勘定科目の取得に失敗しました。",
        )
        account_items = [
            item for item in json_object(items_body).get("account_items") or [] if isinstance(item, dict)
        ]
        if not account_items:
            raise ProviderPreconditionError(
                "FREEE_ACCOUNT_ITEMS_UNAVAILABLE",
                500,
                "freee勘定科目の取得に失敗しました。",
                "Check provider settings and retry.",
            )

        taxes_body = await self._load_resource(
            ctx,
            f"/api/1/taxes/companies/{company_id}",
            None,
            "FREEE_TAX_CODE_UNAVAILABLE",
            "freee税区分の取得に失敗しました。",
            "Check tax settings in freee.",
        )
        taxes = [tax for tax in json_object(taxes_body).get("taxes") or [] if isinstance(tax, dict)]
        tax_code = pick_tax_code(taxes)
        if not tax_code:
            raise ProviderPreconditionError(
                "FREEE_TAX_CODE_UNAVAILABLE",
                500,
                "freee税区分が見つかりませんでした。",
                "Set default tax in freee and retry.",
            )

        logger.debug("freee: %d account items, tax code %s", len(account_items), tax_code)
        return FreeePostingContext(
            company_id=_company_id(company_id),
            account_items=account_items,
            tax_code=tax_code,
        )

    def _build_draft_request(
        self, posting_context: FreeePostingContext, command: PostingCommand
    ) -> DraftRequest:
        account_item_id = pick_account_item_id(
            command.decision.category, posting_context.account_items
        )
        if not account_item_id:
            raise DraftMappingError(f"No freee account item for '{command.decision.category}'")
        return DraftRequest(
            method="POST",
            path="/api/1/deals",
            payload={
                "company_id": posting_context.company_id,
                "issue_date": command.decision.date,
                "type": "expense",
                "details": [
                    {
                        "account_item_id": account_item_id,
                        "tax_code": posting_context.tax_code,
                        "amount": allocated_amount(command),
                        "description": build_draft_description(command)[:MAX_DETAIL_DESCRIPTION],
                    }
                ],
            },
        )

    def _extract_remote_id(self, body: Any) -> Optional[Union[str, int]]:
        if isinstance(body, dict) and isinstance(body.get("deal"), dict):
            return body["deal"].get("id")
        return None

    def _extract_request_id(self, response: httpx.Response) -> Optional[str]:
        # httpx headers are case-insensitive
        return response.headers.get("x-freee-request-id")

    async def _list_drafts(self, ctx: RequestContext, limit: int) -> list[dict]:
        body = await self._get_json(
            ctx,
            "/api/1/deals",
            {"company_id": ctx.session.account_id, "type": "expense", "limit": limit},
        )
        deals = json_object(body).get("deals") or []
        return [deal for deal in deals if isinstance(deal, dict)]

    def _to_queue_item(self, draft: dict) -> Optional[ReviewQueueItem]:
        details = draft.get("details") or [{}]
        description = (
            draft.get("description")
            or (details[0].get("description") if isinstance(details[0], dict) else None)
            or draft.get("ref_number")
            or ""
        )
        if not has_draft_marker(description):
            return None
        try:
            amount = float(draft.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        return ReviewQueueItem(
            provider=self.provider,
            id=draft.get("id"),
            issue_date=str(draft.get("issue_date") or ""),
            amount=amount,
            status=str(draft.get("status") or draft.get("type") or "draft"),
            memo=strip_draft_marker(description),
            currency="JPY",
            next_action="Review and finalize in freee.",
            contact=self.contact,
        )
