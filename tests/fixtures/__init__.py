"""
Test fixtures for the decision engine and the provider adapters.

This module provides:
- Builders for transactions, decisions and posting commands
- Sample freee, QuickBooks Online and Xero API responses
- A recording mock transport for httpx clients
"""

import json
from dataclasses import replace
from typing import Any, Callable, Optional
from urllib.parse import parse_qs

import httpx

from taxman.schemas import (
    CanonicalTransaction,
    ClassificationDecision,
    DecisionRank,
    Direction,
    PostingCommand,
    SourceType,
)

FIXED_TODAY = "2026-02-14"


def make_transaction(
    transaction_id: str = "tx-0001",
    memo: str = "タクシー 打合せ移動",
    amount: int = 3000,
    source_type: SourceType = SourceType.PAPER_OCR,
    **overrides: Any,
) -> CanonicalTransaction:
    """Build a canonical expense transaction."""
    fields = {
        "transaction_id": transaction_id,
        "source_type": source_type,
        "direction": Direction.EXPENSE,
        "occurred_at": FIXED_TODAY,
        "amount": amount,
        "currency": "JPY",
        "memo_redacted": memo,
        "country_code": "JP",
    }
    fields.update(overrides)
    return CanonicalTransaction(**fields)


def make_decision(transaction: CanonicalTransaction, **overrides: Any) -> ClassificationDecision:
    """Build an accepted OK decision for a transaction."""
    fields = {
        "decision_id": f"dec-{transaction.transaction_id}",
        "transaction_id": transaction.transaction_id,
        "rank": DecisionRank.OK,
        "is_expense": True,
        "allocation_rate": 1.0,
        "category": "旅費交通費",
        "amount": transaction.amount,
        "date": transaction.occurred_at,
        "reason": "業務移動の交通費として整合しています。",
        "confidence": 0.9,
        "country_code": transaction.country_code,
        "rule_version": "jp-2026-02-no2210-v1",
    }
    fields.update(overrides)
    return ClassificationDecision(**fields)


def _varied_transactions() -> dict[str, CanonicalTransaction]:
    manual = SourceType.MANUAL
    cases = {
        "travel-receipt": make_transaction(memo="タクシー 打合せ移動"),
        "travel-no-receipt": make_transaction(memo="新幹線 出張", amount=14000, source_type=manual),
        "supplies-no-receipt": make_transaction(memo="amazon 梱包材", amount=8000, source_type=manual),
        "shipping": make_transaction(memo="ヤマト 送料", amount=1200, source_type=manual),
        "systems-card": make_transaction(
            memo="AWS サーバー", amount=2000, source_type=SourceType.CARD_FEED
        ),
        "household": make_transaction(memo="家賃 事務所兼自宅", amount=80000),
        "private": make_transaction(memo="飲み会 二次会", amount=5000),
        "private-and-business": make_transaction(memo="タクシー 私用", amount=2000),
        "above-threshold": make_transaction(memo="備品 PC", amount=300000),
        "above-threshold-private": make_transaction(memo="ゲーム 個人", amount=200000),
        "sundries": make_transaction(memo="雑貨", amount=500, source_type=manual),
        "zero-amount": make_transaction(memo="雑貨", amount=0, source_type=manual),
        "negative-amount": make_transaction(memo="雑貨", amount=-1200, source_type=manual),
        "bad-date": make_transaction(memo="雑貨", amount=500, source_type=manual, occurred_at="31/31/2026"),
        "empty-memo": make_transaction(memo="", amount=700, source_type=SourceType.BANK_FEED),
        "pii-memo": make_transaction(
            memo="雑貨 foo@bar.com 090-1234-5678", amount=500, source_type=manual
        ),
        "counterparty-only": make_transaction(
            memo="", amount=900, source_type=manual, counterparty="Uber"
        ),
        "unknown-country": make_transaction(memo="雑貨", amount=500, source_type=manual, country_code="ZZ"),
        "lowercase-country": make_transaction(memo="taxi", amount=1500, country_code="us"),
    }
    return {
        name: replace(transaction, transaction_id=f"tx-{name}")
        for name, transaction in cases.items()
    }


# Transactions covering every rule path plus malformed amounts, dates and memos
VARIED_TRANSACTIONS = _varied_transactions()


def make_command(
    transaction_id: str = "tx-0001",
    amount: int = 3000,
    currency: str = "JPY",
    **decision_overrides: Any,
) -> PostingCommand:
    """Build a posting command (transaction plus accepted decision)."""
    transaction = make_transaction(transaction_id, amount=amount, currency=currency)
    return PostingCommand(transaction, make_decision(transaction, **decision_overrides))


class RecordingTransport:
    """
    Request handler for httpx.MockTransport that records every request.

    The wrapped handler receives the request and returns an httpx.Response.
    """

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: list[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(404))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def calls(self, method: str, path_suffix: str) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and request.url.path.endswith(path_suffix)
        ]


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))


def request_form(request: httpx.Request) -> dict[str, str]:
    """Decode an application/x-www-form-urlencoded body."""
    parsed = parse_qs(request.content.decode("utf-8"))
    return {key: values[0] for key, values in parsed.items()}


def bearer(request: httpx.Request) -> str:
    return request.headers.get("Authorization", "").removeprefix("Bearer ")


# ----------------------------------------------------------------------
# freee
# ----------------------------------------------------------------------

FREEE_ACCOUNT_ITEMS = {
    "account_items": [
        {"id": 101, "name": "旅費交通費"},
        {"id": 102, "name": "消耗品費"},
        {"id": 103, "name": "通信費"},
        {"id": 199, "name": "雑費"},
    ]
}

FREEE_TAXES = {
    "taxes": [
        {"code": 2, "name": "non_taxable", "name_ja": "対象外"},
        {"code": 136, "name": "purchase_with_tax_10", "name_ja": "課対仕入10%"},
    ]
}

FREEE_DEALS = {
    "deals": [
        {
            "id": 9001,
            "issue_date": "2026-02-14",
            "amount": 3000,
            "type": "expense",
            "details": [{"description": "[Tax man] tx:tx-0001 業務移動の交通費"}],
        },
        {
            "id": 9002,
            "issue_date": "2026-02-13",
            "amount": 880,
            "type": "expense",
            "details": [{"description": "manually entered"}],
        },
    ]
}


def freee_handler(
    deal_responses: Optional[list[httpx.Response]] = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """
    freee API happy path.

    deal_responses, when given, are returned in order for each POST /deals.
    """
    pending = list(deal_responses or [])
    counter = {"deals": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api/1/account_items":
            return httpx.Response(200, json=FREEE_ACCOUNT_ITEMS)
        if request.method == "GET" and path.startswith("/api/1/taxes/companies/"):
            return httpx.Response(200, json=FREEE_TAXES)
        if request.method == "GET" and path == "/api/1/deals":
            return httpx.Response(200, json=FREEE_DEALS)
        if request.method == "POST" and path == "/api/1/deals":
            counter["deals"] += 1
            if pending:
                return pending.pop(0)
            return httpx.Response(
                201,
                json={"deal": {"id": 9000 + counter["deals"]}},
                headers={"X-Freee-Request-Id": f"req-{counter['deals']}"},
            )
        return httpx.Response(404, json={"message": "not found"})

    return handler


# ----------------------------------------------------------------------
# QuickBooks Online
# ----------------------------------------------------------------------

QBO_EXPENSE_ACCOUNTS = [
    {"Id": "57", "Name": "Office Supplies", "Active": True},
    {"Id": "58", "Name": "Travel", "Active": True},
    {"Id": "80", "Name": "Miscellaneous", "Active": True},
]
QBO_TAX_CODES = [
    {"Id": "2", "Name": "Non", "Active": True},
    {"Id": "3", "Name": "TAX", "Active": True},
]
QBO_BANK_ACCOUNTS = [{"Id": "35", "Name": "Checking", "Active": True}]
QBO_PURCHASES = [
    {
        "Id": "145",
        "TxnDate": "2026-02-14",
        "TotalAmt": 12.34,
        "PrivateNote": "[Tax man] tx:tx-0001 travel",
        "CurrencyRef": {"value": "USD"},
    },
    {"Id": "146", "TxnDate": "2026-02-10", "TotalAmt": 99.0, "PrivateNote": "lunch"},
]


def qbo_handler(
    bank_accounts: Optional[list[dict]] = None,
) -> Callable[[httpx.Request], httpx.Response]:
    banks = QBO_BANK_ACCOUNTS if bank_accounts is None else bank_accounts

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.endswith("/query"):
            statement = request.url.params.get("query", "")
            if "AccountType = 'Expense'" in statement:
                return httpx.Response(200, json={"QueryResponse": {"Account": QBO_EXPENSE_ACCOUNTS}})
            if "AccountType = 'Bank'" in statement:
                return httpx.Response(200, json={"QueryResponse": {"Account": banks}})
            if "from TaxCode" in statement:
                return httpx.Response(200, json={"QueryResponse": {"TaxCode": QBO_TAX_CODES}})
            if "from Purchase" in statement:
                return httpx.Response(200, json={"QueryResponse": {"Purchase": QBO_PURCHASES}})
            return httpx.Response(200, json={"QueryResponse": {}})
        if request.method == "POST" and path.endswith("/purchase"):
            return httpx.Response(
                200,
                json={"Purchase": {"Id": "145"}},
                headers={"intuit_tid": "tid-1"},
            )
        return httpx.Response(404)

    return handler


# ----------------------------------------------------------------------
# Xero
# ----------------------------------------------------------------------

XERO_ACCOUNTS = {
    "Accounts": [
        {"Code": "493", "Name": "Travel - National", "Status": "ACTIVE"},
        {"Code": "429", "Name": "General Expenses", "Status": "ACTIVE"},
        {"Code": "999", "Name": "Old Travel", "Status": "ARCHIVED"},
    ]
}
XERO_TAX_RATES = {
    "TaxRates": [
        {"TaxType": "NONE", "Status": "ACTIVE", "CanApplyToExpenses": True},
        {"TaxType": "INPUT2", "Status": "ACTIVE", "CanApplyToExpenses": True},
    ]
}
XERO_CONTACTS = {"Contacts": [{"ContactID": "c-1", "Name": "Tax man expenses"}]}
XERO_INVOICES = {
    "Invoices": [
        {
            "InvoiceID": "inv-1",
            "Type": "ACCPAY",
            "Status": "DRAFT",
            "Reference": "[Tax man] tx:tx-0001 travel",
            "DateString": "2026-02-14T00:00:00",
            "Total": 12.34,
            "CurrencyCode": "EUR",
        },
        {
            "InvoiceID": "inv-2",
            "Type": "ACCPAY",
            "Status": "DRAFT",
            "Reference": "supplier bill",
            "DateString": "2026-02-11T00:00:00",
            "Total": 40.0,
        },
    ]
}


def xero_handler(contacts: Optional[dict] = None) -> Callable[[httpx.Request], httpx.Response]:
    contact_body = XERO_CONTACTS if contacts is None else contacts

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.endswith("/Accounts"):
            return httpx.Response(200, json=XERO_ACCOUNTS)
        if request.method == "GET" and path.endswith("/TaxRates"):
            return httpx.Response(200, json=XERO_TAX_RATES)
        if request.method == "GET" and path.endswith("/Contacts"):
            return httpx.Response(200, json=contact_body)
        if request.method == "GET" and path.endswith("/Invoices"):
            return httpx.Response(200, json=XERO_INVOICES)
        if request.method == "PUT" and path.endswith("/Invoices"):
            return httpx.Response(
                200,
                json={"Invoices": [{"InvoiceID": "inv-1"}]},
                headers={"xero-correlation-id": "corr-1"},
            )
        return httpx.Response(404)

    return handler
