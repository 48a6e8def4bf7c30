"""Tests for the QuickBooks Online adapter."""

from __future__ import annotations

import asyncio

import httpx

from fixtures import RecordingTransport, make_command, qbo_handler, request_json
from taxman.config import ProvidersConfig
from taxman.connectors import InMemorySessionStore, QuickBooksAdapter
from taxman.connectors.providers.quickbooks import MINOR_VERSION, pick_tax_code_id


def make_adapter(provider_config: ProvidersConfig, transport: RecordingTransport) -> QuickBooksAdapter:
    return QuickBooksAdapter(provider_config.quickbooks, transport.client())


class TestPickTaxCode:
    """Tests for pick_tax_code_id()."""

    def test_prefers_taxable_code(self) -> None:
        codes = [{"Id": "2", "Name": "Non"}, {"Id": "3", "Name": "TAX"}]
        assert pick_tax_code_id(codes) == "3"

    def test_non_taxable_is_not_preferred(self) -> None:
        """'Non-taxable' contains 'tax' but is excluded."""
        codes = [{"Id": "4", "Name": "Non-taxable"}, {"Id": "5", "Name": "GST on purchases"}]
        assert pick_tax_code_id(codes) == "5"

    def test_first_code_fallback(self) -> None:
        assert pick_tax_code_id([{"Id": "9", "Name": "Exempt"}]) == "9"
        assert pick_tax_code_id([]) is None


class TestQuickBooksPostDrafts:
    """Tests for QuickBooksAdapter.post_drafts()."""

    def test_posts_cash_purchase(self, provider_config, qbo_store) -> None:
        transport = RecordingTransport(qbo_handler())
        adapter = make_adapter(provider_config, transport)
        command = make_command("tx-0001", amount=1234, currency="USD")

        result = asyncio.run(adapter.post_drafts([command], qbo_store))

        assert result.ok is True
        assert result.diagnostic_code == "QBO_DRAFT_POSTED"
        assert result.results[0].remote_id == "145"
        assert result.results[0].request_id == "tid-1"

        post = transport.calls("POST", "/purchase")[0]
        assert post.url.path == "/v3/company/realm-1/purchase"
        assert post.url.params["minorversion"] == MINOR_VERSION
        assert post.headers["Authorization"] == "Bearer access-1"
        body = request_json(post)
        assert body["PaymentType"] == "Cash"
        assert body["AccountRef"] == {"value": "35"}
        assert body["TxnDate"] == "2026-02-14"
        assert body["PrivateNote"].startswith("[Tax man] tx:tx-0001")
        line = body["Line"][0]
        assert line["DetailType"] == "AccountBasedExpenseLineDetail"
        assert line["Amount"] == 12.34
        assert line["AccountBasedExpenseLineDetail"]["AccountRef"] == {"value": "58"}
        assert line["AccountBasedExpenseLineDetail"]["TaxCodeRef"] == {"value": "3"}

    def test_zero_decimal_currency(self, provider_config, qbo_store) -> None:
        transport = RecordingTransport(qbo_handler())
        adapter = make_adapter(provider_config, transport)

        asyncio.run(adapter.post_drafts([make_command(amount=3000, currency="JPY")], qbo_store))

        line = request_json(transport.calls("POST", "/purchase")[0])["Line"][0]
        assert line["Amount"] == 3000.0

    def test_unknown_category_uses_miscellaneous(self, provider_config, qbo_store) -> None:
        transport = RecordingTransport(qbo_handler())
        adapter = make_adapter(provider_config, transport)

        asyncio.run(
            adapter.post_drafts([make_command(currency="USD", category="会議費")], qbo_store)
        )

        line = request_json(transport.calls("POST", "/purchase")[0])["Line"][0]
        assert line["AccountBasedExpenseLineDetail"]["AccountRef"] == {"value": "80"}

    def test_missing_bank_account(self, provider_config, qbo_store) -> None:
        transport = RecordingTransport(qbo_handler(bank_accounts=[]))
        adapter = make_adapter(provider_config, transport)

        result = asyncio.run(adapter.post_drafts([make_command(currency="USD")], qbo_store))

        assert result.ok is False
        assert result.status == 500
        assert result.diagnostic_code == "QBO_BANK_ACCOUNT_MISSING"
        assert transport.calls("POST", "/purchase") == []

    def test_query_auth_failure(self, provider_config) -> None:
        """A 401 with no refresh token is reported as expired auth."""
        transport = RecordingTransport(lambda request: httpx.Response(401))
        adapter = make_adapter(provider_config, transport)
        store = InMemorySessionStore({"qbo_access_token": "a", "qbo_realm_id": "realm-1"})

        result = asyncio.run(adapter.post_drafts([make_command(currency="USD")], store))

        assert result.status == 401
        assert result.diagnostic_code == "QBO_AUTH_EXPIRED"

    def test_refresh_uses_basic_auth(self, provider_config, qbo_store) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/tokens/bearer"):
                return httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})
            if request.headers.get("Authorization") == "Bearer access-1":
                return httpx.Response(401)
            return qbo_handler()(request)

        transport = RecordingTransport(handler)
        adapter = make_adapter(provider_config, transport)

        result = asyncio.run(adapter.post_drafts([make_command(currency="USD")], qbo_store))

        assert result.ok is True
        token_call = transport.calls("POST", "/tokens/bearer")[0]
        assert token_call.headers["Authorization"].startswith("Basic ")
        assert b"client_secret" not in token_call.content
        assert result.session.access_token == "access-2"
        # Refresh token kept when the provider does not rotate it
        assert result.session.refresh_token == "refresh-1"

    def test_realm_missing(self, provider_config) -> None:
        transport = RecordingTransport(qbo_handler())
        adapter = make_adapter(provider_config, transport)
        store = InMemorySessionStore({"qbo_access_token": "a"})

        result = asyncio.run(adapter.post_drafts([make_command()], store))

        assert result.status == 401
        assert result.diagnostic_code == "QBO_NOT_CONNECTED"
        assert transport.requests == []


class TestQuickBooksReviewQueue:
    """Tests for QuickBooksAdapter.fetch_review_queue()."""

    def test_only_marked_purchases(self, provider_config, qbo_store) -> None:
        transport = RecordingTransport(qbo_handler())
        adapter = make_adapter(provider_config, transport)

        result = asyncio.run(adapter.fetch_review_queue(qbo_store, limit=10))

        assert result.ok is True
        assert result.diagnostic_code == "QBO_QUEUE_FETCHED"
        assert [item.id for item in result.queue] == ["145"]
        item = result.queue[0]
        assert item.status == "pending_review"
        assert item.currency == "USD"
        assert item.amount == 12.34
        assert item.memo == "tx:tx-0001 travel"

        statement = transport.requests[0].url.params["query"]
        assert statement.endswith("MAXRESULTS 10")
