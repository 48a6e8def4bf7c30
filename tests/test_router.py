"""Tests for the provider catalog, routing and the posting orchestrator."""

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from fixtures import RecordingTransport, freee_handler, make_command
from taxman.config import Config
from taxman.connectors import (
    SUPPORTED_PROVIDERS,
    InMemorySessionStore,
    build_adapter_registry,
    fetch_review_queue_by_provider,
    get_connector_statuses,
    get_provider_definition,
    list_providers_by_region,
    post_drafts_by_provider,
    resolve_provider,
    resolve_provider_by_region,
)
from taxman.schemas import OperationMode, TenantContext

TENANT = TenantContext(
    region_code="JP",
    organization_id="org-1",
    user_id="user-1",
    mode=OperationMode.TAX_PRO,
)


class TestCatalog:
    """Tests for the static provider catalog."""

    def test_supported_providers(self) -> None:
        assert SUPPORTED_PROVIDERS == ("freee", "quickbooks", "xero")

    def test_region_lookup(self) -> None:
        assert resolve_provider_by_region("JP") == "freee"
        assert resolve_provider_by_region("us") == "quickbooks"
        assert resolve_provider_by_region(" EU ") == "xero"
        assert resolve_provider_by_region("GLOBAL") == "freee"
        assert resolve_provider_by_region("ZZ") == "freee"
        assert resolve_provider_by_region(None) == "freee"

    def test_list_providers_by_region(self) -> None:
        assert [d.key for d in list_providers_by_region("US")] == ["quickbooks"]
        assert [d.key for d in list_providers_by_region("GLOBAL")] == list(SUPPORTED_PROVIDERS)
        assert [d.key for d in list_providers_by_region("ZZ")] == list(SUPPORTED_PROVIDERS)

    def test_unknown_definition_falls_back(self) -> None:
        assert get_provider_definition("sage").key == "freee"
        assert get_provider_definition("quickbooks").label == "QuickBooks Online"


class TestResolveProvider:
    """Tests for resolve_provider()."""

    def test_requested_provider_wins(self) -> None:
        assert resolve_provider("JP", "xero").provider == "xero"
        assert resolve_provider("JP", " QuickBooks ").provider == "quickbooks"

    def test_unknown_request_falls_back_to_region(self) -> None:
        assert resolve_provider("EU", "sage").provider == "xero"

    @pytest.mark.parametrize("region", [None, "", "JP", "US", "EU", "GLOBAL", "ZZ", "jp"])
    @pytest.mark.parametrize("requested", [None, "", "freee", "xero", "sage", "QUICKBOOKS"])
    def test_always_resolves(self, region, requested) -> None:
        """Routing is total: every input resolves to a supported provider."""
        routed = resolve_provider(region, requested)

        assert routed.provider in SUPPORTED_PROVIDERS
        assert routed.definition.key == routed.provider

    def test_to_dict(self) -> None:
        data = resolve_provider("US").to_dict()
        assert data["provider"] == "quickbooks"
        assert data["definition"]["region_codes"] == ["US", "GLOBAL"]


class TestPostDraftsByProvider:
    """Tests for post_drafts_by_provider()."""

    def test_dispatches_and_stores_refreshed_tokens(self, config: Config, freee_store) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/public_api/token":
                return httpx.Response(
                    200,
                    json={"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 21600},
                )
            if request.method == "POST" and request.headers["Authorization"] == "Bearer access-1":
                return httpx.Response(401)
            return freee_handler()(request)

        transport = RecordingTransport(handler)
        adapters = build_adapter_registry(config, transport.client())

        result = asyncio.run(
            post_drafts_by_provider("freee", [make_command()], freee_store, TENANT, adapters)
        )

        assert result.ok is True
        assert freee_store.get("freee_access_token") == "access-2"
        assert freee_store.get("freee_refresh_token") == "refresh-2"
        assert freee_store.get("freee_company_id") == "12345"

    def test_one_result_per_command(self, config: Config, freee_store) -> None:
        transport = RecordingTransport(freee_handler())
        adapters = build_adapter_registry(config, transport.client())
        commands = [make_command(f"tx-{i}") for i in range(4)]

        result = asyncio.run(post_drafts_by_provider("freee", commands, freee_store, adapters=adapters))

        assert len(result.results) == len(commands)
        assert result.ok == (result.failed == 0)
        assert result.success + result.failed == len(commands)

    def test_unsupported_provider(self, config: Config, freee_store) -> None:
        transport = RecordingTransport(freee_handler())
        adapters = build_adapter_registry(config, transport.client())
        commands = [make_command("a"), make_command("b")]

        result = asyncio.run(post_drafts_by_provider("sage", commands, freee_store, adapters=adapters))

        assert result.ok is False
        assert result.status == 501
        assert result.diagnostic_code == "PROVIDER_NOT_SUPPORTED"
        assert result.failed == 2
        assert [r.transaction_id for r in result.results] == ["a", "b"]
        assert all(r.status == 501 for r in result.results)
        assert transport.requests == []

    def test_empty_batch(self, freee_store) -> None:
        """An empty batch is rejected before any adapter is built."""
        result = asyncio.run(post_drafts_by_provider("freee", [], freee_store))

        assert result.ok is False
        assert result.status == 400
        assert result.diagnostic_code == "NO_COMMANDS"
        assert result.results == []

    def test_not_connected(self, config: Config) -> None:
        transport = RecordingTransport(freee_handler())
        adapters = build_adapter_registry(config, transport.client())

        result = asyncio.run(
            post_drafts_by_provider("xero", [make_command()], InMemorySessionStore(), adapters=adapters)
        )

        assert result.status == 401
        assert result.diagnostic_code == "XERO_NOT_CONNECTED"
        assert len(result.results) == 1

    def test_audit_record_is_emitted(
        self, config: Config, freee_store, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO, logger="taxman.audit")
        transport = RecordingTransport(freee_handler())
        adapters = build_adapter_registry(config, transport.client())

        asyncio.run(post_drafts_by_provider("freee", [make_command()], freee_store, TENANT, adapters))

        audit_lines = [r.getMessage() for r in caplog.records if r.name == "taxman.audit"]
        assert len(audit_lines) == 1
        assert '"event_type": "posting.draft"' in audit_lines[0]
        assert '"actor_user_id": "user-1"' in audit_lines[0]
        assert '"diagnostic_code": "FREEE_DRAFT_POSTED"' in audit_lines[0]
        assert "tx-0001" not in audit_lines[0]


class TestFetchReviewQueueByProvider:
    """Tests for fetch_review_queue_by_provider()."""

    def test_dispatches(self, config: Config, freee_store) -> None:
        transport = RecordingTransport(freee_handler())
        adapters = build_adapter_registry(config, transport.client())

        result = asyncio.run(fetch_review_queue_by_provider("freee", freee_store, 30, adapters))

        assert result.ok is True
        assert len(result.queue) == 1

    def test_unsupported_provider(self, config: Config, freee_store) -> None:
        adapters = build_adapter_registry(config)

        result = asyncio.run(fetch_review_queue_by_provider("sage", freee_store, adapters=adapters))

        assert result.ok is False
        assert result.status == 501
        assert result.diagnostic_code == "PROVIDER_NOT_SUPPORTED"
        assert len(result.queue) == 1
        assert result.queue[0].status == "not_supported"
        assert result.queue[0].id is None


class TestConnectorStatuses:
    """Tests for get_connector_statuses()."""

    def test_all_providers_reported(self, config: Config, freee_store) -> None:
        config.providers.quickbooks.shared_mode = True
        config.providers.quickbooks.shared_access_token = "shared"
        config.providers.quickbooks.shared_account_id = "realm-9"
        adapters = build_adapter_registry(config)

        statuses = {s.provider: s for s in get_connector_statuses(freee_store, adapters)}

        assert list(statuses) == ["freee", "quickbooks", "xero"]
        assert statuses["freee"].connected is True
        assert statuses["quickbooks"].connected is True
        assert statuses["quickbooks"].mode == "shared_token"
        assert statuses["quickbooks"].account_context == "realm-9"
        assert statuses["xero"].connected is False
        assert statuses["xero"].to_dict()["next_action"] == "start_oauth"
