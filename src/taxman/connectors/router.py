"""
Provider routing and the posting orchestrator.

Dispatches posting batches and review queue fetches to the adapter of the
chosen provider, persists refreshed tokens and emits one audit record per
batch or fetch.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from ..config import DEFAULT_CONFIG_PATH, Config, load_config
from ..schemas import (
    BatchResult,
    PostingCommand,
    PostingResult,
    QueueResult,
    ReviewQueueItem,
    TenantContext,
    create_audit_meta,
    emit_audit_meta,
)
from .base import DEFAULT_QUEUE_LIMIT, AccountingAdapter, ProviderStatus
from .catalog import (
    SUPPORTED_PROVIDERS,
    ProviderDefinition,
    get_provider_definition,
    resolve_provider_by_region,
)
from .providers import ADAPTER_CLASSES
from .session import SessionStore, apply_refreshed_tokens

logger = logging.getLogger(__name__)

AdapterRegistry = dict[str, AccountingAdapter]


@dataclass(frozen=True)
class RoutingResult:
    provider: str
    definition: ProviderDefinition

    def to_dict(self) -> dict:
        return {"provider": self.provider, "definition": self.definition.to_dict()}


def resolve_provider(
    region_code: Optional[str] = None,
    requested_provider: Optional[str] = None,
) -> RoutingResult:
    """
    Pick the provider for a tenant.

    A known requested provider always wins; otherwise the region decides,
    with freee as the fallback. Never raises.
    """
    requested = str(requested_provider or "").strip().lower()
    if requested in SUPPORTED_PROVIDERS:
        provider = requested
    else:
        provider = resolve_provider_by_region(region_code)
    return RoutingResult(provider=provider, definition=get_provider_definition(provider))


def build_adapter_registry(
    config: Config,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AdapterRegistry:
    """One adapter per supported provider, sharing the given HTTP client.

    Without a client the adapters can report status but not send requests.
    """
    return {
        name: adapter_class(config.providers.get(name), http_client)
        for name, adapter_class in ADAPTER_CLASSES.items()
    }


def _default_registry(http_client: Optional[httpx.AsyncClient] = None) -> AdapterRegistry:
    """Registry built from config.yaml (plus environment overrides)."""
    return build_adapter_registry(load_config(DEFAULT_CONFIG_PATH), http_client)


def get_connector_statuses(
    store: SessionStore,
    adapters: Optional[AdapterRegistry] = None,
) -> list[ProviderStatus]:
    """Status of every registered provider (no network access)."""
    if adapters is None:
        adapters = _default_registry()
    return [adapter.get_status(store) for adapter in adapters.values()]


def _unsupported_results(provider: str, commands: list[PostingCommand]) -> list[PostingResult]:
    contact = get_provider_definition(provider).support.url
    return [
        PostingResult(
            provider=provider,
            transaction_id=command.transaction_id,
            ok=False,
            status=501,
            diagnostic_code="PROVIDER_NOT_SUPPORTED",
            message="未対応の会計サービスです。",
            next_action="Choose freee, QuickBooks or Xero.",
            contact=contact,
        )
        for command in commands
    ]


def _audit(
    event_type: str,
    provider: str,
    ok: bool,
    diagnostic_code: str,
    tenant: Optional[TenantContext],
) -> None:
    emit_audit_meta(
        create_audit_meta(
            event_type,
            tenant.user_id if tenant else "system",
            "success" if ok else "error",
            organization_id=tenant.organization_id if tenant else None,
            provider=provider,
            diagnostic_code=diagnostic_code,
        )
    )


async def post_drafts_by_provider(
    provider: str,
    commands: Iterable[PostingCommand],
    store: SessionStore,
    tenant: Optional[TenantContext] = None,
    adapters: Optional[AdapterRegistry] = None,
) -> BatchResult:
    """
    Post a batch of commands as drafts to one provider.

    Guarantees one result per command (except for an empty batch) and
    ok == (failed == 0). Refreshed tokens are written back to the store.
    """
    commands = list(commands)
    if not commands:
        result = BatchResult(provider=provider, ok=False, status=400, diagnostic_code="NO_COMMANDS")
        _audit("posting.draft", provider, False, result.diagnostic_code, tenant)
        return result

    if adapters is None:
        async with httpx.AsyncClient() as client:
            return await post_drafts_by_provider(
                provider, commands, store, tenant, _default_registry(client)
            )

    adapter = adapters.get(provider)
    if adapter is None:
        logger.warning("No adapter registered for provider '%s'", provider)
        results = _unsupported_results(provider, commands)
        result = BatchResult(
            provider=provider,
            ok=False,
            status=501,
            diagnostic_code="PROVIDER_NOT_SUPPORTED",
            success=0,
            failed=len(results),
            results=results,
        )
        _audit("posting.draft", provider, False, result.diagnostic_code, tenant)
        return result

    result = await adapter.post_drafts(commands, store, tenant)
    apply_refreshed_tokens(store, provider, result.refreshed)

    logger.info(
        "Posted to %s: %d ok, %d failed (%s)",
        provider,
        result.success,
        result.failed,
        result.diagnostic_code,
    )
    _audit("posting.draft", provider, result.ok, result.diagnostic_code, tenant)
    return result


async def fetch_review_queue_by_provider(
    provider: str,
    store: SessionStore,
    limit: int = DEFAULT_QUEUE_LIMIT,
    adapters: Optional[AdapterRegistry] = None,
    tenant: Optional[TenantContext] = None,
) -> QueueResult:
    """Drafts awaiting finalization in the provider account."""
    if adapters is None:
        async with httpx.AsyncClient() as client:
            return await fetch_review_queue_by_provider(
                provider, store, limit, _default_registry(client), tenant
            )

    adapter = adapters.get(provider)
    if adapter is None:
        definition = get_provider_definition(provider)
        result = QueueResult(
            provider=provider,
            ok=False,
            status=501,
            diagnostic_code="PROVIDER_NOT_SUPPORTED",
            queue=[
                ReviewQueueItem(
                    provider=provider,
                    id=None,
                    issue_date="",
                    amount=0,
                    status="not_supported",
                    memo="This provider is not supported.",
                    next_action="Choose freee, QuickBooks or Xero.",
                    contact=definition.support.url,
                )
            ],
        )
        _audit("queue.review", provider, False, result.diagnostic_code, tenant)
        return result

    result = await adapter.fetch_review_queue(store, limit)
    apply_refreshed_tokens(store, provider, result.refreshed)
    _audit("queue.review", provider, result.ok, result.diagnostic_code, tenant)
    return result
