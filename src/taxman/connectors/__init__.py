"""
Multi-provider posting router.

Routes accepted decisions to freee, QuickBooks Online or Xero as draft
entries, and reads back the drafts awaiting review.
"""

from .base import (
    DRAFT_MARKER,
    AccountingAdapter,
    DraftMappingError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderError,
    ProviderPreconditionError,
    ProviderStatus,
    build_draft_description,
    map_status_to_diagnostic,
    to_major_units,
)
from .catalog import (
    ACCOUNTING_PROVIDER_DEFINITIONS,
    SUPPORTED_PROVIDERS,
    ProviderDefinition,
    get_provider_definition,
    list_providers_by_region,
    resolve_provider_by_region,
)
from .providers import FreeeAdapter, QuickBooksAdapter, XeroAdapter
from .router import (
    RoutingResult,
    build_adapter_registry,
    fetch_review_queue_by_provider,
    get_connector_statuses,
    post_drafts_by_provider,
    resolve_provider,
)
from .session import (
    SESSION_KEYS,
    InMemorySessionStore,
    JsonFileSessionStore,
    SessionStore,
    apply_refreshed_tokens,
)

__all__ = [
    # Catalog & routing
    "ACCOUNTING_PROVIDER_DEFINITIONS",
    "ProviderDefinition",
    "RoutingResult",
    "SUPPORTED_PROVIDERS",
    "get_provider_definition",
    "list_providers_by_region",
    "resolve_provider",
    "resolve_provider_by_region",
    # Adapters
    "AccountingAdapter",
    "DRAFT_MARKER",
    "FreeeAdapter",
    "ProviderStatus",
    "QuickBooksAdapter",
    "XeroAdapter",
    "build_draft_description",
    "map_status_to_diagnostic",
    "to_major_units",
    # Errors
    "DraftMappingError",
    "ProviderAPIError",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderPreconditionError",
    # Orchestrator
    "build_adapter_registry",
    "fetch_review_queue_by_provider",
    "get_connector_statuses",
    "post_drafts_by_provider",
    # Session
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "SESSION_KEYS",
    "SessionStore",
    "apply_refreshed_tokens",
]
