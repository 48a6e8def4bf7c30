"""Test fixtures and utilities."""

from datetime import date
from typing import Callable

import pytest

from taxman.config import Config, LLMConfig, ProviderConfig, ProvidersConfig
from taxman.connectors import InMemorySessionStore
from taxman.schemas import CanonicalTransaction, Direction, SourceType

# Environment variables read by load_config; cleared so host settings do not leak in
CONFIG_ENV_VARS = (
    "ENABLE_OLLAMA",
    "OLLAMA_BASE_URL",
    "OLLAMA_MODEL",
    "ENABLE_EXTERNAL_LLM",
    "GROQ_API_KEY",
    "GROQ_MODEL",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "AUTOPOST_CONFIDENCE_THRESHOLD",
)
PROVIDER_ENV_PREFIXES = ("FREEE", "QBO", "XERO")
PROVIDER_ENV_SUFFIXES = (
    "CLIENT_ID",
    "CLIENT_SECRET",
    "REDIRECT_URI",
    "SHARED_MODE",
    "SHARED_ACCESS_TOKEN",
    "SHARED_REFRESH_TOKEN",
    "SHARED_COMPANY_ID",
    "SHARED_REALM_ID",
    "SHARED_TENANT_ID",
)


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove config environment overrides for every test."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for prefix in PROVIDER_ENV_PREFIXES:
        for suffix in PROVIDER_ENV_SUFFIXES:
            monkeypatch.delenv(f"{prefix}_{suffix}", raising=False)


@pytest.fixture
def fixed_today() -> Callable[[], date]:
    """Clock used by the decision engine for unparseable dates."""
    return lambda: date(2026, 2, 14)


@pytest.fixture
def taxi_transaction() -> CanonicalTransaction:
    """Paper receipt for a taxi ride (rule OK, no escalation)."""
    return CanonicalTransaction(
        transaction_id="tx-taxi",
        source_type=SourceType.PAPER_OCR,
        direction=Direction.EXPENSE,
        occurred_at="2026-02-14",
        amount=3000,
        memo_redacted="タクシー 打合せ移動",
    )


@pytest.fixture
def sundries_transaction() -> CanonicalTransaction:
    """Manually entered purchase with too little information (rule REVIEW)."""
    return CanonicalTransaction(
        transaction_id="tx-sundries",
        source_type=SourceType.MANUAL,
        direction=Direction.EXPENSE,
        occurred_at="2026-02-14",
        amount=500,
        memo_redacted="雑貨",
    )


@pytest.fixture
def provider_config() -> ProvidersConfig:
    """Provider settings with OAuth client credentials (refresh enabled)."""

    def with_credentials(api_base_url: str, token_url: str, **extra) -> ProviderConfig:
        return ProviderConfig(
            api_base_url=api_base_url,
            token_url=token_url,
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="https://app.example.test/callback",
            **extra,
        )

    return ProvidersConfig(
        freee=with_credentials(
            "https://api.freee.co.jp",
            "https://accounts.secure.freee.co.jp/public_api/token",
        ),
        quickbooks=with_credentials(
            "https://quickbooks.api.intuit.com",
            "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer",
        ),
        xero=with_credentials(
            "https://api.xero.com",
            "https://identity.xero.com/connect/token",
            default_contact_name="Tax man expenses",
        ),
    )


@pytest.fixture
def config(provider_config: ProvidersConfig) -> Config:
    """Config with Ollama enabled and hosted LLMs off."""
    return Config(llm=LLMConfig(), providers=provider_config)


@pytest.fixture
def freee_store() -> InMemorySessionStore:
    """Connected freee session."""
    return InMemorySessionStore(
        {
            "freee_access_token": "access-1",
            "freee_refresh_token": "refresh-1",
            "freee_company_id": "12345",
        }
    )


@pytest.fixture
def qbo_store() -> InMemorySessionStore:
    """Connected QuickBooks session."""
    return InMemorySessionStore(
        {
            "qbo_access_token": "access-1",
            "qbo_refresh_token": "refresh-1",
            "qbo_realm_id": "realm-1",
        }
    )


@pytest.fixture
def xero_store() -> InMemorySessionStore:
    """Connected Xero session."""
    return InMemorySessionStore(
        {
            "xero_access_token": "access-1",
            "xero_refresh_token": "refresh-1",
            "xero_tenant_id": "tenant-1",
        }
    )
