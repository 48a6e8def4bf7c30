"""
Configuration management (SSOT).

This module defines ALL configuration for the taxman core.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Provider secrets come from YAML or environment, never from request input
- External LLM providers stay off unless explicitly enabled
- Jurisdiction profiles and the provider catalog are static and live in code
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = Path("config.yaml")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean environment flag ("1"/"true" or "0"/"false")."""
    raw = os.environ.get(name, "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


@dataclass
class LLMConfig:
    """LLM escalation settings.

    SSOT for the escalation chain:
    - ollama_enabled: local model, tried first (default ON)
    - external_enabled: master switch for hosted providers (default OFF)
    - Hosted providers also need their API key to take part
    """

    ollama_enabled: bool = True
    ollama_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "qwen3:8b"
    # Hosted providers (Groq, Gemini) are only used when this is on
    external_enabled: bool = False
    groq_api_key: str | None = None
    groq_model: str = "openai/gpt-oss-20b"
    groq_url: str = "https://api.groq.com/openai/v1/chat/completions"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash-lite"
    gemini_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    # Request timeout (seconds)
    timeout_seconds: int = 30
    temperature: float = 0.1

    @property
    def groq_enabled(self) -> bool:
        return self.external_enabled and bool(self.groq_api_key)

    @property
    def gemini_enabled(self) -> bool:
        return self.external_enabled and bool(self.gemini_api_key)

    def is_remote(self) -> bool:
        """Check if the Ollama URL is remote (not localhost)."""
        url_lower = self.ollama_url.lower()
        return not any(
            local in url_lower
            for local in ["localhost", "127.0.0.1", "::1", "host.docker.internal"]
        )


@dataclass
class ProviderConfig:
    """OAuth client and API settings for one accounting provider.

    Shared mode lets a single operator token stand in for per-user sessions:
    when enabled, missing session tokens fall back to the shared_* values.
    """

    api_base_url: str
    token_url: str
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    shared_mode: bool = False
    shared_access_token: str | None = None
    shared_refresh_token: str | None = None
    # company_id (freee), realm_id (QuickBooks) or tenant_id (Xero)
    shared_account_id: str | None = None
    timeout_seconds: int = 30
    # Xero only: contact every draft bill is raised against
    default_contact_name: str | None = None

    @property
    def is_configured(self) -> bool:
        """OAuth client credentials are complete."""
        return bool(self.client_id and self.client_secret and self.redirect_uri)


def _default_freee() -> ProviderConfig:
    return ProviderConfig(
        api_base_url="https://api.freee.co.jp",
        token_url="https://accounts.secure.freee.co.jp/public_api/token",
    )


def _default_quickbooks() -> ProviderConfig:
    return ProviderConfig(
        api_base_url="https://quickbooks.api.intuit.com",
        token_url="https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer",
    )


def _default_xero() -> ProviderConfig:
    return ProviderConfig(
        api_base_url="https://api.xero.com",
        token_url="https://identity.xero.com/connect/token",
        default_contact_name="Tax man expenses",
    )


@dataclass
class ProvidersConfig:
    """Settings for every supported accounting provider."""

    freee: ProviderConfig = field(default_factory=_default_freee)
    quickbooks: ProviderConfig = field(default_factory=_default_quickbooks)
    xero: ProviderConfig = field(default_factory=_default_xero)

    def get(self, provider: str) -> ProviderConfig | None:
        return {
            "freee": self.freee,
            "quickbooks": self.quickbooks,
            "xero": self.xero,
        }.get(provider)


@dataclass
class TenantDefaults:
    """Tenant context used by the CLI (hosts pass their own per request)."""

    region_code: str = "JP"
    organization_id: str = "local"
    mode: str = "tax_pro"
    user_id: str = "cli"


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    tenant: TenantDefaults = field(default_factory=TenantDefaults)
    session_path: Path = field(default_factory=lambda: Path("data/session.json"))

    # Minimum decision confidence for unattended posting
    auto_post_min_confidence: float = 0.85

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.llm.ollama_enabled and not self.llm.ollama_url:
            errors.append("llm.ollama_url is required when Ollama is enabled")

        if not 0.0 <= self.auto_post_min_confidence <= 1.0:
            errors.append("auto_post_min_confidence must be between 0 and 1")

        for name in ("freee", "quickbooks", "xero"):
            provider = self.providers.get(name)
            if not provider.api_base_url:
                errors.append(f"providers.{name}.api_base_url is required")
            if provider.shared_mode and not provider.shared_access_token:
                errors.append(f"providers.{name}.shared_access_token is required in shared mode")

        if not self.providers.xero.default_contact_name:
            errors.append("providers.xero.default_contact_name is required")

        if self.tenant.mode not in ("tax_pro", "direct"):
            errors.append("tenant.mode must be 'tax_pro' or 'direct'")

        return errors


def _load_provider(
    data: dict,
    defaults: ProviderConfig,
    env_prefix: str,
    account_env: str,
) -> ProviderConfig:
    """Build one ProviderConfig from YAML data plus ``<PREFIX>_*`` env vars."""
    return ProviderConfig(
        api_base_url=data.get("api_base_url", defaults.api_base_url),
        token_url=data.get("token_url", defaults.token_url),
        client_id=os.environ.get(f"{env_prefix}_CLIENT_ID", data.get("client_id")),
        client_secret=os.environ.get(f"{env_prefix}_CLIENT_SECRET", data.get("client_secret")),
        redirect_uri=os.environ.get(f"{env_prefix}_REDIRECT_URI", data.get("redirect_uri")),
        shared_mode=_env_flag(f"{env_prefix}_SHARED_MODE", data.get("shared_mode", False)),
        shared_access_token=os.environ.get(
            f"{env_prefix}_SHARED_ACCESS_TOKEN", data.get("shared_access_token")
        ),
        shared_refresh_token=os.environ.get(
            f"{env_prefix}_SHARED_REFRESH_TOKEN", data.get("shared_refresh_token")
        ),
        shared_account_id=os.environ.get(
            f"{env_prefix}_SHARED_{account_env}", data.get("shared_account_id")
        ),
        timeout_seconds=int(data.get("timeout_seconds", defaults.timeout_seconds)),
        default_contact_name=data.get("default_contact_name", defaults.default_contact_name),
    )


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - ENABLE_OLLAMA (1/0), OLLAMA_BASE_URL, OLLAMA_MODEL
    - ENABLE_EXTERNAL_LLM (1/0)
    - GROQ_API_KEY, GROQ_MODEL, GEMINI_API_KEY, GEMINI_MODEL
    - FREEE_CLIENT_ID / FREEE_CLIENT_SECRET / FREEE_REDIRECT_URI
    - QBO_* and XERO_* (same suffixes)
    - <PREFIX>_SHARED_MODE, <PREFIX>_SHARED_ACCESS_TOKEN, <PREFIX>_SHARED_REFRESH_TOKEN
    - FREEE_SHARED_COMPANY_ID, QBO_SHARED_REALM_ID, XERO_SHARED_TENANT_ID
    - AUTOPOST_CONFIDENCE_THRESHOLD

    Raises:
        ConfigValidationError: If the file is not a YAML mapping.
    """
    if config_path.exists():
        with open(config_path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"{config_path} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigValidationError(f"{config_path} must contain a mapping")
    else:
        data = {}

    # LLM config
    llm_data = data.get("llm") or {}
    llm = LLMConfig(
        ollama_enabled=_env_flag("ENABLE_OLLAMA", llm_data.get("ollama_enabled", True)),
        ollama_url=os.environ.get(
            "OLLAMA_BASE_URL", llm_data.get("ollama_url", "http://127.0.0.1:11434")
        ),
        ollama_model=os.environ.get("OLLAMA_MODEL", llm_data.get("ollama_model", "qwen3:8b")),
        external_enabled=_env_flag(
            "ENABLE_EXTERNAL_LLM", llm_data.get("external_enabled", False)
        ),
        groq_api_key=os.environ.get("GROQ_API_KEY", llm_data.get("groq_api_key")),
        groq_model=os.environ.get("GROQ_MODEL", llm_data.get("groq_model", "openai/gpt-oss-20b")),
        gemini_api_key=os.environ.get("GEMINI_API_KEY", llm_data.get("gemini_api_key")),
        gemini_model=os.environ.get(
            "GEMINI_MODEL", llm_data.get("gemini_model", "gemini-2.5-flash-lite")
        ),
        timeout_seconds=int(llm_data.get("timeout_seconds", 30)),
        temperature=float(llm_data.get("temperature", 0.1)),
    )

    # Provider configs
    providers_data = data.get("providers") or {}
    providers = ProvidersConfig(
        freee=_load_provider(
            providers_data.get("freee") or {}, _default_freee(), "FREEE", "COMPANY_ID"
        ),
        quickbooks=_load_provider(
            providers_data.get("quickbooks") or {}, _default_quickbooks(), "QBO", "REALM_ID"
        ),
        xero=_load_provider(
            providers_data.get("xero") or {}, _default_xero(), "XERO", "TENANT_ID"
        ),
    )

    tenant_data = data.get("tenant") or {}
    tenant = TenantDefaults(
        region_code=str(tenant_data.get("region_code", "JP")).upper(),
        organization_id=tenant_data.get("organization_id", "local"),
        mode=tenant_data.get("mode", "tax_pro"),
        user_id=tenant_data.get("user_id", "cli"),
    )

    min_confidence = data.get("auto_post_min_confidence", 0.85)
    min_confidence_env = os.environ.get("AUTOPOST_CONFIDENCE_THRESHOLD", "")
    if min_confidence_env:
        try:
            min_confidence = float(min_confidence_env)
        except ValueError:
            pass  # Keep default

    return Config(
        llm=llm,
        providers=providers,
        tenant=tenant,
        session_path=Path(data.get("session_path", "data/session.json")),
        auto_post_min_confidence=float(min_confidence),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# taxman core configuration
#
# Secrets can also come from the environment (FREEE_CLIENT_SECRET, QBO_*, XERO_*,
# GROQ_API_KEY, GEMINI_API_KEY). Environment values win over this file.

# LLM escalation for REVIEW-ranked transactions
llm:
  ollama_enabled: true                     # Local model, tried first
  ollama_url: "http://127.0.0.1:11434"
  ollama_model: "qwen3:8b"
  external_enabled: false                  # Allow hosted providers (Groq, Gemini)
  groq_api_key: null
  groq_model: "openai/gpt-oss-20b"
  gemini_api_key: null
  gemini_model: "gemini-2.5-flash-lite"
  timeout_seconds: 30
  temperature: 0.1

# Accounting providers (drafts are posted to the one routed for the tenant)
providers:
  freee:
    client_id: null
    client_secret: null
    redirect_uri: null
    shared_mode: false
  quickbooks:
    client_id: null
    client_secret: null
    redirect_uri: null
    shared_mode: false
  xero:
    client_id: null
    client_secret: null
    redirect_uri: null
    shared_mode: false
    default_contact_name: "Tax man expenses"

# Tenant used by the CLI
tenant:
  region_code: "JP"
  organization_id: "local"
  mode: "tax_pro"
  user_id: "cli"

# OAuth tokens written by the CLI session store
session_path: "data/session.json"

# Minimum decision confidence for unattended posting
auto_post_min_confidence: 0.85
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
