"""
Static catalog of supported accounting providers and their regions.
"""

from dataclasses import dataclass
from typing import Optional

FALLBACK_PROVIDER = "freee"


@dataclass(frozen=True)
class SupportContact:
    name: str
    url: str


@dataclass(frozen=True)
class ProviderDefinition:
    """Display and routing metadata for one provider."""

    key: str
    label: str
    region_codes: tuple[str, ...]
    support: SupportContact
    docs_url: str

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "region_codes": list(self.region_codes),
            "support": {"name": self.support.name, "url": self.support.url},
            "docs_url": self.docs_url,
        }


# Order matters: region lookups take the first match
ACCOUNTING_PROVIDER_DEFINITIONS: tuple[ProviderDefinition, ...] = (
    ProviderDefinition(
        key="freee",
        label="freee",
        region_codes=("JP", "GLOBAL"),
        support=SupportContact("freee Support", "https://support.freee.co.jp/hc/ja"),
        docs_url="https://developer.freee.co.jp/docs/accounting",
    ),
    ProviderDefinition(
        key="quickbooks",
        label="QuickBooks Online",
        region_codes=("US", "GLOBAL"),
        support=SupportContact(
            "QuickBooks Support", "https://quickbooks.intuit.com/learn-support/"
        ),
        docs_url="https://developer.intuit.com/app/developer/qbo/docs/api/accounting/all-entities",
    ),
    ProviderDefinition(
        key="xero",
        label="Xero",
        region_codes=("EU", "GLOBAL"),
        support=SupportContact("Xero Support", "https://central.xero.com/s/"),
        docs_url="https://developer.xero.com/documentation/api/accounting/overview",
    ),
)

SUPPORTED_PROVIDERS: tuple[str, ...] = tuple(d.key for d in ACCOUNTING_PROVIDER_DEFINITIONS)


def _normalize_region(region_code: Optional[str]) -> str:
    return str(region_code or "").strip().upper()


def get_provider_definition(provider: str) -> ProviderDefinition:
    """Definition for a provider key; unknown keys get the first definition."""
    for definition in ACCOUNTING_PROVIDER_DEFINITIONS:
        if definition.key == provider:
            return definition
    return ACCOUNTING_PROVIDER_DEFINITIONS[0]


def resolve_provider_by_region(region_code: Optional[str] = None) -> str:
    """First provider serving the region, freee when none does."""
    region = _normalize_region(region_code)
    for definition in ACCOUNTING_PROVIDER_DEFINITIONS:
        if region in definition.region_codes:
            return definition.key
    return FALLBACK_PROVIDER


def list_providers_by_region(region_code: Optional[str] = None) -> list[ProviderDefinition]:
    """Providers serving the region, or every provider when none does."""
    region = _normalize_region(region_code)
    matched = [d for d in ACCOUNTING_PROVIDER_DEFINITIONS if region in d.region_codes]
    return matched or list(ACCOUNTING_PROVIDER_DEFINITIONS)
