"""
Static per-country classification profiles.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class JurisdictionProfile:
    """Currency, thresholds and rule-set version for one jurisdiction."""

    country_code: str
    currency: str
    rule_version: str
    prompt_hint: str
    # Amounts above this (minor units) need fixed-asset review
    deductible_threshold: int
    review_confidence_threshold: float
    max_allocation_rate: float


JP_PROFILE = JurisdictionProfile(
    country_code="JP",
    currency="JPY",
    rule_version="jp-2026-02-no2210-v1",
    prompt_hint="国税庁 No.2210 の必要経費基準を優先し、根拠不足は要確認に回す。",
    deductible_threshold=150_000,
    review_confidence_threshold=0.75,
    max_allocation_rate=1.0,
)

GLOBAL_PROFILE = JurisdictionProfile(
    country_code="GLOBAL",
    currency="USD",
    rule_version="global-v1",
    prompt_hint="Conservative tax classification. Route uncertain records to REVIEW.",
    deductible_threshold=150_000,
    review_confidence_threshold=0.75,
    max_allocation_rate=1.0,
)

PROFILES: dict[str, JurisdictionProfile] = {
    "JP": JP_PROFILE,
    "GLOBAL": GLOBAL_PROFILE,
}


def get_jurisdiction_profile(country_code: str | None = None) -> JurisdictionProfile:
    """
    Look up the profile for an ISO country code.

    Unknown codes get the GLOBAL profile relabelled with the requested code.
    """
    key = str(country_code or "").strip().upper()
    profile = PROFILES.get(key)
    if profile is not None:
        return profile
    return replace(GLOBAL_PROFILE, country_code=key or "GLOBAL")
