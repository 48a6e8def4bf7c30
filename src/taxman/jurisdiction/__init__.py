"""
Jurisdiction profile store.

Read-only lookup of per-country thresholds, currency and rule version,
keyed by uppercase ISO country code with a GLOBAL fallback.
"""

from .profiles import PROFILES, JurisdictionProfile, get_jurisdiction_profile

__all__ = [
    "JurisdictionProfile",
    "PROFILES",
    "get_jurisdiction_profile",
]
