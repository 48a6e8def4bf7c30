"""
Session port for provider credentials.

Adapters read OAuth tokens and the provider account context through a small
key/value store. A web host backs it with cookies, the CLI with a JSON file,
tests with a dict.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..schemas import TokenResponse

logger = logging.getLogger(__name__)

# Refresh tokens outlive access tokens by far
REFRESH_TOKEN_TTL = 60 * 60 * 24 * 90
MIN_ACCESS_TOKEN_TTL = 60


class SessionStore(Protocol):
    """Key/value credential store (cookie jar semantics)."""

    def get(self, name: str) -> Optional[str]:
        ...

    def set(self, name: str, value: str, ttl: Optional[int] = None) -> None:
        ...


@dataclass(frozen=True)
class SessionKeys:
    """Store keys holding one provider's credentials."""

    access_token: str
    refresh_token: str
    account_id: str


SESSION_KEYS: dict[str, SessionKeys] = {
    "freee": SessionKeys("freee_access_token", "freee_refresh_token", "freee_company_id"),
    "quickbooks": SessionKeys("qbo_access_token", "qbo_refresh_token", "qbo_realm_id"),
    "xero": SessionKeys("xero_access_token", "xero_refresh_token", "xero_tenant_id"),
}


class InMemorySessionStore:
    """Dict-backed store with optional expiry. Used by tests and embedding hosts."""

    def __init__(
        self,
        initial: Optional[dict[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._values: dict[str, tuple[str, Optional[float]]] = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    def get(self, name: str) -> Optional[str]:
        entry = self._values.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._values[name]
            return None
        return value

    def set(self, name: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._values[name] = (value, expires_at)

    def delete(self, name: str) -> None:
        self._values.pop(name, None)


class JsonFileSessionStore:
    """
    Small JSON file store for the CLI.

    Layout: {"<name>": {"value": "...", "expires_at": <unix ts or null>}}.
    The file is rewritten on every set().
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)

    def get(self, name: str) -> Optional[str]:
        entry = self._load().get(name)
        if not isinstance(entry, dict):
            return None
        expires_at = entry.get("expires_at")
        if expires_at is not None and self._clock() >= float(expires_at):
            return None
        value = entry.get("value")
        return str(value) if value is not None else None

    def set(self, name: str, value: str, ttl: Optional[int] = None) -> None:
        data = self._load()
        data[name] = {
            "value": value,
            "expires_at": self._clock() + ttl if ttl is not None else None,
        }
        self._save(data)


def apply_refreshed_tokens(
    store: SessionStore,
    provider: str,
    refreshed: Optional[TokenResponse],
) -> bool:
    """
    Persist a token refresh into the session store.

    Returns True when something was written.
    """
    keys = SESSION_KEYS.get(provider)
    if keys is None or refreshed is None or not refreshed.access_token:
        return False

    store.set(
        keys.access_token,
        refreshed.access_token,
        ttl=max(MIN_ACCESS_TOKEN_TTL, int(refreshed.expires_in or 0)),
    )
    if refreshed.refresh_token:
        store.set(keys.refresh_token, refreshed.refresh_token, ttl=REFRESH_TOKEN_TTL)
    logger.info("Stored refreshed %s tokens", provider)
    return True
