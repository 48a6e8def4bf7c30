"""
Accounting adapter base class.

Every provider adapter shares one posting flow:
1. Read the session (tokens + account context), shared-token fallback
2. Reject unconnected sessions and non-postable commands
3. Load provider preconditions once per batch (accounts, tax codes, ...)
4. Post one draft per command, sequentially; an item failure never aborts
   the batch
5. Aggregate into a BatchResult with exactly one result per command

Every outbound call goes through _request(), which refreshes the access
token at most once on a 401 and retries the call once.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

import httpx

from ..config import ProviderConfig
from ..schemas import (
    BatchResult,
    OAuthSession,
    PostingCommand,
    PostingResult,
    QueueResult,
    ReviewQueueItem,
    TenantContext,
    TokenResponse,
)
from .catalog import get_provider_definition
from .session import SESSION_KEYS, SessionStore

logger = logging.getLogger(__name__)

DRAFT_MARKER = "[Tax man]"
DEFAULT_QUEUE_LIMIT = 30
MAX_QUEUE_LIMIT = 100
MAX_DESCRIPTION_REASON = 160
MAX_QUEUE_MEMO = 120

# Currencies without minor units; everything else is treated as cents
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW"})


class ProviderError(Exception):
    """Base exception for accounting provider errors."""

    pass


class ProviderAPIError(ProviderError):
    """Provider API returned an error response."""

    def __init__(self, status_code: int, message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Provider API error {status_code}: {message}")


class ProviderConnectionError(ProviderError):
    """Failed to reach the provider (transport error or timeout)."""

    pass


class ProviderPreconditionError(ProviderError):
    """A batch-wide prerequisite (accounts, tax codes, contact...) is missing."""

    def __init__(self, diagnostic_code: str, status: int, message: str, next_action: str):
        self.diagnostic_code = diagnostic_code
        self.status = status
        self.message = message
        self.next_action = next_action
        super().__init__(f"{diagnostic_code}: {message}")


class DraftMappingError(ProviderError):
    """A command's category could not be mapped to a provider account."""

    pass


@dataclass
class ProviderStatus:
    """Connection status of one provider, computed without network access."""

    provider: str
    label: str
    configured: bool
    connected: bool
    mode: str  # "shared_token" | "oauth_per_user"
    account_context: Optional[str]
    next_action: str
    contact: str
    support_name: str
    docs_url: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RequestContext:
    """Credentials in use for one batch; updated in place by token refreshes."""

    session: OAuthSession
    refreshed: Optional[TokenResponse] = None
    refresh_count: int = 0

    def apply(self, refreshed: TokenResponse) -> None:
        self.session = self.session.with_tokens(refreshed)
        self.refreshed = refreshed
        self.refresh_count += 1


@dataclass
class DraftRequest:
    """One create-draft call."""

    method: str
    path: str
    payload: dict = field(default_factory=dict)
    params: Optional[dict] = None


def map_status_to_diagnostic(prefix: str, status: int) -> str:
    """Map an HTTP status from a create-draft call to a diagnostic code."""
    if 200 <= status < 300:
        return f"{prefix}_DRAFT_POSTED"
    if status == 400:
        return f"{prefix}_BAD_REQUEST"
    if status == 401:
        return f"{prefix}_AUTH_EXPIRED"
    if status == 403:
        return f"{prefix}_PERMISSION_DENIED"
    if status >= 500:
        return f"{prefix}_SERVER_ERROR"
    return f"{prefix}_POST_FAILED"


def clamp_queue_limit(limit: Any) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = DEFAULT_QUEUE_LIMIT
    return max(1, min(MAX_QUEUE_LIMIT, value))


def allocated_amount(command: PostingCommand) -> int:
    """Business share of the transaction amount, in minor units (at least 1)."""
    share = Decimal(command.transaction.amount) * Decimal(str(command.decision.allocation_rate))
    return max(1, int(share))


def to_major_units(amount: int, currency: Optional[str]) -> Decimal:
    """Convert minor units to the provider's decimal amount (1234 USD cents -> 12.34)."""
    if str(currency or "").upper() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def build_draft_description(command: PostingCommand) -> str:
    """Marker-tagged description so the review queue can find our drafts."""
    source = command.decision.reason or command.transaction.memo_redacted or ""
    reason = " ".join(str(source).split())[:MAX_DESCRIPTION_REASON]
    short_id = command.transaction.transaction_id[:8]
    return f"{DRAFT_MARKER} tx:{short_id} {reason}".strip()


# (category keywords, account name keywords) for English charts of accounts
ENGLISH_ACCOUNT_KEYWORD_MAP: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("通信", "internet", "hosting", "software"), ("telephone", "internet", "software", "utilities")),
    (("消耗", "備品", "supplies"), ("supplies", "office")),
    (("交通", "旅費", "travel"), ("travel",)),
    (("運賃", "配送", "shipping"), ("shipping", "freight", "postage")),
    (("広告", "advertising"), ("advertising", "marketing")),
    (("家賃", "rent"), ("rent",)),
    (("器具", "equipment"), ("equipment",)),
)
ENGLISH_FALLBACK_KEYWORDS = ("miscellaneous", "other", "general")


def match_account(
    category: str,
    accounts: list[dict],
    keyword_map: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...],
    fallback_keywords: tuple[str, ...],
    name_field: str = "name",
) -> Optional[dict]:
    """
    Pick the provider account for a decision category.

    Keyword groups are tried in order, then the fallback bucket, then the
    first account. Within a group, earlier keywords win. None only when
    there are no accounts at all.
    """
    normalized = str(category or "").lower()

    def named(keywords: tuple[str, ...]) -> Optional[dict]:
        for keyword in keywords:
            for account in accounts:
                if keyword.lower() in str(account.get(name_field) or "").lower():
                    return account
        return None

    for category_keys, account_keywords in keyword_map:
        if any(key in normalized for key in category_keys):
            found = named(account_keywords)
            if found is not None:
                return found

    return named(fallback_keywords) or (accounts[0] if accounts else None)


def json_object(body: Any) -> dict:
    return body if isinstance(body, dict) else {}


def has_draft_marker(text: Any) -> bool:
    return DRAFT_MARKER in str(text or "")


def strip_draft_marker(text: Any) -> str:
    return str(text or "").replace(DRAFT_MARKER, "").strip()[:MAX_QUEUE_MEMO]


class AccountingAdapter(ABC):
    """
    Base class for provider adapters.

    Subclasses set provider/prefix and implement the hooks:
    _api_root, _load_posting_context, _build_draft_request,
    _extract_remote_id, _list_drafts and _to_queue_item.
    """

    provider: str = ""
    prefix: str = ""
    # freee wants client credentials in the form body, others use HTTP Basic
    token_auth_in_body: bool = False

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize adapter.

        Args:
            config: OAuth client and API settings for this provider.
            client: Shared async HTTP client (injected, not owned). May be
                None for adapters that only report status.
        """
        self.config = config
        self.client = client
        self.definition = get_provider_definition(self.provider)
        self.timeout = httpx.Timeout(float(config.timeout_seconds), connect=10.0)

    @property
    def label(self) -> str:
        return self.definition.label

    @property
    def contact(self) -> str:
        return self.definition.support.url

    # ------------------------------------------------------------------
    # Session and status
    # ------------------------------------------------------------------

    def read_session(self, store: SessionStore) -> OAuthSession:
        """Session tokens, falling back to shared tokens in shared mode."""
        keys = SESSION_KEYS[self.provider]
        shared = self.config.shared_mode

        def pick(name: str, shared_value: Optional[str]) -> str:
            value = store.get(name) or ""
            if not value and shared:
                value = shared_value or ""
            return value

        return OAuthSession(
            access_token=pick(keys.access_token, self.config.shared_access_token),
            refresh_token=pick(keys.refresh_token, self.config.shared_refresh_token),
            account_id=pick(keys.account_id, self.config.shared_account_id),
            shared_mode=shared,
        )

    def is_connected(self, session: OAuthSession) -> bool:
        return bool(session.access_token and session.account_id)

    def get_status(self, store: SessionStore) -> ProviderStatus:
        session = self.read_session(store)
        connected = self.is_connected(session)
        return ProviderStatus(
            provider=self.provider,
            label=self.label,
            configured=self.config.is_configured,
            connected=connected,
            mode="shared_token" if session.shared_mode else "oauth_per_user",
            account_context=session.account_id or None,
            next_action="connected" if connected else "start_oauth",
            contact=self.contact,
            support_name=self.definition.support.name,
            docs_url=self.definition.docs_url,
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        if self.client is None:
            raise ProviderConnectionError(f"No HTTP client configured for {self.label}")
        return self.client

    def _headers(self, session: OAuthSession) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {session.access_token}",
            "Accept": "application/json",
        }

    async def _send(
        self,
        method: str,
        url: str,
        session: OAuthSession,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = self._headers(session)
        headers.update(kwargs.pop("headers", None) or {})
        logger.debug("API Request: %s %s", method, url)
        try:
            response = await self._http().request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error("Timeout for %s %s: %s", method, url, e)
            raise ProviderConnectionError(f"Request to {self.label} timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Connection error to %s: %s", url, e)
            raise ProviderConnectionError(f"Failed to connect to {self.label}: {e}") from e
        logger.debug("Response status: %d", response.status_code)
        return response

    async def _request(
        self,
        ctx: RequestContext,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Call the provider API with automatic token refresh.

        A 401 triggers at most one refresh and one retry. When the refresh
        fails, the original 401 response is returned.

        Raises:
            ProviderConnectionError: On transport failure.
        """
        url = path if path.startswith("http") else f"{self._api_root(ctx.session)}{path}"
        response = await self._send(method, url, ctx.session, **kwargs)

        if response.status_code == 401 and ctx.session.refresh_token:
            refreshed = await self.refresh_access_token(ctx.session.refresh_token)
            if refreshed is not None:
                ctx.apply(refreshed)
                response = await self._send(method, url, ctx.session, **kwargs)

        return response

    async def refresh_access_token(self, refresh_token: str) -> Optional[TokenResponse]:
        """Exchange a refresh token. Returns None on any failure."""
        client_id = self.config.client_id
        client_secret = self.config.client_secret
        if not client_id or not client_secret:
            logger.warning("%s token refresh skipped: client credentials not configured", self.label)
            return None

        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        kwargs: dict[str, Any] = {}
        if self.token_auth_in_body:
            data.update({"client_id": client_id, "client_secret": client_secret})
        else:
            kwargs["auth"] = httpx.BasicAuth(client_id, client_secret)

        try:
            response = await self._http().post(
                self.config.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                **kwargs,
            )
        except (httpx.HTTPError, ProviderConnectionError) as e:
            logger.error("%s token refresh failed: %s", self.label, e)
            return None

        if not response.is_success:
            logger.error("%s token refresh rejected: HTTP %d", self.label, response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.error("%s token refresh returned invalid JSON", self.label)
            return None

        refreshed = TokenResponse.from_payload(payload)
        if refreshed is None:
            logger.error("%s token refresh returned no access token", self.label)
        else:
            logger.info("%s access token refreshed", self.label)
        return refreshed

    async def _get_json(
        self,
        ctx: RequestContext,
        path: str,
        params: Optional[dict] = None,
    ) -> Any:
        """
        GET and decode JSON.

        Raises:
            ProviderAPIError: On non-2xx status or undecodable body.
            ProviderConnectionError: On transport failure.
        """
        response = await self._request(ctx, "GET", path, params=params)
        if not response.is_success:
            logger.error("%s API Error %d for GET %s", self.label, response.status_code, path)
            raise ProviderAPIError(response.status_code, response.reason_phrase, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderAPIError(502, f"Invalid JSON from {self.label}", response.text) from e

    async def _load_resource(
        self,
        ctx: RequestContext,
        path: str,
        params: Optional[dict],
        failure_code: str,
        message: str,
        next_action: str = "Check provider settings and retry.",
    ) -> Any:
        """_get_json for batch preconditions; failures become ProviderPreconditionError."""
        try:
            return await self._get_json(ctx, path, params)
        except ProviderAPIError as e:
            if e.status_code == 401:
                raise ProviderPreconditionError(
                    f"{self.prefix}_AUTH_EXPIRED",
                    401,
                    f"{self.label}の認証有効期限が切れています。",
                    f"Reconnect {self.label} and retry.",
                ) from e
            raise ProviderPreconditionError(failure_code, e.status_code, message, next_action) from e
        except ProviderConnectionError as e:
            raise ProviderPreconditionError(
                f"{self.prefix}_NETWORK_ERROR",
                503,
                f"{self.label}に接続できませんでした。",
                "Check network connectivity and retry.",
            ) from e

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _result(
        self,
        command: PostingCommand,
        ok: bool,
        status: int,
        diagnostic_code: str,
        message: str,
        next_action: str,
        remote_id: Optional[Union[str, int]] = None,
        request_id: Optional[str] = None,
    ) -> PostingResult:
        return PostingResult(
            provider=self.provider,
            transaction_id=command.transaction_id,
            ok=ok,
            status=status,
            diagnostic_code=diagnostic_code,
            message=message,
            next_action=next_action,
            contact=self.contact,
            remote_id=remote_id,
            request_id=request_id,
        )

    def _not_postable(self, command: PostingCommand) -> PostingResult:
        return self._result(
            command,
            False,
            422,
            f"{self.prefix}_NOT_POSTABLE",
            "経費として送信できない判定のためスキップしました。",
            "Review the decision before posting.",
        )

    def _fail_all(
        self,
        commands: list[PostingCommand],
        status: int,
        diagnostic_code: str,
        message: str,
        next_action: str,
        ctx: Optional[RequestContext] = None,
        skip_unpostable: bool = False,
    ) -> BatchResult:
        results = [
            self._not_postable(command)
            if skip_unpostable and not command.is_postable
            else self._result(command, False, status, diagnostic_code, message, next_action)
            for command in commands
        ]
        return BatchResult(
            provider=self.provider,
            ok=False,
            status=status,
            diagnostic_code=diagnostic_code,
            success=0,
            failed=len(results),
            results=results,
            refreshed=ctx.refreshed if ctx else None,
            session=ctx.session if ctx else None,
        )

    def _missing_account(self) -> tuple[int, str, str, str]:
        """(status, diagnostic, message, next_action) when the account context is missing."""
        return (
            401,
            f"{self.prefix}_NOT_CONNECTED",
            f"{self.label}の接続先が未設定です。",
            f"Connect {self.label} OAuth and retry.",
        )

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    async def post_drafts(
        self,
        commands: Iterable[PostingCommand],
        store: SessionStore,
        tenant: Optional[TenantContext] = None,
    ) -> BatchResult:
        """Post one draft per postable command. Never raises for provider errors."""
        commands = list(commands)
        if not commands:
            return BatchResult(
                provider=self.provider,
                ok=False,
                status=400,
                diagnostic_code="NO_COMMANDS",
            )

        session = self.read_session(store)
        if not session.access_token:
            return self._fail_all(
                commands,
                401,
                f"{self.prefix}_NOT_CONNECTED",
                f"{self.label}未接続です。",
                f"Connect {self.label} OAuth and retry.",
            )
        if not session.account_id:
            return self._fail_all(commands, *self._missing_account())

        if not any(command.is_postable for command in commands):
            results = [self._not_postable(command) for command in commands]
            return BatchResult(
                provider=self.provider,
                ok=False,
                status=422,
                diagnostic_code="NO_POSTABLE_COMMANDS",
                success=0,
                failed=len(results),
                results=results,
            )

        if tenant is not None:
            logger.info(
                "Posting %d drafts to %s for organization %s",
                len(commands),
                self.label,
                tenant.organization_id,
            )

        ctx = RequestContext(session=session)
        try:
            posting_context = await self._load_posting_context(ctx)
        except ProviderPreconditionError as e:
            logger.error("%s precondition failed: %s", self.label, e)
            return self._fail_all(
                commands,
                e.status,
                e.diagnostic_code,
                e.message,
                e.next_action,
                ctx=ctx,
                skip_unpostable=True,
            )

        results = []
        for command in commands:
            if not command.is_postable:
                results.append(self._not_postable(command))
                continue
            results.append(await self._post_one(ctx, posting_context, command))

        success = sum(1 for result in results if result.ok)
        failed = len(results) - success
        ok = failed == 0
        return BatchResult(
            provider=self.provider,
            ok=ok,
            status=200 if ok else 207,
            diagnostic_code=(
                f"{self.prefix}_DRAFT_POSTED" if ok else f"{self.prefix}_DRAFT_PARTIAL_FAILURE"
            ),
            success=success,
            failed=failed,
            results=results,
            refreshed=ctx.refreshed,
            session=ctx.session,
        )

    async def _post_one(
        self,
        ctx: RequestContext,
        posting_context: Any,
        command: PostingCommand,
    ) -> PostingResult:
        try:
            draft = self._build_draft_request(posting_context, command)
        except DraftMappingError as e:
            logger.warning("Account mapping failed for %s: %s", command.transaction_id, e)
            return self._result(
                command,
                False,
                400,
                "ACCOUNT_ITEM_MAPPING_FAILED",
                "勘定科目の自動マッピングに失敗しました。",
                "Adjust category and retry.",
            )

        try:
            response = await self._request(
                ctx, draft.method, draft.path, json=draft.payload, params=draft.params
            )
        except ProviderConnectionError:
            return self._result(
                command,
                False,
                503,
                f"{self.prefix}_NETWORK_ERROR",
                f"{self.label}に接続できませんでした。",
                "Check network connectivity and retry.",
            )

        diagnostic = map_status_to_diagnostic(self.prefix, response.status_code)
        request_id = self._extract_request_id(response)

        if not response.is_success:
            logger.error(
                "%s draft post failed for %s: HTTP %d",
                self.label,
                command.transaction_id,
                response.status_code,
            )
            return self._result(
                command,
                False,
                response.status_code,
                diagnostic,
                f"{self.label}送信に失敗しました。",
                "Reconnect provider and retry.",
                request_id=request_id,
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        return self._result(
            command,
            True,
            response.status_code,
            diagnostic,
            f"{self.label}下書きへ送信しました。",
            f"Review the draft in {self.label}.",
            remote_id=self._extract_remote_id(body),
            request_id=request_id,
        )

    # ------------------------------------------------------------------
    # Review queue
    # ------------------------------------------------------------------

    async def fetch_review_queue(
        self,
        store: SessionStore,
        limit: int = DEFAULT_QUEUE_LIMIT,
    ) -> QueueResult:
        """List recent drafts created by this system."""
        limit = clamp_queue_limit(limit)
        session = self.read_session(store)
        if not session.access_token or not session.account_id:
            return QueueResult(
                provider=self.provider,
                ok=False,
                status=401,
                diagnostic_code=f"{self.prefix}_NOT_CONNECTED",
            )

        ctx = RequestContext(session=session)
        try:
            drafts = await self._list_drafts(ctx, limit)
        except ProviderAPIError as e:
            return QueueResult(
                provider=self.provider,
                ok=False,
                status=e.status_code,
                diagnostic_code=f"{self.prefix}_QUEUE_FETCH_FAILED",
                refreshed=ctx.refreshed,
            )
        except ProviderConnectionError:
            return QueueResult(
                provider=self.provider,
                ok=False,
                status=503,
                diagnostic_code=f"{self.prefix}_QUEUE_FETCH_FAILED",
                refreshed=ctx.refreshed,
            )

        queue = []
        for draft in drafts:
            item = self._to_queue_item(draft)
            if item is not None:
                queue.append(item)

        return QueueResult(
            provider=self.provider,
            ok=True,
            status=200,
            diagnostic_code=f"{self.prefix}_QUEUE_FETCHED",
            queue=queue[:limit],
            refreshed=ctx.refreshed,
        )

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _api_root(self, session: OAuthSession) -> str:
        """Base URL that request paths are appended to."""

    @abstractmethod
    async def _load_posting_context(self, ctx: RequestContext) -> Any:
        """Fetch batch-wide prerequisites.

        Raises:
            ProviderPreconditionError: When a prerequisite is unavailable.
        """

    @abstractmethod
    def _build_draft_request(self, posting_context: Any, command: PostingCommand) -> DraftRequest:
        """Build the create-draft call for one command.

        Raises:
            DraftMappingError: When no account matches the command.
        """

    @abstractmethod
    def _extract_remote_id(self, body: Any) -> Optional[Union[str, int]]:
        """Provider id of the created draft."""

    def _extract_request_id(self, response: httpx.Response) -> Optional[str]:
        return None

    @abstractmethod
    async def _list_drafts(self, ctx: RequestContext, limit: int) -> list[dict]:
        """Recent drafts, raw.

        Raises:
            ProviderAPIError: On a non-2xx response.
        """

    @abstractmethod
    def _to_queue_item(self, draft: dict) -> Optional[ReviewQueueItem]:
        """Review queue entry, or None when the draft was not created by us."""
