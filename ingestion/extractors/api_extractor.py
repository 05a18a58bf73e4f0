"""
Cursor-paginated event API extractor with throttling and failure classification.

This module provides:
- Minimum spacing between request starts (via RateLimiter)
- Server-directed cooldowns on HTTP 429, absorbed internally
- Classification of every other failure into stale-cursor, transient or fatal
- Tolerant parsing of the several response shapes the API has used
"""

import httpx
from typing import Any, Dict, Optional
from core.config import Settings, settings
from core.exceptions import (
    FatalFetchError,
    RateLimitError,
    StaleCursorError,
    TransientFetchError,
)
from ingestion.extractors.response_parser import parse_events_response
from ingestion.rate_limiter import RateLimiter
from ingestion.transformers.normalizer import EventNormalizer
from schemas.event import Page
import logging

logger = logging.getLogger(__name__)

EVENTS_PATH = "/events"


def _header_number(headers: httpx.Headers, name: str) -> Optional[float]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class EventFetcher:
    """
    Fetch pages of events from the remote API, one request at a time.

    Attributes:
        base_url: API base URL (the events path is appended)
        rate_limiter: Request spacing state shared by every call
        low_water: Remaining-quota level below which a warning is logged
        default_retry_after: Cooldown used when a 429 carries no hint
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 60.0,
        low_water: int = 10,
        default_retry_after: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        normalizer: Optional[EventNormalizer] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.rate_limiter = rate_limiter or RateLimiter(0.5)
        self.timeout = timeout
        self.low_water = low_water
        self.default_retry_after = default_retry_after
        self.normalizer = normalizer or EventNormalizer()

        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )
        if not self._owns_client and api_key:
            self.client.headers.setdefault("X-API-Key", api_key)

        self._consecutive_failures = 0

    @classmethod
    def from_settings(cls, config: Settings = settings, **kwargs) -> "EventFetcher":
        limiter = kwargs.pop("rate_limiter", None) or RateLimiter(config.min_delay_seconds)
        return cls(
            base_url=config.TARGET_API_BASE_URL,
            api_key=config.TARGET_API_KEY,
            rate_limiter=limiter,
            timeout=config.REQUEST_TIMEOUT_SECONDS,
            low_water=config.RATE_LIMIT_LOW_WATER,
            default_retry_after=config.DEFAULT_RETRY_AFTER_SECONDS,
            **kwargs,
        )

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "EventFetcher":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def fetch_page(self, cursor: Optional[str] = None, limit: int = 1000) -> Page:
        """
        Fetch the page at ``cursor`` (the first page when None).

        Rate limiting is absorbed here: on HTTP 429 the limiter is deferred
        by the server's wait and the same cursor is requested again.

        Raises:
            StaleCursorError: The API rejected ``cursor``; restart the chain
            TransientFetchError: Gateway or network failure; back off and retry
            FatalFetchError: Anything else
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        while True:
            try:
                return await self._request_page(cursor, limit)
            except RateLimitError as e:
                logger.warning(f"Rate limited, waiting {e.retry_after}s before retrying")
                self.rate_limiter.defer(e.retry_after)

    async def _request_page(self, cursor: Optional[str], limit: int) -> Page:
        params: Dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor

        await self.rate_limiter.acquire()

        try:
            response = await self.client.get(f"{self.base_url}{EVENTS_PATH}", params=params)
        except httpx.TransportError as e:
            raise self._transient(
                f"Network error fetching events: {type(e).__name__}",
                cursor=cursor,
                original_exception=e,
            )

        status = response.status_code
        if status < 500 and not response.is_success:
            # A definite client-side answer ends a run of transient failures
            self._consecutive_failures = 0

        if status == 429:
            raise RateLimitError(
                "Rate limit exceeded",
                retry_after=self._retry_after(response.headers),
                context={"cursor": cursor},
            )

        if status == 400:
            if cursor:
                raise StaleCursorError(
                    f"Cursor rejected by API: {cursor}",
                    cursor=cursor,
                    context={"status_code": status, "response_body": response.text[:500]},
                )
            raise FatalFetchError(
                "Initial events request rejected",
                status_code=status,
                context={"response_body": response.text[:500]},
            )

        if status >= 500:
            raise self._transient(
                f"Server error {status}",
                cursor=cursor,
                status_code=status,
            )

        if not response.is_success:
            raise FatalFetchError(
                f"Unexpected response status {status}",
                status_code=status,
                context={"cursor": cursor, "response_body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise self._transient(
                "Failed to parse JSON response",
                cursor=cursor,
                status_code=status,
                original_exception=e,
            )

        self._consecutive_failures = 0
        remaining = self._check_remaining(response.headers)

        parsed = parse_events_response(body)
        events = self.normalizer.normalize_many(parsed.items)
        logger.debug(
            f"Fetched {len(events)} events (has_more={parsed.has_more}, "
            f"next_cursor={parsed.next_cursor})"
        )
        return Page(
            events=events,
            next_cursor=parsed.next_cursor,
            has_more=parsed.has_more,
            rate_limit_remaining=remaining,
        )

    def _transient(
        self,
        message: str,
        cursor: Optional[str],
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ) -> TransientFetchError:
        self._consecutive_failures += 1
        return TransientFetchError(
            message,
            attempt=self._consecutive_failures,
            status_code=status_code,
            context={"cursor": cursor},
            original_exception=original_exception,
        )

    def _retry_after(self, headers: httpx.Headers) -> float:
        for name in ("retry-after", "x-ratelimit-reset"):
            value = _header_number(headers, name)
            if value is not None and value >= 0:
                return value
        return self.default_retry_after

    def _check_remaining(self, headers: httpx.Headers) -> Optional[int]:
        remaining = _header_number(headers, "x-ratelimit-remaining")
        if remaining is None:
            return None
        if remaining < self.low_water:
            reset_in = headers.get("x-ratelimit-reset") or headers.get("retry-after")
            logger.warning(f"Rate limit low: {int(remaining)} remaining, resets in {reset_in}s")
        return int(remaining)
