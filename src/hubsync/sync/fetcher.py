"""Cursor-paginated incremental pull of one object collection.

One PaginatedFetcher is built per account. ``fetch()`` walks every page of
records modified inside ``[watermark, now]``, sorted ascending by
modification time, and hands each page to a callback.

The provider only lets a cursor address a bounded result window (10,000
records). Before the cursor would run past it, the fetcher restarts the
search with an empty cursor and the last seen modification time as the new
lower bound. Records sharing that timestamp may be delivered twice across
the restart; the sink contract is at-least-once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime

import structlog
from tenacity import RetryError

from src.hubsync.crm.client import CRMAuthError, CRMClient
from src.hubsync.crm.schemas import CRMRecord, SearchPage, SearchRequest, SearchSort
from src.hubsync.sync.errors import FetchExhaustedError
from src.hubsync.sync.normalizer import build_modified_filter
from src.hubsync.sync.object_types import ObjectTypeDescriptor
from src.hubsync.sync.retry import RetryPolicy, SleepFn, log_before_retry
from src.hubsync.sync.schemas import Account, FetchStats, PageCursor
from src.hubsync.sync.tokens import TokenManager

logger = structlog.get_logger(__name__)

PageCallback = Callable[[list[CRMRecord]], Awaitable[None]]


class PaginatedFetcher:
    """Incremental, retrying, window-aware search pagination for one account.

    Args:
        client: The account's CRM client.
        tokens: The account's TokenManager, consulted before retries.
        retry_policy: Attempts and backoff per search request.
        page_size: Records requested per page.
        window_cap: Provider result-window cap for cursor pagination.
        sleep: Async sleep used for backoff (injectable for tests).
    """

    def __init__(
        self,
        client: CRMClient,
        tokens: TokenManager,
        retry_policy: RetryPolicy | None = None,
        page_size: int = 100,
        window_cap: int = 10_000,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self._tokens = tokens
        self._policy = retry_policy or RetryPolicy()
        self._page_size = page_size
        self._window_cap = window_cap
        self._sleep = sleep

    def build_request(
        self,
        descriptor: ObjectTypeDescriptor,
        cursor: PageCursor,
        watermark: datetime | None,
        now: datetime,
    ) -> SearchRequest:
        """Search request for the page at ``cursor``."""
        filter_groups = []
        if descriptor.supports_modified_filter:
            group = build_modified_filter(
                cursor.modified_since or watermark, now, descriptor.modified_property
            )
            if group is not None:
                filter_groups.append(group)

        return SearchRequest(
            filter_groups=filter_groups,
            sorts=[SearchSort(property_name=descriptor.modified_property, direction="ASCENDING")],
            properties=descriptor.properties,
            limit=self._page_size,
            after=cursor.after,
        )

    async def _search_with_retry(
        self,
        account: Account,
        descriptor: ObjectTypeDescriptor,
        request: SearchRequest,
    ) -> SearchPage:
        retrying = self._policy.build(
            sleep=self._sleep,
            before_sleep=log_before_retry(
                f"fetch_{descriptor.name}", hub_id=account.hub_id
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        page = await self._client.search_objects(descriptor.name, request)
                    except Exception as exc:
                        if attempt.retry_state.attempt_number < self._policy.max_attempts:
                            await self._refresh_if_needed(account, exc)
                        raise
        except RetryError as exc:
            raise FetchExhaustedError(
                descriptor.name, self._policy.max_attempts
            ) from exc.last_attempt.exception()
        return page

    async def _refresh_if_needed(self, account: Account, exc: Exception) -> None:
        """Replace the token before the backoff sleep when it was rejected or has expired.

        An AuthRefreshError raised here ends the retry loop.
        """
        if isinstance(exc, CRMAuthError) or self._tokens.is_expired():
            logger.info(
                "fetch.token_refresh_before_retry",
                hub_id=account.hub_id,
                auth_rejected=isinstance(exc, CRMAuthError),
            )
            await self._tokens.refresh(account)

    def _reaches_window_cap(self, after: str) -> bool:
        try:
            offset = int(after)
        except ValueError:
            return False
        return offset >= self._window_cap - self._page_size

    async def fetch(
        self,
        account: Account,
        descriptor: ObjectTypeDescriptor,
        on_page: PageCallback,
        now: datetime,
    ) -> FetchStats:
        """Pull every record of ``descriptor`` modified since the account watermark.

        ``now`` is fixed by the caller for the whole pass so the upper bound
        does not drift across pages. The caller advances the account
        watermark to ``now`` once this returns.

        Raises:
            FetchExhaustedError: A page could not be fetched within the retry policy.
            AuthRefreshError: A token refresh between retries was rejected.
        """
        watermark = account.watermark(descriptor.name)
        cursor = PageCursor()
        stats = FetchStats()
        log = logger.bind(hub_id=account.hub_id, object_type=descriptor.name)

        while True:
            request = self.build_request(descriptor, cursor, watermark, now)
            page = await self._search_with_retry(account, descriptor, request)

            stats.pages += 1
            stats.records += len(page.results)
            log.info("fetch.page_fetched", batch_size=len(page.results), after=cursor.after)

            await on_page(page.results)

            next_after = page.next_after
            if not next_after:
                break

            if not self._reaches_window_cap(next_after):
                cursor.after = next_after
                continue

            # Result-window rollover: restart from the last record's modification time
            edge = page.results[-1].updated_at if page.results else None
            current_edge = cursor.modified_since or watermark
            if (
                not descriptor.supports_modified_filter
                or edge is None
                or (current_edge is not None and edge <= current_edge)
            ):
                log.warning(
                    "fetch.window_cap_stalled",
                    after=next_after,
                    edge=edge.isoformat() if edge else None,
                )
                break

            cursor.after = None
            cursor.modified_since = edge
            stats.rollovers += 1
            log.info("fetch.window_rollover", modified_since=edge.isoformat())

        log.info(
            "fetch.completed",
            pages=stats.pages,
            records=stats.records,
            rollovers=stats.rollovers,
        )
        return stats
