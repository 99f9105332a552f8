"""Unit tests for PaginatedFetcher.

Covers cursor pagination, request building, result-window rollover and its
stall guard, and the retry policy with opportunistic token refresh. Uses the
scripted FakeCRMClient and an instant sleep -- no real HTTP or waiting.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.hubsync.crm.client import CRMAuthError, CRMRequestError
from src.hubsync.sync.errors import AuthRefreshError, FetchExhaustedError
from src.hubsync.sync.fetcher import PaginatedFetcher
from src.hubsync.sync.object_types import COMPANIES, CONTACTS, MEETINGS
from src.hubsync.sync.schemas import PageCursor
from src.hubsync.sync.tokens import TokenManager


def _epoch_ms(moment) -> str:
    return str(int(moment.timestamp() * 1000))


@pytest.fixture
def tokens(fake_client, clock) -> TokenManager:
    return TokenManager(fake_client, "client-id", "client-secret", clock=clock)


@pytest.fixture
def fetcher(fake_client, tokens, instant_sleep) -> PaginatedFetcher:
    return PaginatedFetcher(fake_client, tokens, sleep=instant_sleep)


@pytest.fixture
def pages_seen():
    return []


@pytest.fixture
def on_page(pages_seen):
    async def _on_page(records):
        pages_seen.append([record.id for record in records])

    return _on_page


# ── Request Building ────────────────────────────────────────────────────────


class TestBuildRequest:
    """Tests for search request construction."""

    def test_filtered_by_watermark_and_now(self, fetcher, clock):
        watermark = clock.now - timedelta(days=1)

        request = fetcher.build_request(CONTACTS, PageCursor(), watermark, clock.now)

        body = request.to_body()
        assert body["filterGroups"] == [
            {
                "filters": [
                    {"propertyName": "lastmodifieddate", "operator": "GTE", "value": _epoch_ms(watermark)},
                    {"propertyName": "lastmodifieddate", "operator": "LTE", "value": _epoch_ms(clock.now)},
                ]
            }
        ]
        assert body["sorts"] == [{"propertyName": "lastmodifieddate", "direction": "ASCENDING"}]
        assert body["properties"] == CONTACTS.properties
        assert body["limit"] == 100
        assert "after" not in body

    def test_rollover_edge_replaces_watermark(self, fetcher, clock):
        watermark = clock.now - timedelta(days=2)
        edge = clock.now - timedelta(hours=1)

        request = fetcher.build_request(
            COMPANIES, PageCursor(modified_since=edge), watermark, clock.now
        )

        assert request.filter_groups[0].filters[0].value == _epoch_ms(edge)

    def test_no_watermark_is_unfiltered(self, fetcher, clock):
        request = fetcher.build_request(COMPANIES, PageCursor(after="100"), None, clock.now)
        assert request.filter_groups == []
        assert request.after == "100"

    def test_meetings_are_never_filtered(self, fetcher, clock):
        request = fetcher.build_request(
            MEETINGS, PageCursor(), clock.now - timedelta(days=1), clock.now
        )
        assert request.filter_groups == []
        assert request.sorts[0].property_name == "hs_lastmodifieddate"


# ── Pagination ──────────────────────────────────────────────────────────────


class TestPagination:
    """Tests for cursor-following and termination."""

    async def test_single_page(self, fetcher, fake_client, account, on_page, pages_seen, make_record, make_page, clock):
        fake_client.pages["companies"] = [make_page([make_record("1"), make_record("2")])]

        stats = await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert pages_seen == [["1", "2"]]
        assert stats.pages == 1
        assert stats.records == 2
        assert len(fake_client.search_calls) == 1

    async def test_follows_cursor_until_exhausted(self, fetcher, fake_client, account, on_page, pages_seen, make_record, make_page, clock):
        fake_client.pages["contacts"] = [
            make_page([make_record("1")], after="100"),
            make_page([make_record("2")], after="200"),
            make_page([make_record("3")]),
        ]

        stats = await fetcher.fetch(account, CONTACTS, on_page, clock.now)

        assert pages_seen == [["1"], ["2"], ["3"]]
        assert [request.after for _, request in fake_client.search_calls] == [None, "100", "200"]
        assert stats.pages == 3

    async def test_empty_collection(self, fetcher, fake_client, account, on_page, pages_seen, clock):
        stats = await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert pages_seen == [[]]
        assert stats.records == 0

    async def test_upper_bound_is_fixed_for_the_pass(self, fetcher, fake_client, account, on_page, make_record, make_page, clock):
        account.last_pulled_dates["companies"] = clock.now - timedelta(days=1)
        now = clock.now
        fake_client.pages["companies"] = [
            make_page([make_record("1")], after="100"),
            make_page([make_record("2")]),
        ]

        await fetcher.fetch(account, COMPANIES, on_page, now)

        uppers = [request.filter_groups[0].filters[1].value for _, request in fake_client.search_calls]
        assert uppers == [_epoch_ms(now), _epoch_ms(now)]


# ── Result-Window Rollover ──────────────────────────────────────────────────


class TestWindowRollover:
    """Tests for restarting the search before the result-window cap."""

    @pytest.fixture
    def small_window(self, fake_client, tokens, instant_sleep) -> PaginatedFetcher:
        return PaginatedFetcher(
            fake_client, tokens, page_size=100, window_cap=300, sleep=instant_sleep
        )

    async def test_rollover_restarts_from_last_modified(self, small_window, fake_client, account, on_page, pages_seen, make_record, make_page, clock):
        watermark = clock.now - timedelta(days=10)
        account.last_pulled_dates["companies"] = watermark
        edge = clock.now - timedelta(days=5)
        fake_client.pages["companies"] = [
            make_page([make_record("1", updated_at=watermark + timedelta(days=1))], after="100"),
            make_page([make_record("2", updated_at=edge)], after="200"),
            make_page([make_record("2", updated_at=edge), make_record("3", updated_at=edge)]),
        ]

        stats = await small_window.fetch(account, COMPANIES, on_page, clock.now)

        assert stats.rollovers == 1
        assert pages_seen == [["1"], ["2"], ["2", "3"]]
        restart = fake_client.search_calls[2][1]
        assert restart.after is None
        assert restart.filter_groups[0].filters[0].value == _epoch_ms(edge)
        assert account.last_pulled_dates["companies"] == watermark

    async def test_rollover_without_watermark_uses_edge(self, small_window, fake_client, account, on_page, make_record, make_page, clock):
        edge = clock.now - timedelta(days=1)
        fake_client.pages["companies"] = [
            make_page([make_record("1", updated_at=edge)], after="200"),
            make_page([make_record("2", updated_at=edge + timedelta(hours=1))]),
        ]

        stats = await small_window.fetch(account, COMPANIES, on_page, clock.now)

        assert stats.rollovers == 1
        first, second = (request for _, request in fake_client.search_calls)
        assert first.filter_groups == []
        assert second.filter_groups[0].filters[0].value == _epoch_ms(edge)

    async def test_stalled_edge_terminates(self, small_window, fake_client, account, on_page, make_record, make_page, clock):
        """A full window sharing one timestamp cannot advance; the pass stops."""
        edge = clock.now - timedelta(days=1)
        account.last_pulled_dates["companies"] = edge
        fake_client.pages["companies"] = [
            make_page([make_record("1", updated_at=edge)], after="200"),
            make_page([make_record("2", updated_at=edge)], after="100"),
        ]

        stats = await small_window.fetch(account, COMPANIES, on_page, clock.now)

        assert stats.pages == 1
        assert stats.rollovers == 0
        assert len(fake_client.search_calls) == 1

    async def test_unfiltered_type_terminates_at_cap(self, small_window, fake_client, account, on_page, make_record, make_page, clock):
        fake_client.pages["meetings"] = [
            make_page([make_record("1", hs_meeting_title="a")], after="100"),
            make_page([make_record("2", hs_meeting_title="b")], after="200"),
            make_page([make_record("3", hs_meeting_title="c")]),
        ]

        stats = await small_window.fetch(account, MEETINGS, on_page, clock.now)

        assert stats.pages == 2
        assert stats.rollovers == 0

    async def test_non_numeric_cursor_never_rolls_over(self, small_window, fake_client, account, on_page, make_record, make_page, clock):
        fake_client.pages["companies"] = [
            make_page([make_record("1")], after="opaque-token"),
            make_page([make_record("2")]),
        ]

        stats = await small_window.fetch(account, COMPANIES, on_page, clock.now)

        assert stats.pages == 2
        assert fake_client.search_calls[1][1].after == "opaque-token"


# ── Retry Policy ────────────────────────────────────────────────────────────


class TestRetry:
    """Tests for retrying failed searches."""

    @pytest.mark.parametrize("failures", [1, 2, 3, 4])
    async def test_recovers_after_transient_failures(self, failures, fetcher, fake_client, account, on_page, pages_seen, make_record, make_page, sleeps, clock):
        fake_client.pages["companies"] = [
            *[CRMRequestError("rate limited", status_code=429) for _ in range(failures)],
            make_page([make_record("1")]),
        ]

        await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert pages_seen == [["1"]]
        assert len(fake_client.search_calls) == failures + 1
        assert sleeps == [10.0, 20.0, 40.0, 80.0][:failures]

    async def test_five_failures_exhaust_the_pass(self, fetcher, fake_client, account, on_page, pages_seen, make_record, make_page, sleeps, clock):
        last = CRMRequestError("down", status_code=503)
        fake_client.pages["companies"] = [
            *[CRMRequestError("down", status_code=503) for _ in range(4)],
            last,
            make_page([make_record("1")]),
        ]

        with pytest.raises(FetchExhaustedError, match="Failed to fetch companies after 5 attempts") as exc_info:
            await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert exc_info.value.__cause__ is last
        assert pages_seen == []
        assert len(fake_client.search_calls) == 5
        assert sleeps == [10.0, 20.0, 40.0, 80.0]

    async def test_failure_after_first_page_keeps_delivered_pages(self, fetcher, fake_client, account, on_page, pages_seen, make_record, make_page, clock):
        fake_client.pages["companies"] = [
            make_page([make_record("1")], after="100"),
            *[CRMRequestError("down", status_code=500) for _ in range(5)],
        ]

        with pytest.raises(FetchExhaustedError):
            await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert pages_seen == [["1"]]

    async def test_refreshes_expired_token_before_retry(self, fetcher, fake_client, tokens, account, on_page, make_record, make_page, clock):
        await tokens.refresh(account)
        clock.advance(seconds=1801)
        fake_client.pages["companies"] = [
            CRMAuthError("expired", status_code=401),
            make_page([make_record("1")]),
        ]

        await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert fake_client.refresh_calls == 2

    async def test_valid_token_is_not_refreshed(self, fetcher, fake_client, tokens, account, on_page, make_record, make_page, clock):
        await tokens.refresh(account)
        fake_client.pages["companies"] = [
            CRMRequestError("blip", status_code=502),
            make_page([make_record("1")]),
        ]

        await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert fake_client.refresh_calls == 1

    async def test_rejected_refresh_is_not_retried(self, fetcher, fake_client, account, on_page, sleeps, clock):
        fake_client.tokens = [CRMAuthError("invalid_grant", status_code=400)]
        fake_client.pages["companies"] = [CRMAuthError("expired", status_code=401)]

        with pytest.raises(AuthRefreshError):
            await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert len(fake_client.search_calls) == 1
        assert fake_client.refresh_calls == 1
        assert sleeps == []

    async def test_auth_rejection_refreshes_unexpired_token(self, fetcher, fake_client, tokens, account, on_page, pages_seen, make_record, make_page, clock):
        """A 401 replaces the token even while its tracked expiry is in the future."""
        await tokens.refresh(account)
        fake_client.pages["companies"] = [
            CRMAuthError("token revoked", status_code=401),
            make_page([make_record("1")]),
        ]

        await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        assert fake_client.refresh_calls == 2
        assert pages_seen == [["1"]]

    async def test_refresh_happens_before_backoff_sleep(self, fake_client, tokens, account, on_page, make_record, make_page, clock):
        refreshes_at_sleep = []

        async def sleep(seconds: float) -> None:
            refreshes_at_sleep.append(fake_client.refresh_calls)

        await tokens.refresh(account)
        fake_client.pages["companies"] = [
            CRMAuthError("token revoked", status_code=401),
            make_page([make_record("1")]),
        ]

        await PaginatedFetcher(fake_client, tokens, sleep=sleep).fetch(
            account, COMPANIES, on_page, clock.now
        )

        assert refreshes_at_sleep == [2]

    async def test_repeated_auth_rejections_refresh_before_every_retry(self, fetcher, fake_client, tokens, account, on_page, clock):
        await tokens.refresh(account)
        fake_client.pages["companies"] = [
            CRMAuthError("token revoked", status_code=401) for _ in range(5)
        ]

        with pytest.raises(FetchExhaustedError):
            await fetcher.fetch(account, COMPANIES, on_page, clock.now)

        # one initial refresh plus one before each of the four retries
        assert fake_client.refresh_calls == 5
        assert len(fake_client.search_calls) == 5
