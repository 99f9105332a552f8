"""Shared fixtures for sync engine tests.

Provides:
- FakeCRMClient: Scripted in-memory CRMClient (no HTTP)
- make_record / make_page: CRM wire object factories
- clock: Controllable UTC clock
- sleeps: Instant async sleep that records requested delays
- account: A stored account with no watermarks
- RecordingSink: EventSink keeping every appended batch
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.hubsync.crm.client import CRMClient
from src.hubsync.crm.schemas import (
    AssociationBatch,
    CRMRecord,
    NextPage,
    Paging,
    SearchPage,
    SearchRequest,
    TokenResponse,
)
from src.hubsync.sinks.base import EventSink
from src.hubsync.sync.schemas import Account, Event

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Fakes ───────────────────────────────────────────────────────────────────


class FakeCRMClient(CRMClient):
    """CRMClient returning scripted responses.

    ``pages[object_type]`` is consumed front to back; an Exception entry is
    raised instead of returned. An exhausted queue answers an empty page.
    ``tokens`` works the same way, repeating its last entry once exhausted.
    """

    def __init__(
        self,
        pages: dict[str, list[SearchPage | Exception]] | None = None,
        associations: dict[tuple[str, str], AssociationBatch | Exception] | None = None,
        objects: dict[tuple[str, str], CRMRecord | Exception] | None = None,
        tokens: list[TokenResponse | Exception] | None = None,
    ) -> None:
        self.pages = pages or {}
        self.associations = associations or {}
        self.objects = objects or {}
        self.tokens = tokens or [
            TokenResponse(access_token="fresh-token", refresh_token="refresh-1", expires_in=1800)
        ]
        self.search_calls: list[tuple[str, SearchRequest]] = []
        self.association_calls: list[tuple[str, str, list[str]]] = []
        self.object_calls: list[tuple[str, str, list[str]]] = []
        self.refresh_calls = 0
        self.access_token: str | None = None
        self.closed = False

    async def search_objects(self, object_type: str, request: SearchRequest) -> SearchPage:
        self.search_calls.append((object_type, request.model_copy(deep=True)))
        queue = self.pages.get(object_type, [])
        if not queue:
            return SearchPage()
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def read_associations(
        self, from_type: str, to_type: str, ids: list[str]
    ) -> AssociationBatch:
        self.association_calls.append((from_type, to_type, list(ids)))
        item = self.associations.get((from_type, to_type), AssociationBatch())
        if isinstance(item, Exception):
            raise item
        return item

    async def get_object(
        self, object_type: str, object_id: str, properties: list[str]
    ) -> CRMRecord:
        self.object_calls.append((object_type, object_id, list(properties)))
        item = self.objects[(object_type, object_id)]
        if isinstance(item, Exception):
            raise item
        return item

    async def refresh_token(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> TokenResponse:
        self.refresh_calls += 1
        item = self.tokens.pop(0) if len(self.tokens) > 1 else self.tokens[0]
        if isinstance(item, Exception):
            raise item
        return item

    def set_access_token(self, access_token: str) -> None:
        self.access_token = access_token

    async def aclose(self) -> None:
        self.closed = True


class RecordingSink(EventSink):
    """EventSink that keeps every batch it receives."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.batches: list[list[Event]] = []
        self.fail_with = fail_with

    @property
    def events(self) -> list[Event]:
        return [event for batch in self.batches for event in batch]

    async def append(self, events: list[Event]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.batches.append(list(events))


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ── Factories ───────────────────────────────────────────────────────────────


def _make_record(
    record_id: str,
    created_at: datetime = T0,
    updated_at: datetime | None = None,
    **properties: Any,
) -> CRMRecord:
    return CRMRecord(
        id=record_id,
        properties=properties or None,
        created_at=created_at,
        updated_at=updated_at or created_at,
    )


def _make_page(records: list[CRMRecord], after: str | None = None) -> SearchPage:
    paging = Paging(next=NextPage(after=after)) if after is not None else None
    return SearchPage(total=len(records), results=records, paging=paging)


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def make_record():
    """Factory for CRMRecord: make_record(id, created_at, updated_at, **props)."""
    return _make_record


@pytest.fixture
def make_page():
    """Factory for SearchPage: make_page(records, after=None)."""
    return _make_page


@pytest.fixture
def fake_client() -> FakeCRMClient:
    return FakeCRMClient()


@pytest.fixture
def fake_client_cls():
    return FakeCRMClient


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recording_sink_cls():
    return RecordingSink


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested from the instant sleep returned by ``instant_sleep``."""
    return []


@pytest.fixture
def instant_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def account() -> Account:
    return Account(hub_id="hub-1", access_token="stale-token", refresh_token="refresh-1")
