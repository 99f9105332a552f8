"""Per-account incremental sync control loop.

For every account, strictly one after another:

    TokenRefresh -> {object-type pass}* -> Drain -> Checkpoint

Each phase is fault-isolated: a failure is logged with the account and
operation and recorded on the AccountSyncResult, and the remaining phases
and accounts still run. The watermark of an object type only advances when
its pass completed, and the account is checkpointed to the store after each
successful pass and once more at the end, so a crash loses at most the
stage in progress.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from src.hubsync.config import Settings
from src.hubsync.crm.client import CRMClient
from src.hubsync.crm.hubspot import HubSpotClient
from src.hubsync.crm.schemas import CRMRecord
from src.hubsync.sinks.base import EventSink
from src.hubsync.store.base import AccountStore
from src.hubsync.sync.associations import AssociationResolver
from src.hubsync.sync.batcher import EventBatcher
from src.hubsync.sync.fetcher import PaginatedFetcher
from src.hubsync.sync.normalizer import RecordNormalizer
from src.hubsync.sync.object_types import OBJECT_TYPES, ObjectTypeDescriptor, get_descriptors
from src.hubsync.sync.retry import RetryPolicy, SleepFn
from src.hubsync.sync.schemas import Account, AccountSyncResult, PassResult, PassStatus
from src.hubsync.sync.tokens import TokenManager, utc_now

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[Account], CRMClient]


class SyncOrchestrator:
    """Runs the incremental sync for every account in the store.

    Args:
        store: Source of accounts and target of checkpoints.
        sink: Destination of flushed Event batches.
        client_factory: Builds a fresh CRM client for one account.
        client_id: OAuth app client id.
        client_secret: OAuth app client secret.
        object_types: Passes to run per account, in order. Defaults to all.
        retry_policy: Retry policy for search requests.
        flush_threshold: EventBatcher flush threshold.
        page_size: Search page size.
        association_concurrency: Max concurrent object reads during enrichment.
        window_cap: Provider result-window cap.
        clock: Returns the current aware UTC time.
        sleep: Async sleep used for retry backoff.
    """

    def __init__(
        self,
        store: AccountStore,
        sink: EventSink,
        client_factory: ClientFactory,
        client_id: str,
        client_secret: str,
        object_types: list[ObjectTypeDescriptor] | None = None,
        retry_policy: RetryPolicy | None = None,
        flush_threshold: int = 2000,
        page_size: int = 100,
        association_concurrency: int = 10,
        window_cap: int = 10_000,
        clock: Callable[[], datetime] = utc_now,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._store = store
        self._sink = sink
        self._client_factory = client_factory
        self._client_id = client_id
        self._client_secret = client_secret
        self._object_types = object_types or list(OBJECT_TYPES.values())
        self._retry_policy = retry_policy or RetryPolicy()
        self._flush_threshold = flush_threshold
        self._page_size = page_size
        self._association_concurrency = association_concurrency
        self._window_cap = window_cap
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AccountStore,
        sink: EventSink,
        client_factory: ClientFactory | None = None,
    ) -> SyncOrchestrator:
        """Build an orchestrator wired from application settings."""

        def _hubspot_client(account: Account) -> CRMClient:
            return HubSpotClient(
                access_token=account.access_token,
                base_url=settings.HUBSPOT_BASE_URL,
                timeout=settings.HUBSPOT_TIMEOUT_SECONDS,
            )

        return cls(
            store=store,
            sink=sink,
            client_factory=client_factory or _hubspot_client,
            client_id=settings.HUBSPOT_CLIENT_ID,
            client_secret=settings.HUBSPOT_CLIENT_SECRET,
            object_types=get_descriptors(settings.get_object_types()),
            retry_policy=RetryPolicy(
                max_attempts=settings.FETCH_MAX_ATTEMPTS,
                base_delay_seconds=settings.FETCH_BACKOFF_BASE_SECONDS,
            ),
            flush_threshold=settings.BATCH_FLUSH_THRESHOLD,
            page_size=settings.SEARCH_PAGE_SIZE,
            association_concurrency=settings.ASSOCIATION_READ_CONCURRENCY,
            window_cap=settings.RESULT_WINDOW_CAP,
        )

    async def run(self) -> list[AccountSyncResult]:
        """Sync every account in the store, sequentially."""
        logger.info("sync.run_started")
        accounts = await self._store.list_accounts()

        results: list[AccountSyncResult] = []
        for account in accounts:
            try:
                results.append(await self.sync_account(account))
            except Exception as exc:
                result = AccountSyncResult(hub_id=account.hub_id)
                self._record_failure(result, "sync_account", exc)
                results.append(result)

        logger.info(
            "sync.run_finished",
            accounts=len(results),
            failed_accounts=sum(1 for result in results if not result.succeeded),
            events=sum(result.events_flushed for result in results),
        )
        return results

    async def sync_account(self, account: Account) -> AccountSyncResult:
        """Run token refresh, every pass, drain and checkpoint for one account."""
        result = AccountSyncResult(hub_id=account.hub_id)
        log = logger.bind(hub_id=account.hub_id)
        log.info("sync.account_started")

        try:
            client = self._client_factory(account)
        except Exception as exc:
            self._record_failure(result, "build_client", exc)
            return result

        try:
            tokens = TokenManager(client, self._client_id, self._client_secret, clock=self._clock)
            fetcher = PaginatedFetcher(
                client,
                tokens,
                retry_policy=self._retry_policy,
                page_size=self._page_size,
                window_cap=self._window_cap,
                sleep=self._sleep,
            )
            resolver = AssociationResolver(
                client, account.hub_id, max_concurrency=self._association_concurrency
            )
            normalizer = RecordNormalizer(account.hub_id)
            batcher = EventBatcher(self._sink, self._flush_threshold, hub_id=account.hub_id)

            try:
                await tokens.refresh(account)
            except Exception as exc:
                self._record_failure(result, "refresh_access_token", exc)

            for descriptor in self._object_types:
                pass_result = await self._run_pass(
                    account, descriptor, fetcher, resolver, normalizer, batcher
                )
                result.passes.append(pass_result)
                if pass_result.status == PassStatus.FAILED:
                    result.errors.append(f"process_{descriptor.name}: {pass_result.error}")
                else:
                    await self._checkpoint(account, descriptor.name, result)

            try:
                await batcher.drain()
            except Exception as exc:
                self._record_failure(result, "drain_queue", exc)
            result.events_flushed = batcher.flushed_events

            await self._checkpoint(account, "finish", result)
        finally:
            try:
                await client.aclose()
            except Exception as exc:
                self._record_failure(result, "close_client", exc)

        log.info(
            "sync.account_finished",
            events=result.events_flushed,
            errors=len(result.errors),
        )
        return result

    async def _run_pass(
        self,
        account: Account,
        descriptor: ObjectTypeDescriptor,
        fetcher: PaginatedFetcher,
        resolver: AssociationResolver,
        normalizer: RecordNormalizer,
        batcher: EventBatcher,
    ) -> PassResult:
        operation = f"process_{descriptor.name}"
        now = self._clock()
        watermark = account.watermark(descriptor.name)
        counts = {"records": 0, "events": 0}

        async def on_page(records: list[CRMRecord]) -> None:
            counts["records"] += len(records)
            related = await self._resolve_related(descriptor, records, resolver)
            for record in records:
                event = normalizer.normalize(descriptor, record, watermark, related.get(record.id))
                if event is None:
                    continue
                await batcher.enqueue(event)
                counts["events"] += 1

        try:
            await fetcher.fetch(account, descriptor, on_page, now)
        except Exception as exc:
            logger.error(
                "sync.pass_failed",
                hub_id=account.hub_id,
                operation=operation,
                error=str(exc),
                exc_info=True,
            )
            return PassResult(
                object_type=descriptor.name,
                status=PassStatus.FAILED,
                records=counts["records"],
                events=counts["events"],
                error=str(exc),
            )

        account.last_pulled_dates[descriptor.name] = now
        logger.info(
            "sync.pass_completed",
            hub_id=account.hub_id,
            operation=operation,
            records=counts["records"],
            events=counts["events"],
            watermark=now.isoformat(),
        )
        return PassResult(
            object_type=descriptor.name,
            status=PassStatus.SUCCEEDED,
            records=counts["records"],
            events=counts["events"],
        )

    @staticmethod
    async def _resolve_related(
        descriptor: ObjectTypeDescriptor,
        records: list[CRMRecord],
        resolver: AssociationResolver,
    ) -> dict[str, Any]:
        """Per-record association value for one page, keyed by record id."""
        spec = descriptor.association
        if spec is None or not records:
            return {}

        mapping = await resolver.resolve(
            [record.id for record in records], descriptor.name, spec.target_type
        )
        if spec.target_property is None:
            return mapping

        values = await resolver.fetch_property(
            spec.target_type, list(mapping.values()), spec.target_property
        )
        return {source_id: values.get(target_id) for source_id, target_id in mapping.items()}

    async def _checkpoint(self, account: Account, stage: str, result: AccountSyncResult) -> None:
        """Best-effort persistence of the account's credentials and watermarks."""
        try:
            await self._store.save_account(account)
        except Exception as exc:
            self._record_failure(result, f"checkpoint_{stage}", exc)

    @staticmethod
    def _record_failure(result: AccountSyncResult, operation: str, exc: Exception) -> None:
        logger.error(
            "sync.operation_failed",
            hub_id=result.hub_id,
            operation=operation,
            error=str(exc),
            exc_info=True,
        )
        result.errors.append(f"{operation}: {exc}")
