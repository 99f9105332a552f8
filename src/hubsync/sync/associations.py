"""Batch resolution of associations between two CRM object types.

Associations are enrichment, not primary data: a failed read degrades to an
empty mapping and the page is still emitted without them.
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import ValidationError

from src.hubsync.crm.client import CRMClient, CRMError

logger = structlog.get_logger(__name__)


class AssociationResolver:
    """Resolves source ids to their first associated target for one account.

    Args:
        client: The account's CRM client.
        hub_id: Account identifier for log context.
        max_concurrency: Upper bound on object reads in flight at once.
    """

    def __init__(self, client: CRMClient, hub_id: str, max_concurrency: int = 10) -> None:
        self._client = client
        self._hub_id = hub_id
        self._read_slots = asyncio.Semaphore(max_concurrency)

    async def resolve(
        self,
        source_ids: list[str],
        source_type: str,
        target_type: str,
    ) -> dict[str, str]:
        """Map each source id to its first associated target id.

        Only the first association is kept; sources with no ``from`` side
        or no targets are left out. Any failure returns an empty mapping.
        """
        if not source_ids:
            return {}

        try:
            batch = await self._client.read_associations(source_type, target_type, source_ids)
        except (CRMError, ValidationError) as exc:
            logger.warning(
                "associations.read_failed",
                hub_id=self._hub_id,
                source_type=source_type,
                target_type=target_type,
                count=len(source_ids),
                error=str(exc),
            )
            return {}

        mapping: dict[str, str] = {}
        for result in batch.results:
            if result.from_ is None or not result.to:
                continue
            mapping[result.from_.id] = result.to[0].id

        logger.debug(
            "associations.resolved",
            hub_id=self._hub_id,
            source_type=source_type,
            target_type=target_type,
            requested=len(source_ids),
            resolved=len(mapping),
        )
        return mapping

    async def fetch_property(
        self,
        object_type: str,
        object_ids: list[str],
        property_name: str,
    ) -> dict[str, str | None]:
        """Read one property of each object concurrently, at most ``max_concurrency`` at a time.

        A failed read maps that id to None and is logged; it never raises.
        """

        async def _read(object_id: str) -> tuple[str, str | None]:
            try:
                async with self._read_slots:
                    record = await self._client.get_object(
                        object_type, object_id, [property_name]
                    )
            except (CRMError, ValidationError) as exc:
                logger.warning(
                    "associations.property_read_failed",
                    hub_id=self._hub_id,
                    object_type=object_type,
                    object_id=object_id,
                    error=str(exc),
                )
                return object_id, None
            return object_id, (record.properties or {}).get(property_name)

        unique_ids = list(dict.fromkeys(object_ids))
        results = await asyncio.gather(*(_read(object_id) for object_id in unique_ids))
        return dict(results)
