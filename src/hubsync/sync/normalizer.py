"""Mapping of raw CRM records into normalized Events.

Defines:
- DISALLOWED_VALUES: Placeholder strings treated as missing data.
- filter_null_values(): Strips null, empty and placeholder values from a dict.
- build_modified_filter(): Search filter group for a modification-time window.
- RecordNormalizer: Per-object-type record -> Event mapping.

Records that lack a required identity (a contact without an email) map to
None; that is a data-quality policy, not an error, so nothing is logged.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from src.hubsync.crm.schemas import CRMRecord, FilterGroup, SearchFilter
from src.hubsync.sync.object_types import ObjectTypeDescriptor
from src.hubsync.sync.schemas import Event

DISALLOWED_VALUES: frozenset[str] = frozenset(
    {
        "[not provided]",
        "placeholder",
        "[[unknown]]",
        "not set",
        "not provided",
        "unknown",
        "undefined",
        "n/a",
    }
)

# Company events are emitted slightly ahead of their record time so they sort
# before contact events stamped at the same instant.
COMPANY_ACTION_OFFSET = timedelta(seconds=2)


def filter_null_values(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` without null, empty or placeholder values.

    Placeholder matching is exact and case-insensitive against
    DISALLOWED_VALUES. All other keys are kept unchanged.
    """
    return {
        key: value
        for key, value in data.items()
        if value is not None
        and value != ""
        and not (isinstance(value, str) and value.lower() in DISALLOWED_VALUES)
    }


def _epoch_ms(moment: datetime) -> str:
    return str(int(moment.timestamp() * 1000))


def build_modified_filter(
    since: datetime | None,
    until: datetime,
    property_name: str = "hs_lastmodifieddate",
) -> FilterGroup | None:
    """Filter group for ``since <= property <= until``, or None without a lower bound."""
    if since is None:
        return None
    return FilterGroup(
        filters=[
            SearchFilter(property_name=property_name, operator="GTE", value=_epoch_ms(since)),
            SearchFilter(property_name=property_name, operator="LTE", value=_epoch_ms(until)),
        ]
    )


def _parse_score(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


# ── Per-type mappers ───────────────────────────────────────────────────────

Mapper = Callable[[CRMRecord, Any], tuple[str | None, dict[str, Any]] | None]


def _map_company(record: CRMRecord, related: Any) -> tuple[str | None, dict[str, Any]]:
    props = record.properties or {}
    return None, {
        "company_id": record.id,
        "company_domain": props.get("domain"),
        "company_industry": props.get("industry"),
    }


def _map_contact(record: CRMRecord, related: Any) -> tuple[str | None, dict[str, Any]] | None:
    props = record.properties or {}
    email = props.get("email")
    if not email:
        return None

    name = f"{props.get('firstname') or ''} {props.get('lastname') or ''}".strip()
    return email, {
        "company_id": related,
        "contact_name": name,
        "contact_title": props.get("jobtitle"),
        "contact_source": props.get("hs_analytics_source"),
        "contact_status": props.get("hs_lead_status"),
        "contact_score": _parse_score(props.get("hubspotscore")),
    }


def _map_meeting(record: CRMRecord, related: Any) -> tuple[str | None, dict[str, Any]]:
    props = record.properties or {}
    return related, {
        "contact_email": related,
        "meeting_title": props.get("hs_meeting_title"),
        "meeting_start_time": props.get("hs_meeting_start_time") or props.get("hs_createdate"),
        "meeting_end_time": props.get("hs_meeting_end_time") or props.get("hs_lastmodifieddate"),
        "meeting_object_id": props.get("hs_object_id"),
    }


_MAPPERS: dict[str, Mapper] = {
    "companies": _map_company,
    "contacts": _map_contact,
    "meetings": _map_meeting,
}


class RecordNormalizer:
    """Maps raw records of any registered object type into Events.

    Args:
        hub_id: Account the records belong to, stamped on every Event.
    """

    def __init__(self, hub_id: str) -> None:
        self._hub_id = hub_id

    @staticmethod
    def is_created(record: CRMRecord, watermark: datetime | None) -> bool:
        """A record is new when it was created strictly after the pass watermark."""
        return watermark is None or record.created_at > watermark

    def normalize(
        self,
        descriptor: ObjectTypeDescriptor,
        record: CRMRecord,
        watermark: datetime | None,
        related: Any = None,
    ) -> Event | None:
        """Build the Event for ``record``, or None if the record is skipped.

        Args:
            descriptor: Object type the record came from.
            record: Raw provider record.
            watermark: Lower bound of the pass (the account's stored watermark).
            related: Resolved association value (company id for contacts,
                contact email for meetings), or None.

        Raises:
            ValueError: If no mapper is registered for the descriptor.
        """
        mapper = _MAPPERS.get(descriptor.name)
        if mapper is None:
            msg = f"No normalizer registered for object type '{descriptor.name}'"
            raise ValueError(msg)

        if not record.properties:
            return None

        mapped = mapper(record, related)
        if mapped is None:
            return None
        identity, properties = mapped

        created = self.is_created(record, watermark)
        action_date = record.created_at if created else record.updated_at
        if descriptor.name == "companies":
            action_date = action_date - COMPANY_ACTION_OFFSET

        return Event(
            action_name=f"{descriptor.entity} {'Created' if created else 'Updated'}",
            action_date=action_date,
            identity=identity,
            properties=filter_null_values(properties),
            object_type=descriptor.name,
            hub_id=self._hub_id,
        )
