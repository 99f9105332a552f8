"""Object-type descriptors for each CRM collection the engine syncs.

A descriptor tells the fetcher what to ask for (properties, sort/filter
property) and tells the orchestrator how to enrich a page (which
association to resolve, and which property of the associated object to
carry over).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AssociationSpec(BaseModel):
    """Association to resolve for every page of a pass.

    Attributes:
        target_type: Object type on the ``to`` side.
        target_property: If set, the associated object's property value is
            looked up and used instead of the associated id.
    """

    target_type: str
    target_property: str | None = None


class ObjectTypeDescriptor(BaseModel):
    """Static description of one object-type pass.

    Attributes:
        name: Watermark key and provider object type (e.g. ``contacts``).
        entity: Event action prefix (e.g. ``Contact`` -> ``Contact Created``).
        properties: Provider properties requested on search.
        modified_property: Property used to sort (and filter) by modification time.
        supports_modified_filter: False when the provider rejects a
            modification-range filter for this type; such passes run unfiltered.
        association: Optional enrichment resolved per page.
    """

    name: str
    entity: str
    properties: list[str] = Field(default_factory=list)
    modified_property: str = "hs_lastmodifieddate"
    supports_modified_filter: bool = True
    association: AssociationSpec | None = None


COMPANIES = ObjectTypeDescriptor(
    name="companies",
    entity="Company",
    properties=[
        "name",
        "domain",
        "country",
        "industry",
        "description",
        "annualrevenue",
        "numberofemployees",
        "hs_lead_status",
    ],
)

CONTACTS = ObjectTypeDescriptor(
    name="contacts",
    entity="Contact",
    properties=[
        "firstname",
        "lastname",
        "jobtitle",
        "email",
        "hubspotscore",
        "hs_lead_status",
        "hs_analytics_source",
        "hs_latest_source",
    ],
    modified_property="lastmodifieddate",
    association=AssociationSpec(target_type="companies"),
)

# The meetings search endpoint answers 400 to a modification-range filter.
MEETINGS = ObjectTypeDescriptor(
    name="meetings",
    entity="Meeting",
    properties=[
        "hs_meeting_title",
        "hs_meeting_start_time",
        "hs_meeting_end_time",
        "hs_createdate",
        "hs_lastmodifieddate",
        "hs_object_id",
    ],
    supports_modified_filter=False,
    association=AssociationSpec(target_type="contacts", target_property="email"),
)

OBJECT_TYPES: dict[str, ObjectTypeDescriptor] = {
    descriptor.name: descriptor for descriptor in (COMPANIES, CONTACTS, MEETINGS)
}


def get_descriptors(names: list[str]) -> list[ObjectTypeDescriptor]:
    """Resolve configured object type names, preserving order.

    Raises:
        ValueError: If a name has no descriptor.
    """
    unknown = [name for name in names if name not in OBJECT_TYPES]
    if unknown:
        msg = f"Unknown object types: {', '.join(unknown)}. Known: {', '.join(OBJECT_TYPES)}"
        raise ValueError(msg)
    return [OBJECT_TYPES[name] for name in names]
