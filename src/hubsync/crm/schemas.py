"""Request and response shapes for the CRM capabilities used by the sync engine.

Field names follow the HubSpot CRM v3 wire format (camelCase) via aliases,
so responses validate straight from JSON and requests serialize back with
``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Search ──────────────────────────────────────────────────────────────────


class SearchFilter(_WireModel):
    property_name: str = Field(alias="propertyName")
    operator: str
    value: str


class FilterGroup(_WireModel):
    filters: list[SearchFilter] = Field(default_factory=list)


class SearchSort(_WireModel):
    property_name: str = Field(alias="propertyName")
    direction: str = "ASCENDING"


class SearchRequest(_WireModel):
    """Body of ``POST /crm/v3/objects/{type}/search``."""

    filter_groups: list[FilterGroup] = Field(default_factory=list, alias="filterGroups")
    sorts: list[SearchSort] = Field(default_factory=list)
    properties: list[str] = Field(default_factory=list)
    limit: int = 100
    after: str | None = None

    def to_body(self) -> dict[str, Any]:
        """Serialize for the wire, omitting an empty cursor."""
        return self.model_dump(by_alias=True, exclude_none=True)


class CRMRecord(_WireModel):
    """A provider-native object as returned by search and read calls."""

    id: str
    properties: dict[str, Any] | None = None
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    archived: bool = False


class NextPage(_WireModel):
    after: str | None = None


class Paging(_WireModel):
    next: NextPage | None = None


class SearchPage(_WireModel):
    """Response of a search call: one page of records plus the next cursor."""

    total: int = 0
    results: list[CRMRecord] = Field(default_factory=list)
    paging: Paging | None = None

    @property
    def next_after(self) -> str | None:
        if self.paging is None or self.paging.next is None:
            return None
        return self.paging.next.after or None


# ── Associations ────────────────────────────────────────────────────────────


class ObjectRef(_WireModel):
    id: str


class AssociationResult(_WireModel):
    """One ``from`` → ``to[]`` pair of a batch association read."""

    from_: ObjectRef | None = Field(default=None, alias="from")
    to: list[ObjectRef] = Field(default_factory=list)


class AssociationBatch(_WireModel):
    results: list[AssociationResult] = Field(default_factory=list)


# ── OAuth ───────────────────────────────────────────────────────────────────


class TokenResponse(_WireModel):
    """Response of ``POST /oauth/v1/token``."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int
