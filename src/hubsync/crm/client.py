"""CRM client abstract base class -- the capabilities the sync engine depends on.

Every CRM backend implements this ABC. The engine only ever talks to a
CRMClient instance constructed for one account, so credentials never live in
module-level state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.hubsync.crm.schemas import (
    AssociationBatch,
    CRMRecord,
    SearchPage,
    SearchRequest,
    TokenResponse,
)


class CRMError(Exception):
    """Base class for CRM client failures."""


class CRMRequestError(CRMError):
    """The provider rejected a request or it could not be delivered.

    Attributes:
        status_code: HTTP status, or None for transport failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CRMAuthError(CRMRequestError):
    """The provider rejected the request's credentials (401/403)."""


class CRMClient(ABC):
    """Abstract interface for the CRM capabilities used during sync.

    Methods:
        search_objects: One page of a cursor-paginated object search.
        read_associations: Batch association read between two object types.
        get_object: Read one object with selected properties.
        refresh_token: Exchange a refresh token for a new access token.
        set_access_token: Install the access token used for data calls.
        aclose: Release transport resources.
    """

    @abstractmethod
    async def search_objects(self, object_type: str, request: SearchRequest) -> SearchPage:
        """Run one page of a search against an object collection."""
        ...

    @abstractmethod
    async def read_associations(
        self, from_type: str, to_type: str, ids: list[str]
    ) -> AssociationBatch:
        """Read associations for a batch of source ids."""
        ...

    @abstractmethod
    async def get_object(
        self, object_type: str, object_id: str, properties: list[str]
    ) -> CRMRecord:
        """Read a single object by id."""
        ...

    @abstractmethod
    async def refresh_token(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> TokenResponse:
        """Exchange a refresh token for a new access token."""
        ...

    @abstractmethod
    def set_access_token(self, access_token: str) -> None:
        """Use ``access_token`` for all subsequent data calls."""
        ...

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
        return None
