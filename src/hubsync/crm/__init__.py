"""CRM client layer -- the provider capabilities the sync engine consumes.

Provides abstract CRMClient interface with a concrete implementation:
- HubSpotClient: httpx-based client for HubSpot CRM v3 search, associations,
  object reads and OAuth token refresh
"""

from src.hubsync.crm.client import CRMAuthError, CRMClient, CRMError, CRMRequestError
from src.hubsync.crm.hubspot import HubSpotClient
from src.hubsync.crm.schemas import (
    AssociationBatch,
    CRMRecord,
    SearchPage,
    SearchRequest,
    TokenResponse,
)

__all__ = [
    "AssociationBatch",
    "CRMAuthError",
    "CRMClient",
    "CRMError",
    "CRMRecord",
    "CRMRequestError",
    "HubSpotClient",
    "SearchPage",
    "SearchRequest",
    "TokenResponse",
]
