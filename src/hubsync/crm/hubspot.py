"""Async HTTP client for the HubSpot CRM v3 and OAuth REST APIs.

One HubSpotClient is built per account and owns a single httpx.AsyncClient.
The client does not retry: retry and credential refresh are the sync
engine's job, so every failure surfaces as a CRMRequestError (or
CRMAuthError for 401/403) for the caller's retry policy to judge.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.hubsync.crm.client import CRMAuthError, CRMClient, CRMRequestError
from src.hubsync.crm.schemas import (
    AssociationBatch,
    CRMRecord,
    SearchPage,
    SearchRequest,
    TokenResponse,
)

logger = structlog.get_logger(__name__)

_AUTH_STATUSES = (401, 403)


class HubSpotClient(CRMClient):
    """HubSpot REST client bound to one account's access token.

    Args:
        access_token: Initial bearer token (may be stale; refreshed later).
        base_url: API root, ``https://api.hubapi.com`` in production.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str = "https://api.hubapi.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._access_token = access_token
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    def set_access_token(self, access_token: str) -> None:
        self._access_token = access_token

    def _auth_headers(self) -> dict[str, str]:
        if not self._access_token:
            return {}
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            CRMAuthError: On 401/403.
            CRMRequestError: On any other HTTP error status or transport failure.
        """
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = f"{method} {path} failed: {status} {exc.response.text[:200]}"
            if status in _AUTH_STATUSES:
                raise CRMAuthError(message, status_code=status) from exc
            raise CRMRequestError(message, status_code=status) from exc
        except httpx.HTTPError as exc:
            raise CRMRequestError(f"{method} {path} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise CRMRequestError(
                f"{method} {path} returned a non-JSON body", status_code=response.status_code
            ) from exc

    async def search_objects(self, object_type: str, request: SearchRequest) -> SearchPage:
        data = await self._request(
            "POST",
            f"/crm/v3/objects/{object_type}/search",
            json=request.to_body(),
        )
        page = SearchPage.model_validate(data)
        logger.debug(
            "hubspot.search_page",
            object_type=object_type,
            results=len(page.results),
            after=request.after,
        )
        return page

    async def read_associations(
        self, from_type: str, to_type: str, ids: list[str]
    ) -> AssociationBatch:
        data = await self._request(
            "POST",
            f"/crm/v3/associations/{from_type.upper()}/{to_type.upper()}/batch/read",
            json={"inputs": [{"id": object_id} for object_id in ids]},
        )
        return AssociationBatch.model_validate(data)

    async def get_object(
        self, object_type: str, object_id: str, properties: list[str]
    ) -> CRMRecord:
        data = await self._request(
            "GET",
            f"/crm/v3/objects/{object_type}/{object_id}",
            params={"properties": ",".join(properties)},
        )
        return CRMRecord.model_validate(data)

    async def refresh_token(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> TokenResponse:
        data = await self._request(
            "POST",
            "/oauth/v1/token",
            data={
                "grant_type": "refresh_token",
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return TokenResponse.model_validate(data)

    async def aclose(self) -> None:
        await self._http.aclose()
