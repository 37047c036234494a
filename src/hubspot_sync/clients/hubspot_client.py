"""
HubSpot REST client for the sync worker.

Handles:
- OAuth refresh-token exchange
- CRM search (filterable, sortable, paginated)
- Association batch reads
- Single record reads

The client holds the current bearer token but knows nothing about expiry or
retries; TokenManager owns both.
"""

from typing import Any

import httpx
import structlog

from ..config import get_settings
from ..errors import wrap_remote_error

logger = structlog.get_logger(__name__)


class HubspotClient:
    """
    Async HubSpot API client backed by httpx.

    Every non-2xx response and transport failure is raised as a
    RemoteCallError (RemoteRateLimitError for HTTP 429).
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            access_token: Initial bearer token (usually set later by TokenManager)
            base_url: API root (defaults to HUBSPOT_API_BASE_URL)
            timeout: Per-request timeout in seconds (defaults to HUBSPOT_TIMEOUT_SECONDS)
            transport: Optional httpx transport, used by tests
        """
        settings = get_settings()
        self.base_url = base_url or settings.HUBSPOT_API_BASE_URL
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.HUBSPOT_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, access_token: str) -> None:
        """Use a new bearer token for subsequent calls."""
        self._access_token = access_token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        headers = {'Accept': 'application/json'}
        if authenticated and self._access_token:
            headers['Authorization'] = f'Bearer {self._access_token}'

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                params=params,
                data=data,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise wrap_remote_error(exc, context={'method': method, 'path': path}) from exc

        if not response.content:
            return {}
        return response.json()

    # =========================================================================
    # OAuth
    # =========================================================================

    async def request_token(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> dict[str, Any]:
        """
        Exchange a refresh token for a new access token.

        Returns:
            Token payload with access_token, refresh_token and expires_in (seconds)
        """
        return await self._request(
            'POST',
            '/oauth/v1/token',
            data={
                'grant_type': 'refresh_token',
                'client_id': client_id,
                'client_secret': client_secret,
                'refresh_token': refresh_token,
            },
            authenticated=False,
        )

    # =========================================================================
    # CRM
    # =========================================================================

    async def search_objects(self, object_type: str, body: dict[str, Any]) -> dict[str, Any]:
        """
        Run one page of a CRM search.

        Returns:
            {'results': [...], 'paging': {'next': {'after': '100'}}} ('paging' absent on the last page)
        """
        return await self._request('POST', f'/crm/v3/objects/{object_type}/search', json=body)

    async def read_associations(
        self,
        from_type: str,
        to_type: str,
        object_ids: list[str],
    ) -> list[dict[str, Any]]:
        """
        Batch-read associations for a list of record IDs.

        Returns:
            List of {'from': {'id': ...}, 'to': [{'id': ...}, ...]} entries;
            IDs without associations are simply absent.
        """
        if not object_ids:
            return []
        result = await self._request(
            'POST',
            f'/crm/v3/associations/{from_type}/{to_type}/batch/read',
            json={'inputs': [{'id': object_id} for object_id in object_ids]},
        )
        return result.get('results') or []

    async def get_object(
        self,
        object_type: str,
        object_id: str,
        properties: list[str],
    ) -> dict[str, Any]:
        """Read a single CRM record with the given properties."""
        return await self._request(
            'GET',
            f'/crm/v3/objects/{object_type}/{object_id}',
            params={'properties': ','.join(properties)},
        )

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
