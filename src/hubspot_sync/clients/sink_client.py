"""HTTP client delivering batches of actions to the downstream analytics sink."""

from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import get_settings
from ..errors import FlushError
from ..models.action import Action

logger = structlog.get_logger(__name__)


class ActionSink:
    """
    Posts ordered batches of actions to SINK_URL.

    Retry strategy:
    - transport errors (connect, timeout): retried with exponential backoff
    - HTTP error responses: not retried
    Anything that still fails surfaces as FlushError.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.url = url or settings.SINK_URL
        if not self.url:
            raise ValueError('SINK_URL is required')
        self.api_key = api_key or settings.SINK_API_KEY
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.SINK_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, payload: dict[str, Any]) -> None:
        response = await self._client.post(self.url, json=payload, headers=self._headers())
        response.raise_for_status()

    async def send(self, actions: list[Action]) -> int:
        """
        Deliver one batch, preserving its order.

        Returns:
            Number of actions delivered

        Raises:
            FlushError: the sink did not accept the batch
        """
        if not actions:
            return 0

        payload = {'actions': [action.to_sink_dict() for action in actions]}
        try:
            await self._post(payload)
        except httpx.HTTPError as exc:
            ctx: dict[str, Any] = {
                'count': len(actions),
                'original_error': str(exc),
                'error_type': type(exc).__name__,
            }
            if isinstance(exc, httpx.HTTPStatusError):
                ctx['status_code'] = exc.response.status_code
            raise FlushError(f'Sink rejected a batch of {len(actions)} actions', context=ctx) from exc

        logger.info('sink.batch_sent', count=len(actions))
        return len(actions)

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
