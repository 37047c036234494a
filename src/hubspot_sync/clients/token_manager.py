"""
OAuth token lifecycle for one HubSpot account.

TokenManager refreshes the access token on demand and wraps remote calls in
a retry loop. Any failure is first assumed to be token expiry: once the
tracked expiry instant has passed, the token is refreshed before the next
attempt, whatever the actual error was.
"""

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

import structlog

from ..config import get_settings
from ..errors import AuthError, RemoteCallError
from ..models.tenant import HubspotAccount
from .hubspot_client import HubspotClient

logger = structlog.get_logger(__name__)

T = TypeVar('T')


async def _backoff_sleep(seconds: float) -> None:
    """Exponential backoff pause between attempts (no jitter)."""
    await asyncio.sleep(seconds)


class TokenManager:
    """
    Owns the access token of one HubSpot account.

    Usage:
        tokens = TokenManager(client)
        await tokens.refresh(account)
        page = await tokens.execute_with_retry(
            lambda: client.search_objects('companies', body), account
        )
    """

    def __init__(
        self,
        client: HubspotClient,
        client_id: str | None = None,
        client_secret: str | None = None,
        max_attempts: int | None = None,
        retry_base_seconds: float | None = None,
    ):
        settings = get_settings()
        self.client = client
        self.client_id = client_id or settings.HUBSPOT_CID
        self.client_secret = client_secret or settings.HUBSPOT_CS
        self.max_attempts = max_attempts or settings.MAX_RETRY_ATTEMPTS
        self.retry_base_seconds = (
            retry_base_seconds if retry_base_seconds is not None else settings.RETRY_BASE_SECONDS
        )
        # Epoch seconds; None until the first successful refresh
        self.expires_at: float | None = None

    def is_expired(self) -> bool:
        """True when the token is past its expiry instant, or none is known yet."""
        return self.expires_at is None or time.time() > self.expires_at

    async def refresh(self, account: HubspotAccount) -> str:
        """
        Exchange the account's refresh token for a new access token.

        Updates the account in place when the access token (or a rotated
        refresh token) differs from what it holds.

        Raises:
            AuthError: the token exchange failed (never retried here)
        """
        log = logger.bind(hub_id=account.hub_id)

        try:
            body = await self.client.request_token(
                self.client_id,
                self.client_secret,
                account.refresh_token,
            )
            access_token = body['access_token']
            expires_in = float(body['expires_in'])
        except (RemoteCallError, KeyError, TypeError, ValueError) as exc:
            log.error(
                'token_manager.refresh_failed',
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise AuthError(
                'Failed to refresh HubSpot access token',
                context={'hub_id': account.hub_id, 'original_error': str(exc)},
            ) from exc

        self.expires_at = time.time() + expires_in
        self.client.set_access_token(access_token)

        if access_token != account.access_token:
            account.access_token = access_token

        rotated = body.get('refresh_token')
        if rotated and rotated != account.refresh_token:
            account.refresh_token = rotated

        log.info('token_manager.refreshed', expires_in=expires_in)
        return access_token

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        account: HubspotAccount,
        max_attempts: int | None = None,
    ) -> T:
        """
        Run a remote call, retrying with exponential backoff.

        After the n-th failure: refresh the token if it has expired, re-raise
        if n == max_attempts, otherwise sleep retry_base_seconds * 2**n.
        Permanent and transient failures are treated alike.

        Raises:
            The last error once every attempt has failed;
            AuthError if a refresh inside the loop fails.
        """
        attempts_allowed = max_attempts or self.max_attempts
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as exc:
                attempt += 1
                logger.warning(
                    'token_manager.call_failed',
                    hub_id=account.hub_id,
                    attempt=attempt,
                    max_attempts=attempts_allowed,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

                if self.is_expired():
                    await self.refresh(account)

                if attempt >= attempts_allowed:
                    logger.error(
                        'token_manager.retries_exhausted',
                        hub_id=account.hub_id,
                        attempts=attempt,
                    )
                    raise

                await _backoff_sleep(self.retry_base_seconds * 2**attempt)
