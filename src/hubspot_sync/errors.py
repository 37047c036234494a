"""
Custom exceptions and error handling for the HubSpot sync worker.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation (hub_id, entity, status codes) for debugging
- Wrapping of httpx failures into the hierarchy
"""

from typing import Any

import httpx


class HubspotSyncError(Exception):
    """Base exception for all HubSpot sync errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(HubspotSyncError):
    """Base class for errors raised by remote clients."""

    pass


class RemoteCallError(ClientError):
    """A call against the HubSpot API failed."""

    @property
    def status_code(self) -> int | None:
        return self.context.get('status_code')


class RemoteRateLimitError(RemoteCallError):
    """HubSpot rejected the call with HTTP 429."""

    pass


class AuthError(ClientError):
    """Exchanging the refresh token for an access token failed."""

    pass


class FlushError(ClientError):
    """The downstream sink rejected a batch of actions."""

    pass


# =============================================================================
# Sync Errors
# =============================================================================


class SyncError(HubspotSyncError):
    """Base class for sync orchestration errors."""

    pass


class EntitySweepError(SyncError):
    """An entity sweep gave up; its watermark was not advanced."""

    @property
    def entity(self) -> str | None:
        return self.context.get('entity')


class FatalLoadError(SyncError):
    """The tenant and its accounts could not be loaded."""

    pass


class TenantStoreError(SyncError):
    """Persisting tenant accounts failed."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_remote_error(exc: Exception, context: dict[str, Any] | None = None) -> RemoteCallError:
    """
    Wrap an httpx exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed RemoteCallError subclass
    """
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        ctx['status_code'] = status
        detail = _response_detail(exc.response)
        if detail:
            ctx['detail'] = detail
        if status == 429:
            return RemoteRateLimitError(
                f"HubSpot rate limit exceeded: HTTP {status}",
                context=ctx,
            )
        return RemoteCallError(
            f"HubSpot API error: HTTP {status}",
            context=ctx,
        )

    return RemoteCallError(
        f"HubSpot request failed: {exc}",
        context=ctx,
    )


def _response_detail(response: httpx.Response) -> str | None:
    """Pull HubSpot's error message out of a response body, if any."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or None
    if isinstance(body, dict):
        return body.get('message')
    return None
