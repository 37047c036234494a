"""
Tenant store: loads a tenant's HubSpot accounts and persists their tokens
and watermarks after each account sweep.

Uses SQLAlchemy 2.0 async engine + asyncpg with raw SQL. Accounts live in a
JSONB column of the `domains` table:

    domains(id, name, hubspot_accounts jsonb, created_at, updated_at)
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import pydantic
import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .errors import FatalLoadError, TenantStoreError
from .models.tenant import Tenant

logger = structlog.get_logger(__name__)

# libpq-only URL parameters that asyncpg rejects
_STRIP_PARAMS = {'channel_binding', 'sslmode'}


def _normalize_url(url: str) -> tuple[str, dict[str, Any]]:
    """
    Rewrite a Postgres URL for the asyncpg driver.

    Returns:
        (url, connect_args); sslmode=require becomes connect_args ssl='require'
    """
    connect_args: dict[str, Any] = {}
    parsed = urlparse(url)
    if parsed.query:
        params = parse_qs(parsed.query)
        if params.get('sslmode', [''])[0] == 'require':
            connect_args['ssl'] = 'require'
        filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
        url = urlunparse(parsed._replace(query=urlencode(filtered, doseq=True)))

    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql+asyncpg://', 1)
    elif url.startswith('postgresql://') and '+asyncpg' not in url:
        url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url, connect_args


def _row_to_tenant(row: Any) -> Tenant:
    accounts = row['hubspot_accounts'] or []
    if isinstance(accounts, str):
        accounts = json.loads(accounts)
    return Tenant(id=str(row['id']), name=row.get('name'), accounts=accounts)


class TenantRepository:
    """
    Async tenant store.

    When persistence is disabled, save() logs and returns without writing,
    so a run can sweep without moving any stored watermark.
    """

    def __init__(self, database_url: str | None = None, persist: bool = True):
        """
        Args:
            database_url: Postgres connection URL (postgres://, postgresql://
                          or postgresql+asyncpg://)
            persist: When False, save() is a logged no-op
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url
        self.persist = persist

    async def connect(self, database_url: str | None = None) -> None:
        """Create the async engine. No-op if already connected."""
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        url, connect_args = _normalize_url(url)
        self._engine = create_async_engine(
            url,
            pool_size=2,
            max_overflow=0,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        logger.info('tenant_repository.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('tenant_repository.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('TenantRepository not connected, call connect() first')
        return self._engine

    async def find_one(self, tenant_id: str | None = None) -> Tenant:
        """
        Load a tenant and its HubSpot accounts.

        Args:
            tenant_id: Specific tenant to load; the oldest tenant when omitted

        Raises:
            FatalLoadError: query failed, no tenant found, or stored accounts are invalid
        """
        if tenant_id is not None:
            sql = text("""
                SELECT id, name, hubspot_accounts
                FROM domains
                WHERE id = :id
            """)
            params: dict[str, Any] = {'id': tenant_id}
        else:
            sql = text("""
                SELECT id, name, hubspot_accounts
                FROM domains
                ORDER BY created_at
                LIMIT 1
            """)
            params = {}

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(sql, params)
                row = result.mappings().first()
        except SQLAlchemyError as exc:
            raise FatalLoadError(
                'Failed to load tenant',
                context={'tenant_id': tenant_id, 'original_error': str(exc)},
            ) from exc

        if row is None:
            raise FatalLoadError('No tenant found', context={'tenant_id': tenant_id})

        try:
            tenant = _row_to_tenant(row)
        except (pydantic.ValidationError, ValueError) as exc:
            raise FatalLoadError(
                'Stored HubSpot accounts are invalid',
                context={'tenant_id': str(row['id']), 'original_error': str(exc)},
            ) from exc

        logger.info('tenant_repository.loaded', tenant_id=tenant.id, accounts=len(tenant.accounts))
        return tenant

    async def save(self, tenant: Tenant) -> bool:
        """
        Persist every account's tokens and watermarks.

        Returns:
            True if written, False when persistence is disabled

        Raises:
            TenantStoreError: the update failed
        """
        if not self.persist:
            logger.info('tenant_repository.save_skipped', tenant_id=tenant.id)
            return False

        sql = text("""
            UPDATE domains
            SET hubspot_accounts = CAST(:accounts AS jsonb),
                updated_at = now()
            WHERE id = :id
        """)
        accounts = json.dumps([account.to_store_dict() for account in tenant.accounts])

        try:
            async with self.engine.begin() as conn:
                await conn.execute(sql, {'id': tenant.id, 'accounts': accounts})
        except SQLAlchemyError as exc:
            raise TenantStoreError(
                'Failed to persist HubSpot accounts',
                context={'tenant_id': tenant.id, 'original_error': str(exc)},
            ) from exc

        logger.info('tenant_repository.saved', tenant_id=tenant.id)
        return True
