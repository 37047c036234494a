"""
Sync orchestrator.

Loads one tenant and sweeps its HubSpot accounts strictly one after another.
Per account:
1. Refresh the access token (failure skips the account)
2. Sweep contacts, companies, meetings in that order, each fault-isolated
3. Drain the action buffer
4. Persist tokens and watermarks

Only a tenant load failure aborts the run.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

import structlog

from .buffer import DEFAULT_BATCH_SIZE, ActionBuffer
from .clients.hubspot_client import HubspotClient
from .clients.sink_client import ActionSink
from .clients.token_manager import TokenManager
from .errors import (
    AuthError,
    EntitySweepError,
    FatalLoadError,
    FlushError,
    TenantStoreError,
)
from .fetchers import FETCHER_CLASSES, IncrementalSweep, SweepResult
from .logging import SyncTimer, logging_context
from .models.tenant import HubspotAccount, Tenant
from .repository import TenantRepository

logger = structlog.get_logger(__name__)


# =============================================================================
# Result Model
# =============================================================================


@dataclass
class AccountSyncResult:
    """
    Outcome of one account sweep.

    Partial success is normal: failed entity types are listed while the
    sweeps that succeeded keep their advanced watermarks.
    """

    hub_id: str

    refreshed: bool = False
    sweeps: list[SweepResult] = field(default_factory=list)
    failed_entities: list[str] = field(default_factory=list)

    actions_flushed: int = 0
    drained: bool = False
    saved: bool = False

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when every stage of the account sweep succeeded."""
        return self.refreshed and self.drained and not self.errors

    @property
    def actions_pushed(self) -> int:
        return sum(sweep.actions for sweep in self.sweeps)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging."""
        return {
            'hub_id': self.hub_id,
            'refreshed': self.refreshed,
            'succeeded_entities': [sweep.entity for sweep in self.sweeps],
            'failed_entities': self.failed_entities,
            'actions_pushed': self.actions_pushed,
            'actions_flushed': self.actions_flushed,
            'drained': self.drained,
            'saved': self.saved,
            'success': self.success,
            'processing_time_ms': self.processing_time_ms,
            'stage_timings': self.stage_timings,
            'errors': self.errors,
        }


# =============================================================================
# HubspotWorker
# =============================================================================


class HubspotWorker:
    """
    Runs one incremental sync of a tenant's HubSpot accounts.

    Usage:
        worker = HubspotWorker(repository, sink)
        results = await worker.run()
    """

    def __init__(
        self,
        repository: TenantRepository,
        sink: ActionSink,
        batch_size: int = DEFAULT_BATCH_SIZE,
        client_factory: Callable[[], HubspotClient] = HubspotClient,
        token_manager_factory: Callable[[HubspotClient], TokenManager] = TokenManager,
        fetcher_classes: tuple[type[IncrementalSweep], ...] = FETCHER_CLASSES,
    ):
        """
        Args:
            repository: Connected tenant store
            sink: Downstream sink client shared by all account buffers
            batch_size: Auto-flush threshold of each account's buffer
            client_factory: Builds one HubSpot client per account
            token_manager_factory: Builds the token manager for a client
            fetcher_classes: Entity fetchers, in sweep order
        """
        self.repository = repository
        self.sink = sink
        self.batch_size = batch_size
        self.client_factory = client_factory
        self.token_manager_factory = token_manager_factory
        self.fetcher_classes = fetcher_classes

    async def run(self, tenant_id: str | None = None) -> list[AccountSyncResult]:
        """
        Sweep every account of the tenant, sequentially.

        Raises:
            FatalLoadError: the tenant could not be loaded
        """
        with logging_context(run_id=uuid4().hex):
            logger.info('worker.run_started', tenant_id=tenant_id)

            try:
                tenant = await self.repository.find_one(tenant_id)
            except FatalLoadError as exc:
                logger.error('worker.tenant_load_failed', error=str(exc))
                raise

            results: list[AccountSyncResult] = []
            with logging_context(tenant_id=tenant.id):
                for account in tenant.accounts:
                    results.append(await self.process_account(tenant, account))

                logger.info(
                    'worker.run_completed',
                    accounts=len(results),
                    succeeded=sum(1 for r in results if r.success),
                    failed=sum(1 for r in results if not r.success),
                )
            return results

    async def process_account(self, tenant: Tenant, account: HubspotAccount) -> AccountSyncResult:
        """Sweep one account; never raises for account-level failures."""
        with logging_context(hub_id=account.hub_id):
            logger.info('worker.account_started')
            t0 = time.monotonic()
            result = AccountSyncResult(hub_id=account.hub_id)
            timer = SyncTimer()

            client = self.client_factory()
            try:
                await self._sync_account(tenant, account, client, result, timer)
            finally:
                await client.close()

            result.completed_at = datetime.now()
            result.processing_time_ms = int((time.monotonic() - t0) * 1000)
            result.stage_timings = timer.summary()['stages']

            logger.info('worker.account_completed', **result.to_dict())
            return result

    async def _sync_account(
        self,
        tenant: Tenant,
        account: HubspotAccount,
        client: HubspotClient,
        result: AccountSyncResult,
        timer: SyncTimer,
    ) -> None:
        tokens = self.token_manager_factory(client)

        try:
            await tokens.refresh(account)
        except AuthError as exc:
            logger.error('worker.token_refresh_failed', error=str(exc))
            result.errors.append(f'refresh: {exc}')
            return
        result.refreshed = True

        watermarks_before = account.last_pulled_dates.model_copy()
        buffer = ActionBuffer(self.sink, batch_size=self.batch_size)

        # ------------------------------------------------------------------
        # Entity sweeps, each fault-isolated
        # ------------------------------------------------------------------
        for fetcher_class in self.fetcher_classes:
            fetcher = fetcher_class(client, tokens)
            entity = fetcher.entity.value
            try:
                with timer.stage(entity):
                    sweep = await fetcher.fetch(account, buffer)
            except EntitySweepError as exc:
                logger.error('worker.sweep_failed', entity=entity, error=str(exc))
                result.failed_entities.append(entity)
                result.errors.append(f'{entity}: {exc}')
                continue
            except AuthError as exc:
                logger.error('worker.account_aborted', entity=entity, error=str(exc))
                result.failed_entities.append(entity)
                result.errors.append(f'{entity}: {exc}')
                break

            result.sweeps.append(sweep)
            logger.info('worker.sweep_succeeded', entity=entity, actions=sweep.actions)

        # ------------------------------------------------------------------
        # Drain: flush whatever the sweeps left behind
        # ------------------------------------------------------------------
        try:
            with timer.stage('drain'):
                result.actions_flushed = await buffer.drain()
            result.drained = True
        except FlushError as exc:
            logger.error('worker.drain_failed', error=str(exc))
            result.errors.append(f'drain: {exc}')
            result.actions_flushed = buffer.flushed_count
            # Undelivered actions must be re-fetched by the next run
            account.last_pulled_dates = watermarks_before

        # ------------------------------------------------------------------
        # Persist tokens and watermarks
        # ------------------------------------------------------------------
        try:
            result.saved = await self.repository.save(tenant)
        except TenantStoreError as exc:
            logger.error('worker.save_failed', error=str(exc))
            result.errors.append(f'save: {exc}')
