"""
Tests for HubspotWorker orchestration.

Fetchers, token managers and the store are replaced by in-memory doubles so
the tests exercise ordering, fault isolation and watermark handling only.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from hubspot_sync.errors import (
    AuthError,
    EntitySweepError,
    FatalLoadError,
    FlushError,
    TenantStoreError,
)
from hubspot_sync.fetchers import SweepResult
from hubspot_sync.models.action import Action
from hubspot_sync.models.tenant import EntityType, HubspotAccount, LastPulledDates, Tenant
from hubspot_sync.worker import AccountSyncResult, HubspotWorker

from conftest import TENANT_ID, WATERMARK, RecordingSink

SWEPT_UNTIL = datetime(2024, 3, 9, tzinfo=timezone.utc)


def make_fake_fetcher(entity: EntityType, calls: list, fail_for: dict | None = None, actions: int = 1):
    """
    Build a fetcher class double.

    fail_for maps hub_id -> exception raised instead of sweeping.
    """
    failures = fail_for or {}

    class FakeFetcher:
        def __init__(self, client, tokens):
            self.client = client
            self.tokens = tokens

        async def fetch(self, account, buffer):
            calls.append((account.hub_id, entity.value))
            if account.hub_id in failures:
                raise failures[account.hub_id]
            for n in range(actions):
                await buffer.push(
                    Action(
                        action_name=f'{entity.value} {n}',
                        action_date=SWEPT_UNTIL,
                        identity=account.hub_id,
                    )
                )
            previous = account.last_pulled_dates.get(entity)
            account.last_pulled_dates.set(entity, SWEPT_UNTIL)
            return SweepResult(
                entity=entity.value,
                previous_watermark=previous,
                swept_until=SWEPT_UNTIL,
                pages=1,
                records=actions,
                actions=actions,
            )

    FakeFetcher.entity = entity
    return FakeFetcher


def make_account(hub_id: str) -> HubspotAccount:
    return HubspotAccount(
        hub_id=hub_id,
        refresh_token=f'refresh-{hub_id}',
        last_pulled_dates=LastPulledDates(contacts=WATERMARK, companies=WATERMARK, meetings=WATERMARK),
    )


@pytest.fixture
def calls() -> list:
    return []


@pytest.fixture
def two_account_tenant() -> Tenant:
    return Tenant(id=TENANT_ID, name='Acme', accounts=[make_account('111'), make_account('222')])


@pytest.fixture
def repository(two_account_tenant):
    repo = MagicMock()
    repo.find_one = AsyncMock(return_value=two_account_tenant)
    repo.save = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def token_managers():
    """Token manager double per client; refresh failures keyed by hub_id."""
    refresh_failures: set[str] = set()
    created: list = []

    def factory(client):
        tokens = MagicMock()

        async def refresh(account):
            if account.hub_id in refresh_failures:
                raise AuthError('refresh failed', context={'hub_id': account.hub_id})
            return 'access'

        tokens.refresh = AsyncMock(side_effect=refresh)
        created.append(tokens)
        return tokens

    factory.refresh_failures = refresh_failures
    factory.created = created
    return factory


def make_worker(repository, sink, token_managers, fetcher_classes, clients: list | None = None):
    def client_factory():
        client = MagicMock()
        client.close = AsyncMock()
        if clients is not None:
            clients.append(client)
        return client

    return HubspotWorker(
        repository,
        sink,
        batch_size=2000,
        client_factory=client_factory,
        token_manager_factory=token_managers,
        fetcher_classes=fetcher_classes,
    )


def fetchers(calls: list, fail_for: dict | None = None) -> tuple:
    return (
        make_fake_fetcher(EntityType.CONTACTS, calls),
        make_fake_fetcher(EntityType.COMPANIES, calls, fail_for=fail_for),
        make_fake_fetcher(EntityType.MEETINGS, calls),
    )


class TestRun:
    @pytest.mark.asyncio
    async def test_accounts_swept_sequentially_in_entity_order(
        self, repository, token_managers, calls, two_account_tenant
    ):
        sink = RecordingSink()
        clients: list = []
        worker = make_worker(repository, sink, token_managers, fetchers(calls), clients)

        results = await worker.run(TENANT_ID)

        repository.find_one.assert_awaited_once_with(TENANT_ID)
        assert calls == [
            ('111', 'contacts'), ('111', 'companies'), ('111', 'meetings'),
            ('222', 'contacts'), ('222', 'companies'), ('222', 'meetings'),
        ]
        assert [r.hub_id for r in results] == ['111', '222']
        assert all(r.success for r in results)
        assert all(r.saved for r in results)
        assert repository.save.await_count == 2
        # Each account drains its own buffer
        assert [len(batch) for batch in sink.batches] == [3, 3]
        assert [r.actions_flushed for r in results] == [3, 3]
        for client in clients:
            client.close.assert_awaited_once()
        for account in two_account_tenant.accounts:
            assert account.last_pulled_dates.meetings == SWEPT_UNTIL

    @pytest.mark.asyncio
    async def test_tenant_load_failure_is_fatal(self, repository, token_managers, calls):
        repository.find_one.side_effect = FatalLoadError('No tenant found')
        worker = make_worker(repository, RecordingSink(), token_managers, fetchers(calls))

        with pytest.raises(FatalLoadError):
            await worker.run()

        assert calls == []
        repository.save.assert_not_awaited()


class TestAccountIsolation:
    @pytest.mark.asyncio
    async def test_refresh_failure_skips_only_that_account(
        self, repository, token_managers, calls, two_account_tenant
    ):
        token_managers.refresh_failures.add('111')
        worker = make_worker(repository, RecordingSink(), token_managers, fetchers(calls))

        results = await worker.run()

        assert [hub for hub, _ in calls] == ['222', '222', '222']
        assert results[0].refreshed is False
        assert results[0].success is False
        assert results[0].saved is False
        assert results[1].success is True
        assert repository.save.await_count == 1
        skipped = two_account_tenant.accounts[0]
        assert skipped.last_pulled_dates.contacts == WATERMARK

    @pytest.mark.asyncio
    async def test_entity_failure_does_not_stop_other_entities(
        self, repository, token_managers, calls, two_account_tenant
    ):
        failing = {'111': EntitySweepError('companies sweep failed', context={'entity': 'companies'})}
        sink = RecordingSink()
        worker = make_worker(repository, sink, token_managers, fetchers(calls, fail_for=failing))

        results = await worker.run()

        first = results[0]
        assert first.failed_entities == ['companies']
        assert [s.entity for s in first.sweeps] == ['contacts', 'meetings']
        assert first.drained is True
        assert first.saved is True
        assert first.success is False

        account = two_account_tenant.accounts[0]
        assert account.last_pulled_dates.contacts == SWEPT_UNTIL
        assert account.last_pulled_dates.companies == WATERMARK
        assert account.last_pulled_dates.meetings == SWEPT_UNTIL
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_auth_error_mid_sweep_stops_account(
        self, repository, token_managers, calls, two_account_tenant
    ):
        failing = {'111': AuthError('refresh failed')}
        worker = make_worker(repository, RecordingSink(), token_managers, fetchers(calls, fail_for=failing))

        results = await worker.run()

        assert ('111', 'meetings') not in calls
        assert results[0].failed_entities == ['companies']
        # Contacts already swept are still drained and saved
        assert results[0].drained is True
        assert results[0].saved is True
        assert results[1].success is True


class TestDrainAndSave:
    @pytest.mark.asyncio
    async def test_drain_failure_restores_watermarks(
        self, repository, token_managers, calls, two_account_tenant
    ):
        sink = MagicMock()
        sink.send = AsyncMock(side_effect=FlushError('sink unavailable'))
        worker = make_worker(repository, sink, token_managers, fetchers(calls))

        results = await worker.run()

        for result, account in zip(results, two_account_tenant.accounts):
            assert result.drained is False
            assert result.success is False
            assert any(error.startswith('drain:') for error in result.errors)
            assert account.last_pulled_dates.contacts == WATERMARK
            assert account.last_pulled_dates.companies == WATERMARK
            assert account.last_pulled_dates.meetings == WATERMARK
        # Tokens are still persisted
        assert repository.save.await_count == 2

    @pytest.mark.asyncio
    async def test_save_failure_is_recorded(self, repository, token_managers, calls):
        repository.save.side_effect = TenantStoreError('write failed')
        worker = make_worker(repository, RecordingSink(), token_managers, fetchers(calls))

        results = await worker.run()

        assert all(not r.saved for r in results)
        assert all(not r.success for r in results)
        assert len(calls) == 6


class TestAccountSyncResult:
    def test_to_dict(self):
        result = AccountSyncResult(hub_id='111', refreshed=True, drained=True)
        result.sweeps.append(
            SweepResult(entity='contacts', previous_watermark=WATERMARK, swept_until=SWEPT_UNTIL, actions=4)
        )
        result.failed_entities.append('meetings')
        result.errors.append('meetings: boom')

        data = result.to_dict()

        assert data['succeeded_entities'] == ['contacts']
        assert data['failed_entities'] == ['meetings']
        assert data['actions_pushed'] == 4
        assert data['success'] is False
