"""
Pytest configuration and shared fixtures.

Key fixtures:
- account: a HubspotAccount with all three watermarks set
- tenant: a Tenant owning that account
- mock_client: AsyncMock HubspotClient
- passthrough_tokens: TokenManager stand-in that runs operations once
- recording_sink: sink that records every batch it receives

No HubSpot credentials, sink endpoint or database are needed.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Keep a developer's .env out of the test run
os.environ.setdefault('HUBSPOT_CID', 'test-client-id')
os.environ.setdefault('HUBSPOT_CS', 'test-client-secret')
os.environ.setdefault('SINK_URL', 'https://sink.test/actions')

from hubspot_sync.models.tenant import HubspotAccount, LastPulledDates, Tenant  # noqa: E402


HUB_ID = '4412093'
TENANT_ID = 'dom_550e8400'
WATERMARK = datetime(2024, 3, 1, 0, 0, 0, tzinfo=timezone.utc)


def hubspot_record(
    record_id: str,
    created_at: str,
    updated_at: str,
    properties: dict | None = None,
) -> dict:
    """Raw search result shaped like the CRM v3 API."""
    return {
        'id': record_id,
        'createdAt': created_at,
        'updatedAt': updated_at,
        'properties': properties if properties is not None else {},
        'archived': False,
    }


def search_page(records: list[dict], after: str | None = None) -> dict:
    """Search response with an optional next-page token."""
    page: dict = {'total': len(records), 'results': records}
    if after is not None:
        page['paging'] = {'next': {'after': after, 'link': 'https://api.hubapi.com/...'}}
    return page


class RecordingSink:
    """Sink double that keeps every batch it was sent, in order."""

    def __init__(self):
        self.batches: list[list] = []

    async def send(self, actions):
        self.batches.append(list(actions))
        return len(actions)

    @property
    def total(self) -> int:
        return sum(len(batch) for batch in self.batches)


@pytest.fixture
def account() -> HubspotAccount:
    return HubspotAccount(
        hub_id=HUB_ID,
        access_token='old-access-token',
        refresh_token='refresh-token',
        last_pulled_dates=LastPulledDates(
            contacts=WATERMARK,
            companies=WATERMARK,
            meetings=WATERMARK,
        ),
    )


@pytest.fixture
def tenant(account) -> Tenant:
    return Tenant(id=TENANT_ID, name='Acme Analytics', accounts=[account])


@pytest.fixture
def mock_client():
    """HubspotClient with every remote call mocked."""
    client = MagicMock()
    client.search_objects = AsyncMock()
    client.read_associations = AsyncMock(return_value=[])
    client.get_object = AsyncMock()
    client.request_token = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def passthrough_tokens():
    """TokenManager stand-in: executes each operation exactly once."""

    async def run_once(operation, account, max_attempts=None):
        return await operation()

    tokens = MagicMock()
    tokens.execute_with_retry = AsyncMock(side_effect=run_once)
    tokens.refresh = AsyncMock(return_value='new-access-token')
    return tokens


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
