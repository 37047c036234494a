"""
Tests for ActionSink delivery and its transport-error retry.
"""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from hubspot_sync.clients.sink_client import ActionSink
from hubspot_sync.errors import FlushError
from hubspot_sync.models.action import Action, CompanyProperties


def make_actions(count: int) -> list[Action]:
    return [
        Action(
            action_name='Company Updated',
            action_date=datetime(2024, 3, 1, 10, 0, n, tzinfo=timezone.utc),
            company_properties=CompanyProperties.from_raw(company_id=str(n)),
        )
        for n in range(count)
    ]


def make_sink(handler, api_key='sink-key') -> tuple[ActionSink, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    sink = ActionSink(
        url='https://sink.test/actions',
        api_key=api_key,
        transport=httpx.MockTransport(record),
    )
    return sink, requests


@pytest.fixture
def no_wait():
    """Retry immediately instead of backing off."""
    with patch.object(ActionSink._post.retry, 'wait', wait_none()):
        yield


class TestActionSink:
    @pytest.mark.asyncio
    async def test_send_posts_ordered_batch(self):
        sink, requests = make_sink(lambda request: httpx.Response(202))

        delivered = await sink.send(make_actions(3))
        await sink.close()

        assert delivered == 3
        assert len(requests) == 1
        assert requests[0].headers['Authorization'] == 'Bearer sink-key'
        payload = json.loads(requests[0].content)
        ids = [a['companyProperties']['company_id'] for a in payload['actions']]
        assert ids == ['0', '1', '2']
        assert payload['actions'][0]['actionName'] == 'Company Updated'

    @pytest.mark.asyncio
    async def test_empty_batch_is_not_sent(self):
        sink, requests = make_sink(lambda request: httpx.Response(202))

        assert await sink.send([]) == 0
        await sink.close()

        assert requests == []

    @pytest.mark.asyncio
    async def test_http_error_is_not_retried(self):
        sink, requests = make_sink(lambda request: httpx.Response(500, text='boom'))

        with pytest.raises(FlushError) as exc_info:
            await sink.send(make_actions(2))
        await sink.close()

        assert len(requests) == 1
        assert exc_info.value.context['status_code'] == 500
        assert exc_info.value.context['count'] == 2

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self, no_wait):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectTimeout('timed out', request=request)
            return httpx.Response(202)

        sink, _ = make_sink(flaky)

        assert await sink.send(make_actions(1)) == 1
        await sink.close()

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_transport_error_gives_up_after_three_attempts(self, no_wait):
        def down(request):
            raise httpx.ConnectError('connection refused', request=request)

        sink, requests = make_sink(down)

        with pytest.raises(FlushError) as exc_info:
            await sink.send(make_actions(1))
        await sink.close()

        assert len(requests) == 3
        assert exc_info.value.context['error_type'] == 'ConnectError'

    def test_requires_url(self):
        with patch('hubspot_sync.clients.sink_client.get_settings') as settings:
            settings.return_value.SINK_URL = ''
            with pytest.raises(ValueError):
                ActionSink()
