"""
Generic incremental sweep over one HubSpot object type.

Flow per entity type:
1. Read the watermark (lastPulledDate) and capture `now`
2. Search "last-modified in [lower_bound, now]", ascending, 100 per page
3. Per page: resolve associations, normalize records into Actions, push them
4. Follow the page token until the search is exhausted
5. Advance the watermark to `now`, only when the whole sweep succeeded

The search API refuses page tokens past offset 9900. When the next token
would reach that depth, the token is dropped and the lower bound moves to
the last record's updatedAt, restarting from the first page of the
narrower window. Records sharing that exact timestamp can be re-emitted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Mapping

import structlog

from ..buffer import ActionBuffer
from ..clients.hubspot_client import HubspotClient
from ..clients.token_manager import TokenManager
from ..errors import AuthError, EntitySweepError
from ..filtering import last_modified_filter
from ..models.action import Action
from ..models.tenant import EntityType, HubspotAccount
from ..utils import parse_int, parse_timestamp, utcnow

logger = structlog.get_logger(__name__)

PAGE_SIZE = 100
MAX_PAGING_OFFSET = 9900
DEFAULT_WATERMARK = datetime(2000, 1, 1, tzinfo=timezone.utc)


@dataclass
class SweepResult:
    """Outcome of one successful entity sweep."""

    entity: str
    previous_watermark: datetime
    swept_until: datetime
    pages: int = 0
    records: int = 0
    actions: int = 0
    skipped: int = 0
    rollovers: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            'entity': self.entity,
            'previous_watermark': self.previous_watermark.isoformat(),
            'swept_until': self.swept_until.isoformat(),
            'pages': self.pages,
            'records': self.records,
            'actions': self.actions,
            'skipped': self.skipped,
            'rollovers': self.rollovers,
        }


def association_map(results: list[dict[str, Any]]) -> dict[str, str]:
    """
    Map each "from" ID to its first associated "to" ID.

    Entries without a from ID or without any target are ignored.
    """
    mapping: dict[str, str] = {}
    for result in results:
        source = result.get('from') or {}
        targets = result.get('to') or []
        if source.get('id') is None or not targets or targets[0].get('id') is None:
            continue
        mapping[str(source['id'])] = str(targets[0]['id'])
    return mapping


class IncrementalSweep:
    """
    Base class for the entity fetchers.

    Subclasses set entity, object_type, label, filter_property and
    properties, implement build_action(), and may override
    resolve_associations().
    """

    entity: EntityType
    object_type: str
    label: str
    filter_property: str = 'hs_lastmodifieddate'
    properties: list[str] = []

    def __init__(
        self,
        client: HubspotClient,
        tokens: TokenManager,
        page_size: int = PAGE_SIZE,
    ):
        self.client = client
        self.tokens = tokens
        self.page_size = page_size

    # =========================================================================
    # Entity hooks
    # =========================================================================

    async def resolve_associations(
        self,
        account: HubspotAccount,
        records: list[dict[str, Any]],
    ) -> Mapping[str, Any]:
        """Look up related records for one page, keyed by record ID."""
        return {}

    def build_action(
        self,
        record: dict[str, Any],
        associations: Mapping[str, Any],
        watermark: datetime,
    ) -> Action | None:
        """Normalize one raw record; None skips it."""
        raise NotImplementedError

    # =========================================================================
    # Shared normalization helpers
    # =========================================================================

    def classify(self, record: dict[str, Any], watermark: datetime) -> tuple[str, datetime] | None:
        """
        Decide Created vs Updated for a record.

        Created when createdAt is after the watermark; the action date is
        createdAt for created records and updatedAt otherwise.

        Returns:
            (action_name, occurred_at), or None when the record has no usable timestamps
        """
        created_at = parse_timestamp(record.get('createdAt'))
        updated_at = parse_timestamp(record.get('updatedAt'))

        if created_at is not None and created_at > watermark:
            return f'{self.label} Created', created_at
        occurred_at = updated_at or created_at
        if occurred_at is None:
            return None
        return f'{self.label} Updated', occurred_at

    def build_search(
        self,
        lower_bound: datetime,
        upper_bound: datetime,
        after: int | None,
    ) -> dict[str, Any]:
        """Search body for one page of the [lower_bound, upper_bound] window."""
        body: dict[str, Any] = {
            'filterGroups': [
                last_modified_filter(lower_bound, upper_bound, self.filter_property),
            ],
            'sorts': [
                {'propertyName': self.filter_property, 'direction': 'ASCENDING'},
            ],
            'properties': list(self.properties),
            'limit': self.page_size,
        }
        if after:
            body['after'] = str(after)
        return body

    # =========================================================================
    # Sweep
    # =========================================================================

    async def fetch(self, account: HubspotAccount, buffer: ActionBuffer) -> SweepResult:
        """
        Sweep everything modified since the watermark into the buffer.

        On success the account's watermark for this entity becomes the
        sweep's start time. On failure it is left untouched.

        Raises:
            EntitySweepError: a page could not be fetched or processed
            AuthError: the token could not be refreshed mid-sweep
        """
        log = logger.bind(hub_id=account.hub_id, entity=self.entity.value)

        watermark = account.last_pulled_dates.get(self.entity) or DEFAULT_WATERMARK
        now = utcnow()
        result = SweepResult(
            entity=self.entity.value,
            previous_watermark=watermark,
            swept_until=now,
        )

        log.info('sweep.started', watermark=watermark.isoformat(), until=now.isoformat())

        try:
            await self._paginate(account, buffer, watermark, now, result, log)
        except AuthError:
            log.error('sweep.auth_failed', pages=result.pages, actions=result.actions)
            raise
        except Exception as exc:
            log.error(
                'sweep.failed',
                error=str(exc),
                error_type=type(exc).__name__,
                pages=result.pages,
                actions=result.actions,
            )
            raise EntitySweepError(
                f'{self.entity.value} sweep failed',
                context={
                    'entity': self.entity.value,
                    'hub_id': account.hub_id,
                    'pages': result.pages,
                    'original_error': str(exc),
                },
            ) from exc

        account.last_pulled_dates.set(self.entity, now)
        log.info('sweep.completed', **result.to_dict())
        return result

    async def _paginate(
        self,
        account: HubspotAccount,
        buffer: ActionBuffer,
        watermark: datetime,
        now: datetime,
        result: SweepResult,
        log: Any,
    ) -> None:
        lower_bound = watermark
        after: int | None = None

        while True:
            body = self.build_search(lower_bound, now, after)
            page = await self.tokens.execute_with_retry(
                partial(self.client.search_objects, self.object_type, body),
                account,
            )

            records = page.get('results') or []
            result.pages += 1
            result.records += len(records)
            log.info(
                'sweep.page_fetched',
                count=len(records),
                after=after,
                lower_bound=lower_bound.isoformat(),
            )

            if records:
                associations = await self.resolve_associations(account, records)
                for record in records:
                    action = self.build_action(record, associations, watermark)
                    if action is None:
                        result.skipped += 1
                        continue
                    await buffer.push(action)
                    result.actions += 1

            next_after = parse_int(((page.get('paging') or {}).get('next') or {}).get('after'))
            if not next_after:
                return

            if next_after >= MAX_PAGING_OFFSET:
                lower_bound = self._rollover_bound(records, lower_bound, log)
                after = None
                result.rollovers += 1
            else:
                after = next_after

    def _rollover_bound(
        self,
        records: list[dict[str, Any]],
        lower_bound: datetime,
        log: Any,
    ) -> datetime:
        """New lower bound after hitting the paging depth limit."""
        last_modified = parse_timestamp(records[-1].get('updatedAt')) if records else None
        if last_modified is None:
            raise EntitySweepError(
                'Cannot roll over the search window: last record has no updatedAt',
                context={'entity': self.entity.value},
            )

        if last_modified <= lower_bound:
            # A full window of records shares one timestamp; step past it to guarantee progress
            last_modified = lower_bound + timedelta(milliseconds=1)
            log.warning('sweep.rollover_stalled', lower_bound=lower_bound.isoformat())

        log.info('sweep.rollover', new_lower_bound=last_modified.isoformat())
        return last_modified
