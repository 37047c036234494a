"""
Meeting sweep.

Attendees are resolved in two steps per page: a meeting -> contact
association batch read, then one contact read per unique contact ID to
obtain the email used as the action identity. Both lookups are
best-effort; a failed lookup leaves the meeting without an identity.
"""

import asyncio
from datetime import datetime
from typing import Any, Mapping, NamedTuple

import structlog

from ..errors import RemoteCallError
from ..models.action import Action, MeetingProperties
from ..models.tenant import EntityType, HubspotAccount
from ..utils import parse_timestamp, to_iso
from .sweep import IncrementalSweep, association_map

logger = structlog.get_logger(__name__)


class Attendee(NamedTuple):
    """First contact associated with a meeting."""

    contact_id: str
    email: str | None


class MeetingFetcher(IncrementalSweep):
    """Emits "Meeting Created" / "Meeting Updated" actions."""

    entity = EntityType.MEETINGS
    object_type = 'meetings'
    label = 'Meeting'
    filter_property = 'hs_lastmodifieddate'
    properties = [
        'hs_meeting_title',
        'hs_meeting_start_time',
        'hs_meeting_end_time',
        'hs_meeting_outcome',
    ]

    async def resolve_associations(
        self,
        account: HubspotAccount,
        records: list[dict[str, Any]],
    ) -> Mapping[str, Attendee]:
        """meeting ID -> Attendee for the meetings that have a contact."""
        meeting_ids = [str(record['id']) for record in records if record.get('id') is not None]

        try:
            results = await self.client.read_associations('meetings', 'contacts', meeting_ids)
        except RemoteCallError as exc:
            logger.error(
                'meetings.attendees_failed',
                hub_id=account.hub_id,
                count=len(meeting_ids),
                error=str(exc),
            )
            return {}

        contacts_by_meeting = association_map(results)
        emails = await self._fetch_emails(account, set(contacts_by_meeting.values()))

        return {
            meeting_id: Attendee(contact_id=contact_id, email=emails.get(contact_id))
            for meeting_id, contact_id in contacts_by_meeting.items()
        }

    async def _fetch_emails(self, account: HubspotAccount, contact_ids: set[str]) -> dict[str, str]:
        """One contact read per unique ID, concurrently; failures are logged and dropped."""

        async def fetch_one(contact_id: str) -> tuple[str, str | None]:
            try:
                contact = await self.client.get_object('contacts', contact_id, ['email'])
            except RemoteCallError as exc:
                logger.error(
                    'meetings.contact_lookup_failed',
                    hub_id=account.hub_id,
                    contact_id=contact_id,
                    error=str(exc),
                )
                return contact_id, None
            return contact_id, (contact.get('properties') or {}).get('email')

        ordered = sorted(contact_ids)
        lookups = await asyncio.gather(*(fetch_one(contact_id) for contact_id in ordered))
        return {contact_id: email for contact_id, email in lookups if email}

    def build_action(
        self,
        record: dict[str, Any],
        associations: Mapping[str, Any],
        watermark: datetime,
    ) -> Action | None:
        properties = record.get('properties')
        if not isinstance(properties, dict):
            return None

        classified = self.classify(record, watermark)
        if classified is None:
            return None
        action_name, occurred_at = classified

        attendee = associations.get(str(record.get('id')))
        start_time = parse_timestamp(properties.get('hs_meeting_start_time'))
        end_time = parse_timestamp(properties.get('hs_meeting_end_time'))

        return Action(
            action_name=action_name,
            action_date=occurred_at,
            identity=attendee.email if attendee else None,
            meeting_properties=MeetingProperties.from_raw(
                meeting_id=record.get('id'),
                meeting_title=properties.get('hs_meeting_title'),
                meeting_start_time=to_iso(start_time) if start_time else None,
                meeting_end_time=to_iso(end_time) if end_time else None,
                meeting_outcome=properties.get('hs_meeting_outcome'),
                contact_id=attendee.contact_id if attendee else None,
            ),
        )
