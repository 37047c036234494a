"""
Contact sweep.

Each page's contact IDs are batch-resolved to their primary company, and
contacts without an email are skipped since the email is the action's
identity.
"""

from datetime import datetime
from functools import partial
from typing import Any, Mapping

from ..models.action import Action, ContactProperties
from ..models.tenant import EntityType, HubspotAccount
from ..utils import parse_int
from .sweep import IncrementalSweep, association_map


class ContactFetcher(IncrementalSweep):
    """Emits "Contact Created" / "Contact Updated" actions keyed by email."""

    entity = EntityType.CONTACTS
    object_type = 'contacts'
    label = 'Contact'
    filter_property = 'lastmodifieddate'
    properties = [
        'firstname',
        'lastname',
        'jobtitle',
        'email',
        'hubspotscore',
        'hs_lead_status',
        'hs_analytics_source',
        'hs_latest_source',
    ]

    async def resolve_associations(
        self,
        account: HubspotAccount,
        records: list[dict[str, Any]],
    ) -> Mapping[str, str]:
        """contact ID -> company ID for the contacts that have one."""
        contact_ids = [str(record['id']) for record in records if record.get('id') is not None]
        results = await self.tokens.execute_with_retry(
            partial(self.client.read_associations, 'contacts', 'companies', contact_ids),
            account,
        )
        return association_map(results)

    def build_action(
        self,
        record: dict[str, Any],
        associations: Mapping[str, Any],
        watermark: datetime,
    ) -> Action | None:
        properties = record.get('properties') or {}
        email = properties.get('email')
        if not email:
            return None

        classified = self.classify(record, watermark)
        if classified is None:
            return None
        action_name, occurred_at = classified

        name = f"{properties.get('firstname') or ''} {properties.get('lastname') or ''}".strip()

        return Action(
            action_name=action_name,
            action_date=occurred_at,
            identity=email,
            user_properties=ContactProperties.from_raw(
                company_id=associations.get(str(record.get('id'))),
                contact_name=name,
                contact_title=properties.get('jobtitle'),
                contact_source=properties.get('hs_analytics_source'),
                contact_status=properties.get('hs_lead_status'),
                contact_score=parse_int(properties.get('hubspotscore')),
            ),
        )
