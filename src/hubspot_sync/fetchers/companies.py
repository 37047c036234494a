"""Company sweep: no associations, action dates skewed 2s into the past."""

from datetime import datetime, timedelta
from typing import Any, Mapping

from ..models.action import Action, CompanyProperties
from ..models.tenant import EntityType
from .sweep import IncrementalSweep

# Downstream clock lags the CRM's; company events are back-dated to compensate
ACTION_DATE_SKEW = timedelta(milliseconds=2000)


class CompanyFetcher(IncrementalSweep):
    """Emits "Company Created" / "Company Updated" actions."""

    entity = EntityType.COMPANIES
    object_type = 'companies'
    label = 'Company'
    filter_property = 'hs_lastmodifieddate'
    properties = [
        'name',
        'domain',
        'country',
        'industry',
        'description',
        'annualrevenue',
        'numberofemployees',
        'hs_lead_status',
    ]

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

        return Action(
            action_name=action_name,
            action_date=occurred_at - ACTION_DATE_SKEW,
            company_properties=CompanyProperties.from_raw(
                company_id=record.get('id'),
                company_domain=properties.get('domain'),
                company_industry=properties.get('industry'),
            ),
        )
