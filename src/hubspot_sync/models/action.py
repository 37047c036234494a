"""
Action model: the normalized event emitted for every created or updated
HubSpot record.

Each entity type carries its own typed property bag. Bags are always built
through from_raw(), which applies the shared disallow-list filter, so a bag
never contains nulls, empty strings or placeholder values.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..filtering import filter_null_values


class PropertyBag(BaseModel):
    """Base class for entity property bags."""

    @classmethod
    def from_raw(cls, **values: Any):
        """Build the bag from raw values, dropping null and placeholder entries."""
        return cls(**filter_null_values(values))


class CompanyProperties(PropertyBag):
    """Properties attached to Company Created/Updated actions."""

    company_id: str | None = None
    company_domain: str | None = None
    company_industry: str | None = None


class ContactProperties(PropertyBag):
    """Properties attached to Contact Created/Updated actions (userProperties)."""

    company_id: str | None = None
    contact_name: str | None = None
    contact_title: str | None = None
    contact_source: str | None = None
    contact_status: str | None = None
    contact_score: int | None = None


class MeetingProperties(PropertyBag):
    """Properties attached to Meeting Created/Updated actions."""

    meeting_id: str | None = None
    meeting_title: str | None = None
    meeting_start_time: str | None = None
    meeting_end_time: str | None = None
    meeting_outcome: str | None = None
    contact_id: str | None = None


class Action(BaseModel):
    """
    A created-or-updated event for one HubSpot record.

    Lives only for the duration of a sync run: produced by a fetcher,
    consumed by the ActionBuffer and discarded once flushed.
    """

    action_name: str = Field(..., alias='actionName', description='e.g. "Contact Created"')
    action_date: datetime = Field(..., alias='actionDate')
    identity: str | None = Field(default=None, description='Correlating key, e.g. an email')
    include_in_analytics: int = Field(default=0, alias='includeInAnalytics')

    company_properties: CompanyProperties | None = Field(default=None, alias='companyProperties')
    user_properties: ContactProperties | None = Field(default=None, alias='userProperties')
    meeting_properties: MeetingProperties | None = Field(default=None, alias='meetingProperties')

    model_config = {
        'populate_by_name': True,
    }

    def to_sink_dict(self) -> dict[str, Any]:
        """Serialize for the downstream sink (camelCase keys, ISO timestamps)."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)
