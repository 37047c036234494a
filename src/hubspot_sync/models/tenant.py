"""
Tenant and HubSpot account models.

A Tenant (a "domain" in the tenant store) owns any number of connected
HubSpot accounts. Each account carries its OAuth tokens and one watermark
per entity type; the sync engine reads and writes only those fields.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..utils import ensure_utc


class EntityType(str, Enum):
    """Entity types swept for every account, in sweep order."""

    CONTACTS = 'contacts'
    COMPANIES = 'companies'
    MEETINGS = 'meetings'


class LastPulledDates(BaseModel):
    """Per-entity watermarks: lower bound of the next incremental sweep."""

    contacts: datetime | None = None
    companies: datetime | None = None
    meetings: datetime | None = None

    @field_validator('contacts', 'companies', 'meetings')
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        # Older rows hold naive timestamps, which are UTC
        return ensure_utc(value) if value is not None else None

    def get(self, entity: EntityType) -> datetime | None:
        return getattr(self, entity.value)

    def set(self, entity: EntityType, value: datetime) -> None:
        setattr(self, entity.value, ensure_utc(value))


class HubspotAccount(BaseModel):
    """A connected HubSpot portal."""

    hub_id: str = Field(..., description='HubSpot portal (hub) ID')
    access_token: str | None = None
    refresh_token: str
    last_pulled_dates: LastPulledDates = Field(default_factory=LastPulledDates)

    @field_validator('hub_id', mode='before')
    @classmethod
    def _coerce_hub_id(cls, value: Any) -> str:
        # Stored as a number by older integrations
        return str(value)

    def to_store_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape kept in the tenant store."""
        return self.model_dump(mode='json')


class Tenant(BaseModel):
    """A tenant and its connected HubSpot accounts."""

    id: str
    name: str | None = None
    accounts: list[HubspotAccount] = Field(default_factory=list)

    @field_validator('accounts')
    @classmethod
    def _unique_hub_ids(cls, accounts: list[HubspotAccount]) -> list[HubspotAccount]:
        seen: set[str] = set()
        for account in accounts:
            if account.hub_id in seen:
                raise ValueError(f'duplicate HubSpot account {account.hub_id}')
            seen.add(account.hub_id)
        return accounts

    def find_account(self, hub_id: str) -> HubspotAccount | None:
        for account in self.accounts:
            if account.hub_id == hub_id:
                return account
        return None
