"""
Data models for the HubSpot sync worker.
"""

from .action import (
    Action,
    CompanyProperties,
    ContactProperties,
    MeetingProperties,
)
from .tenant import EntityType, HubspotAccount, LastPulledDates, Tenant

__all__ = [
    'Action',
    'CompanyProperties',
    'ContactProperties',
    'MeetingProperties',
    'EntityType',
    'HubspotAccount',
    'LastPulledDates',
    'Tenant',
]
