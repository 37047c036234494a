"""
Entity fetchers: one incremental sweep per HubSpot object type.
"""

from .companies import CompanyFetcher
from .contacts import ContactFetcher
from .meetings import MeetingFetcher
from .sweep import (
    DEFAULT_WATERMARK,
    MAX_PAGING_OFFSET,
    PAGE_SIZE,
    IncrementalSweep,
    SweepResult,
)

# Sweep order for every account
FETCHER_CLASSES: tuple[type[IncrementalSweep], ...] = (
    ContactFetcher,
    CompanyFetcher,
    MeetingFetcher,
)

__all__ = [
    'CompanyFetcher',
    'ContactFetcher',
    'MeetingFetcher',
    'IncrementalSweep',
    'SweepResult',
    'FETCHER_CLASSES',
    'DEFAULT_WATERMARK',
    'MAX_PAGING_OFFSET',
    'PAGE_SIZE',
]
