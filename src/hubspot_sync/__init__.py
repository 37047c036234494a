"""
HubSpot Sync Worker

Incrementally syncs HubSpot contacts, companies and meetings, per tenant and
per connected account, into a downstream analytics sink as normalized
Created/Updated actions.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .worker import HubspotWorker, AccountSyncResult
from .buffer import ActionBuffer
from .clients import HubspotClient, ActionSink, TokenManager
from .fetchers import (
    CompanyFetcher,
    ContactFetcher,
    MeetingFetcher,
    IncrementalSweep,
    SweepResult,
)
from .models import Action, EntityType, HubspotAccount, LastPulledDates, Tenant
from .repository import TenantRepository
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    SyncTimer,
)
from .errors import (
    HubspotSyncError,
    RemoteCallError,
    RemoteRateLimitError,
    AuthError,
    FlushError,
    EntitySweepError,
    FatalLoadError,
    TenantStoreError,
)

__all__ = [
    # Version
    '__version__',
    # Orchestrator
    'HubspotWorker',
    'AccountSyncResult',
    # Components
    'ActionBuffer',
    'HubspotClient',
    'ActionSink',
    'TokenManager',
    'CompanyFetcher',
    'ContactFetcher',
    'MeetingFetcher',
    'IncrementalSweep',
    'SweepResult',
    # Models
    'Action',
    'EntityType',
    'HubspotAccount',
    'LastPulledDates',
    'Tenant',
    # Store
    'TenantRepository',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'SyncTimer',
    # Errors
    'HubspotSyncError',
    'RemoteCallError',
    'RemoteRateLimitError',
    'AuthError',
    'FlushError',
    'EntitySweepError',
    'FatalLoadError',
    'TenantStoreError',
]
