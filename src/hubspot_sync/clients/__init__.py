"""
External service clients for the HubSpot sync worker.
"""

from .hubspot_client import HubspotClient
from .sink_client import ActionSink
from .token_manager import TokenManager

__all__ = [
    'HubspotClient',
    'ActionSink',
    'TokenManager',
]
