"""
Property filtering and search-filter builders.

Raw HubSpot property values are noisy: form placeholders, "n/a" style
fillers and unresolved personalization tokens all show up as strings.
filter_null_values() strips them before a property bag is attached to an
Action.
"""

from datetime import datetime
from typing import Any

from .utils import to_epoch_ms

DISALLOWED_VALUES = frozenset({
    '[not provided]',
    'placeholder',
    '[[unknown]]',
    'not set',
    'not provided',
    'unknown',
    'undefined',
    'n/a',
})

# Unresolved HubSpot personalization token, e.g. "{{ contact.!$record.firstname }}"
TEMPLATE_MARKER = '!$record'


def is_meaningful(value: Any) -> bool:
    """True when a property value should be kept."""
    if value is None:
        return False
    if isinstance(value, str):
        lowered = value.strip().lower()
        if not lowered:
            return False
        if lowered in DISALLOWED_VALUES or TEMPLATE_MARKER in lowered:
            return False
    return True


def filter_null_values(values: dict[str, Any]) -> dict[str, Any]:
    """
    Drop null, empty and placeholder values from a property bag.

    Matching against DISALLOWED_VALUES is case-insensitive. Applying the
    filter to an already-filtered bag returns it unchanged.
    """
    return {key: value for key, value in values.items() if is_meaningful(value)}


def last_modified_filter(
    lower_bound: datetime | None,
    upper_bound: datetime,
    property_name: str = 'hs_lastmodifieddate',
) -> dict[str, Any]:
    """
    Build a search filter group for "property_name in [lower_bound, upper_bound]".

    Values are epoch milliseconds encoded as strings, which is what the
    search API expects for datetime properties. Without a lower bound the
    group is empty and the search is unfiltered.
    """
    if lower_bound is None:
        return {'filters': []}
    return {
        'filters': [
            {
                'propertyName': property_name,
                'operator': 'GTE',
                'value': str(to_epoch_ms(lower_bound)),
            },
            {
                'propertyName': property_name,
                'operator': 'LTE',
                'value': str(to_epoch_ms(upper_bound)),
            },
        ]
    }
