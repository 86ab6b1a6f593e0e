"""
HAR Replay Common Utilities

Shared utilities and helpers used across harreplay modules.
"""

from .utils import TraceLoader
from .url_utils import split_url, parse_query, query_pairs, first_values

__all__ = [
    'TraceLoader',
    'split_url',
    'parse_query',
    'query_pairs',
    'first_values',
]
