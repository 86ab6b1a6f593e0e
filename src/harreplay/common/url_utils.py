"""
HAR Replay URL Utilities

Shared URL parsing helpers used by the matcher and the rule context.
"""

from collections import Counter
from typing import Dict, List, Tuple
from urllib.parse import urlsplit, parse_qsl


def split_url(url: str) -> Tuple[str, str]:
    """
    Split a URL into its path and raw query string.

    Args:
        url: Absolute URL or origin-form request target

    Returns:
        (path, query) tuple; path defaults to '/'
    """
    parsed = urlsplit(url)
    return parsed.path or '/', parsed.query


def parse_query(query: str) -> List[Tuple[str, str]]:
    """
    Parse a raw query string into ordered (name, value) pairs.

    Blank values are kept so that `?flag` and `?flag=` count as parameters.
    """
    if not query:
        return []
    return parse_qsl(query, keep_blank_values=True)


def query_pairs(pairs: List[Tuple[str, str]]) -> Counter:
    """Multiset view of query parameters, order-insensitive."""
    return Counter((name, value) for name, value in pairs)


def first_values(pairs: List[Tuple[str, str]]) -> Dict[str, str]:
    """Map each parameter name to its first value."""
    values: Dict[str, str] = {}
    for name, value in pairs:
        values.setdefault(name, value)
    return values
