"""
HAR Replay Entry Matcher

Selects the recorded exchange that best corresponds to a live request.

Recorded traffic often carries cache-busting query parameters, random
tokens or several captures of the same resource, so an exact URL match is
not guaranteed. Selection policy:

1. Candidates share the request's method and URL path (query ignored).
2. A candidate with an identical query parameter set wins outright.
3. Otherwise each candidate scores
       shared (name, value) pairs - parameter names present on one side only
   and the highest score wins.
4. Ties go to the earliest exchange in the trace.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..common.url_utils import query_pairs
from .models import RecordedExchange, RequestDescriptor


class MatchStatus(Enum):
    FOUND = 'found'
    NOT_FOUND = 'not_found'
    UNUSABLE = 'unusable'


@dataclass
class MatchScore:
    """Score for a candidate with breakdown."""

    total_score: int
    shared_params: int = 0
    unshared_params: int = 0
    exact: bool = False


@dataclass
class MatchResult:
    """Result of matching a request."""

    status: MatchStatus
    exchange: Optional[RecordedExchange] = None
    score: Optional[MatchScore] = None
    reason: str = ""

    @property
    def matched(self) -> bool:
        return self.status is MatchStatus.FOUND

    def to_dict(self) -> Dict[str, object]:
        return {
            'status': self.status.value,
            'score': self.score.total_score if self.score else None,
            'reason': self.reason,
            'entry_url': self.exchange.url if self.exchange else None,
            'entry_index': self.exchange.index if self.exchange else None
        }


class EntryMatcher:
    """
    Matcher over the recorded exchanges of one trace.

    The exchange list is read-only; find_match has no side effects, so
    repeated calls with the same request return the same exchange.

    Example:
        matcher = EntryMatcher(exchanges)
        result = matcher.find_match(RequestDescriptor.from_url('GET', url))

        if result.matched:
            serve(result.exchange)
    """

    def __init__(self, exchanges: List[RecordedExchange]):
        """
        Initialize entry matcher.

        Args:
            exchanges: Recorded exchanges in trace order
        """
        self.exchanges = exchanges
        self._build_index()

    def _build_index(self):
        """Index exchanges by method and path, keeping trace order within each bucket."""
        self.index: Dict[Tuple[str, str], List[RecordedExchange]] = {}
        for exchange in self.exchanges:
            key = (exchange.method, exchange.path)
            self.index.setdefault(key, []).append(exchange)

    def candidates(self, request: RequestDescriptor) -> List[RecordedExchange]:
        """Exchanges with the request's method and path, in trace order."""
        return self.index.get((request.method.upper(), request.path), [])

    def find_match(self, request: RequestDescriptor) -> MatchResult:
        """
        Find the best recorded exchange for `request`.

        Args:
            request: Live request descriptor

        Returns:
            MatchResult: FOUND, NOT_FOUND, or UNUSABLE when the best
            exchange carries a capture error or has no status
        """
        best: Optional[RecordedExchange] = None
        best_score: Optional[MatchScore] = None

        for exchange in self.candidates(request):
            score = score_exchange(exchange, request)
            if score.exact:
                best, best_score = exchange, score
                break
            if best_score is None or score.total_score > best_score.total_score:
                best, best_score = exchange, score

        if best is None:
            return MatchResult(
                status=MatchStatus.NOT_FOUND,
                reason=f"No recorded {request.method} for path {request.path}"
            )

        if not best.is_usable:
            return MatchResult(
                status=MatchStatus.UNUSABLE,
                exchange=best,
                score=best_score,
                reason="Recorded entry has a capture error" if best.capture_error else "Recorded entry has no status"
            )

        reason = "Exact match" if best_score.exact else f"Path match (score: {best_score.total_score})"
        return MatchResult(status=MatchStatus.FOUND, exchange=best, score=best_score, reason=reason)


def score_exchange(exchange: RecordedExchange, request: RequestDescriptor) -> MatchScore:
    """
    Score a path-matching candidate against the live request's query.

    Args:
        exchange: Candidate with the request's method and path
        request: Live request descriptor

    Returns:
        MatchScore; `exact` when both query parameter multisets are identical
    """
    recorded = query_pairs(exchange.query)
    live = query_pairs(request.query)

    if recorded == live:
        return MatchScore(total_score=sum(live.values()), shared_params=sum(live.values()), exact=True)

    shared = sum((recorded & live).values())
    recorded_names = {name for name, _ in recorded}
    live_names = {name for name, _ in live}
    unshared = len(recorded_names ^ live_names)

    return MatchScore(total_score=shared - unshared, shared_params=shared, unshared_params=unshared)
