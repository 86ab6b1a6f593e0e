"""
HAR Replay Server Module

Replay server functionality for serving recorded HAR traffic.

This module provides:
- FastAPI-based replay server and request dispatch
- Entry matching engine
- Response synthesis (decoding, replacements, headers)
"""

from .server import ReplayServer, ServerConfig, ReplayMetrics, ResponseSummary, AnyioFileReader
from .matcher import EntryMatcher, MatchResult, MatchScore, MatchStatus, score_exchange
from .models import RecordedExchange, RequestDescriptor, MimeType, TypedContent
from .synthesizer import (
    ResponseSynthesizer,
    SynthesizedResponse,
    decode_content,
    is_base64_encoded,
)

__all__ = [
    # Server
    'ReplayServer',
    'ServerConfig',
    'ReplayMetrics',
    'ResponseSummary',
    'AnyioFileReader',

    # Matcher
    'EntryMatcher',
    'MatchResult',
    'MatchScore',
    'MatchStatus',
    'score_exchange',

    # Model
    'RecordedExchange',
    'RequestDescriptor',
    'MimeType',
    'TypedContent',

    # Synthesizer
    'ResponseSynthesizer',
    'SynthesizedResponse',
    'decode_content',
    'is_base64_encoded',
]
