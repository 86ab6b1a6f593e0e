"""
HAR Replay Response Synthesizer

Turns a recorded (or shim) exchange into the response sent to the client.

Features:
- Lazy, cached decoding of recorded content (base64 or raw text)
- MIME type resolution and binary/text classification
- Replacement rules on textual content, re-encoded in the resolved charset
- Header reconstruction with transforms and forced no-cache headers
"""

import base64
import binascii
import codecs
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import ContentSizeMismatch
from ..replay.rules import CompiledRules
from .models import MimeType, RecordedExchange, RequestDescriptor, TypedContent


logger = logging.getLogger("harreplay.synthesizer")

DEFAULT_CHARSET = 'utf-8'

DROPPED_HEADERS = frozenset({'content-length', 'content-encoding', 'cache-control', 'pragma'})

NO_CACHE_HEADERS = (
    ('cache-control', 'no-cache, no-store, must-revalidate'),
    ('pragma', 'no-cache'),
)


def is_base64_encoded(declared_size: int, text: Optional[str]) -> bool:
    """
    Guess whether recorded text is a base64 payload.

    Base64 expands n bytes to about n / 0.75 characters, so the payload is
    treated as base64 when its length lies in [size / 0.75, size / 0.75 + 4].
    """
    if not text:
        return False
    expected = (declared_size or 0) / 0.75
    return expected <= len(text) <= expected + 4


def decode_content(exchange: RecordedExchange) -> bytes:
    """
    Decode the exchange's recorded payload once and cache it on the exchange.

    Base64 payloads are the original bytes. Raw text is encoded in the
    charset the response declares, so the cached bytes always decode with
    that charset. Decoding is deterministic, so concurrent first requests
    may both decode and store identical bytes.
    """
    if exchange.decoded_content is not None:
        return exchange.decoded_content

    text = exchange.content_text or ''
    declared_base64 = (exchange.content_encoding or '').lower() == 'base64'

    if declared_base64 or is_base64_encoded(exchange.content_size, text):
        try:
            decoded = base64.b64decode(text, validate=not declared_base64)
        except (binascii.Error, ValueError):
            logger.warning(f"{exchange.url}: content looked base64 encoded but did not decode, serving raw text")
            decoded = _encode_text(exchange, text)
    else:
        decoded = _encode_text(exchange, text)

    exchange.decoded_content = decoded
    return decoded


def _encode_text(exchange: RecordedExchange, text: str) -> bytes:
    codec = _codec_name(MimeType.resolve(exchange.mime_type).charset)
    if codec == DEFAULT_CHARSET:
        return text.encode(codec, 'surrogatepass')
    try:
        return text.encode(codec)
    except UnicodeEncodeError:
        logger.warning(f"{exchange.url}: recorded text is not representable in {codec}")
        return text.encode(codec, 'replace')


def _codec_name(charset: Optional[str]) -> str:
    if charset:
        try:
            return codecs.lookup(charset).name
        except LookupError:
            logger.warning(f"Unknown charset {charset!r}, using {DEFAULT_CHARSET}")
    return DEFAULT_CHARSET


@dataclass
class SynthesizedResponse:
    """Final status, headers and body for one request."""

    status: int
    body: bytes
    content_type: str
    headers: List[Tuple[str, str]] = field(default_factory=list)

    def get_all(self, name: str) -> List[str]:
        """All values of header `name`, compared case-insensitively."""
        lowered = name.lower()
        return [value for header, value in self.headers if header.lower() == lowered]


class ResponseSynthesizer:
    """
    Builds responses from exchanges using the compiled rules.

    Example:
        synthesizer = ResponseSynthesizer(rules)
        response = synthesizer.synthesize(exchange, request)
        send(response.status, response.headers, response.body)
    """

    def __init__(self, rules: Optional[CompiledRules] = None):
        """
        Initialize response synthesizer.

        Args:
            rules: Compiled replacement and header-transform rules
        """
        self.rules = rules or CompiledRules()

    def synthesize(self, exchange: RecordedExchange, request: RequestDescriptor) -> SynthesizedResponse:
        """
        Produce the response for `exchange`.

        Args:
            exchange: Matched recorded exchange or a shim for a local file
            request: Live request being answered

        Returns:
            SynthesizedResponse
        """
        decode_content(exchange)
        typed = self.manipulate_content(exchange, request)

        # No conditional request negotiation is replayed
        status = 200 if exchange.status == 304 else exchange.status

        return SynthesizedResponse(
            status=status,
            body=typed.content,
            content_type=typed.content_type,
            headers=self.assemble_headers(exchange, typed.content_type)
        )

    def manipulate_content(self, exchange: RecordedExchange, request: RequestDescriptor) -> TypedContent:
        """
        Apply replacements to textual content; binary content passes through.

        Args:
            exchange: Exchange whose content has been decoded
            request: Live request, exposed to field-reference replacements

        Returns:
            TypedContent with the final bytes and media type
        """
        mime_type = MimeType.resolve(exchange.mime_type)
        content = decode_content(exchange)

        if not mime_type.is_binary:
            codec = _codec_name(mime_type.charset)
            text = content.decode(codec, 'surrogateescape')
            context = {
                'request': request.to_context(),
                'entry': exchange.to_context()
            }
            text = self.rules.apply_replacements(text, context)
            if not mime_type.charset:
                mime_type.charset = DEFAULT_CHARSET
            try:
                content = text.encode(codec, 'surrogateescape')
            except UnicodeEncodeError:
                logger.warning(f"{exchange.url}: replaced content is not representable in {codec}")
                content = text.encode(codec, 'replace')

        if exchange.content_size > 0 and not content:
            logger.error(str(ContentSizeMismatch(exchange.url, exchange.content_size)))

        return TypedContent(content=content, mime_type=mime_type)

    def assemble_headers(self, exchange: RecordedExchange, content_type: str) -> List[Tuple[str, str]]:
        """
        Rebuild response headers from the recording.

        Content-Type is rewritten to the final media type before transforms
        run; length, encoding and caching headers are dropped afterwards and
        no-cache headers appended. Repeated names stay as separate entries.
        """
        headers: List[Tuple[str, str]] = []
        for name, value in exchange.headers:
            if name.lower() == 'content-type':
                value = content_type
            name, value = self.rules.transform_header(name, value)
            if name.lower() in DROPPED_HEADERS:
                continue
            headers.append((name, value))

        headers.extend(NO_CACHE_HEADERS)
        return headers
