"""
HAR Replay Data Model

Recorded exchanges loaded from a HAR trace, live request descriptors,
and the MIME/content types the synthesizer produces.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..common.url_utils import split_url, parse_query, first_values


DEFAULT_MIME_TYPE = 'application/octet-stream'

_TOKEN_RE = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")


@dataclass
class RequestDescriptor:
    """An incoming live request."""

    method: str
    url: str
    path: str
    query: List[Tuple[str, str]] = field(default_factory=list)

    @classmethod
    def from_url(cls, method: str, url: str) -> 'RequestDescriptor':
        path, raw_query = split_url(url)
        return cls(method=method.upper(), url=url, path=path, query=parse_query(raw_query))

    def to_context(self) -> Dict[str, Any]:
        """Mapping view exposed to field-reference replacements."""
        return _request_context(self.method, self.url, self.path, self.query)


@dataclass
class RecordedExchange:
    """
    One request/response pair captured in the trace.

    The recorded fields are never modified after loading. The only mutable
    state is `decoded_content`, which the synthesizer fills on first use.
    """

    index: int
    method: str
    url: str
    status: Optional[int] = 200
    headers: List[Tuple[str, str]] = field(default_factory=list)
    query: Optional[List[Tuple[str, str]]] = None
    content_size: int = 0
    mime_type: Optional[str] = None
    content_text: Optional[str] = None
    content_encoding: Optional[str] = None
    capture_error: Optional[Any] = None
    decoded_content: Optional[bytes] = field(default=None, repr=False, compare=False)
    path: str = field(init=False)

    def __post_init__(self):
        self.method = self.method.upper()
        self.path, raw_query = split_url(self.url)
        if self.query is None:
            self.query = parse_query(raw_query)

    @classmethod
    def from_har_entry(cls, entry: Dict[str, Any], index: int) -> 'RecordedExchange':
        """
        Build an exchange from a HAR `log.entries` item.

        Args:
            entry: HAR entry dictionary
            index: Position of the entry in the trace

        Returns:
            RecordedExchange
        """
        request = entry.get('request') or {}
        response = entry.get('response') or {}
        content = response.get('content') or {}

        query = None
        if 'queryString' in request:
            query = [
                (str(param.get('name', '')), str(param.get('value', '')))
                for param in request['queryString']
                if isinstance(param, dict)
            ]

        return cls(
            index=index,
            method=request.get('method', 'GET'),
            url=request['url'],
            status=response.get('status'),
            headers=[
                (str(header['name']), str(header.get('value', '')))
                for header in response.get('headers', [])
                if isinstance(header, dict) and 'name' in header
            ],
            query=query,
            content_size=content.get('size') or 0,
            mime_type=content.get('mimeType') or None,
            content_text=content.get('text'),
            content_encoding=content.get('encoding'),
            capture_error=response.get('_error')
        )

    @classmethod
    def shim(cls, url: str, mime_type: str, content: bytes) -> 'RecordedExchange':
        """Synthetic exchange for a locally mapped file with no recorded entry."""
        return cls(
            index=-1,
            method='GET',
            url=url,
            status=200,
            headers=[('Content-Type', mime_type)],
            mime_type=mime_type,
            content_size=len(content),
            decoded_content=content
        )

    def with_content(self, content: bytes) -> 'RecordedExchange':
        """Copy of this exchange serving `content` instead of the recorded payload."""
        return dataclasses.replace(
            self,
            query=list(self.query),
            content_size=len(content),
            decoded_content=content
        )

    @property
    def is_usable(self) -> bool:
        """False when the recording tool failed to fetch the resource."""
        return not self.capture_error and bool(self.status)

    def to_context(self) -> Dict[str, Any]:
        """Mapping view exposed to field-reference replacements."""
        request = _request_context(self.method, self.url, self.path, self.query)
        return {
            **request,
            'request': request,
            'response': {
                'status': self.status,
                'mimeType': self.mime_type,
            }
        }


def _request_context(method: str, url: str, path: str, query: List[Tuple[str, str]]) -> Dict[str, Any]:
    _, search = split_url(url)
    return {
        'method': method,
        'url': url,
        'parsedUrl': {
            'pathname': path,
            'search': f"?{search}" if search else '',
            'query': first_values(query),
        }
    }


@dataclass
class MimeType:
    """Parsed media type: type/subtype plus ordered parameters."""

    type: str
    subtype: str
    parameters: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['MimeType']:
        """
        Parse a Content-Type style string.

        Returns:
            MimeType, or None when the value is not a valid media type
        """
        if not value:
            return None

        essence, _, rest = value.partition(';')
        type_, slash, subtype = essence.strip().partition('/')
        if not slash or not _TOKEN_RE.match(type_) or not _TOKEN_RE.match(subtype):
            return None

        parameters = {}
        for part in rest.split(';'):
            name, equals, param_value = part.partition('=')
            name = name.strip().lower()
            if not equals or not _TOKEN_RE.match(name):
                continue
            param_value = param_value.strip()
            if len(param_value) >= 2 and param_value[0] == param_value[-1] == '"':
                param_value = param_value[1:-1].replace('\\"', '"')
            parameters.setdefault(name, param_value)

        return cls(type=type_.lower(), subtype=subtype.lower(), parameters=parameters)

    @classmethod
    def resolve(cls, value: Optional[str]) -> 'MimeType':
        """Parse `value`, falling back to the generic binary type."""
        return cls.parse(value) or cls.parse(DEFAULT_MIME_TYPE)

    @property
    def charset(self) -> Optional[str]:
        return self.parameters.get('charset') or None

    @charset.setter
    def charset(self, value: str):
        self.parameters['charset'] = value

    @property
    def is_text(self) -> bool:
        return self.type == 'text'

    @property
    def is_xml(self) -> bool:
        if self.subtype == 'xml' and self.type in ('text', 'application'):
            return True
        return self.subtype.endswith('+xml')

    @property
    def is_json(self) -> bool:
        return self.subtype == 'json'

    @property
    def is_binary(self) -> bool:
        """Binary unless text, XML, or JSON."""
        return not (self.is_text or self.is_xml or self.is_json)

    def __str__(self) -> str:
        params = ''.join(
            f"; {name}={value if _TOKEN_RE.match(value) else _quote(value)}"
            for name, value in self.parameters.items()
        )
        return f"{self.type}/{self.subtype}{params}"


def _quote(value: str) -> str:
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


@dataclass
class TypedContent:
    """Final response bytes plus the resolved media type."""

    content: bytes
    mime_type: MimeType

    @property
    def content_type(self) -> str:
        return str(self.mime_type)
