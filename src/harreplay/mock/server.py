"""
HAR Replay Server

FastAPI-based HTTP server that replays responses from a recorded HAR trace.

Features:
- Local file mappings checked before the trace
- Best-match selection among recorded entries
- Content replacements and response header transforms
- Structured 404/410 error responses
- Optional admin API with metrics
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import anyio
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..common import TraceLoader
from ..errors import (
    ORIGIN_CLIENT_BLOCKED,
    ORIGIN_MATCHED_ENTRY,
    CaptureError,
    LocalReadError,
    NoMatchError,
    RequestError,
)
from ..replay.rules import CompiledRules
from .matcher import EntryMatcher, MatchStatus
from .models import DEFAULT_MIME_TYPE, RecordedExchange, RequestDescriptor
from .synthesizer import ResponseSynthesizer, SynthesizedResponse


logger = logging.getLogger("harreplay.server")

ERROR_CONTENT_TYPE = 'text/plain; charset=utf-8'

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


class FileReader(Protocol):
    """Reads local override files."""

    async def read(self, path: str) -> bytes:
        ...


class AnyioFileReader:
    """Reads files without blocking the event loop."""

    async def read(self, path: str) -> bytes:
        return await anyio.Path(path).read_bytes()


@dataclass
class ServerConfig:
    """Configuration for replay server behavior."""

    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False
    log_level: str = "info"

    # Directory that local mapping paths resolve against
    resolve_root: Path = field(default_factory=Path.cwd)

    # Admin API
    admin_enabled: bool = False
    admin_prefix: str = "/__admin__"


@dataclass
class ReplayMetrics:
    """Track replay server metrics."""

    total_requests: int = 0
    matched_requests: int = 0
    unmatched_requests: int = 0
    blocked_requests: int = 0
    local_files_served: int = 0
    local_read_failures: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def record(self, origin: str):
        self.total_requests += 1
        if origin == ORIGIN_MATCHED_ENTRY:
            self.matched_requests += 1
        elif origin == ORIGIN_CLIENT_BLOCKED:
            self.blocked_requests += 1
        else:
            self.unmatched_requests += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'matched_requests': self.matched_requests,
            'unmatched_requests': self.unmatched_requests,
            'blocked_requests': self.blocked_requests,
            'local_files_served': self.local_files_served,
            'local_read_failures': self.local_read_failures,
            'match_rate': round((self.matched_requests / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


@dataclass
class ResponseSummary:
    """What was sent for one request; logged when debugging."""

    status: int
    method: str
    url: str
    content_type: str
    content_length: int
    origin: str
    content: bytes = field(default=b'', repr=False)

    @property
    def content_hash(self) -> str:
        return hashlib.md5(self.content).hexdigest()

    def log(self):
        logger.info(
            f"{self.status} {self.method} {self.url} {self.content_type} "
            f"{self.content_length} {self.origin} {self.content_hash}"
        )


class ReplayServer:
    """
    FastAPI-based server replaying a recorded HAR trace.

    Example:
        config = ReplayConfig.discover()
        server = ReplayServer('session.har', rules=config.compile(),
                              config=ServerConfig(resolve_root=config.resolve_root))
        server.start()
    """

    def __init__(
        self,
        har_file: Optional[str] = None,
        rules: Optional[CompiledRules] = None,
        config: Optional[ServerConfig] = None,
        exchanges: Optional[List[RecordedExchange]] = None,
        file_reader: Optional[FileReader] = None
    ):
        """
        Initialize replay server.

        Args:
            har_file: Path to the HAR trace (ignored when exchanges are given)
            rules: Compiled configuration rules
            config: Optional ServerConfig for server behavior
            exchanges: Already loaded exchanges
            file_reader: Reader for locally mapped files
        """
        self.config = config or ServerConfig()
        self.rules = rules or CompiledRules()
        self.metrics = ReplayMetrics()
        self.file_reader = file_reader or AnyioFileReader()

        if exchanges is None:
            if har_file is None:
                raise ValueError("Either har_file or exchanges is required")
            exchanges = self._load_exchanges(har_file)
        self.exchanges = exchanges

        self.matcher = EntryMatcher(self.exchanges)
        self.synthesizer = ResponseSynthesizer(self.rules)

        self.app = self._create_app()

    def _load_exchanges(self, har_file: str) -> List[RecordedExchange]:
        """Load recorded exchanges from a HAR file."""
        entries = TraceLoader(har_file).load_and_validate()
        exchanges = [RecordedExchange.from_har_entry(entry, i) for i, entry in enumerate(entries)]
        logger.info(f"Loaded {len(exchanges)} entries from {har_file}")
        return exchanges

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="HAR Replay Server",
            description="Serves responses recorded in a HAR trace",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        if self.config.admin_enabled:
            @app.get(f"{self.config.admin_prefix}/metrics")
            async def get_metrics():
                """Get server metrics."""
                return JSONResponse(content=self.metrics.to_dict())

            @app.get(f"{self.config.admin_prefix}/entries")
            async def list_entries():
                """List recorded entries."""
                return JSONResponse(content={
                    'total': len(self.exchanges),
                    'entries': [
                        {
                            'index': e.index,
                            'method': e.method,
                            'url': e.url,
                            'status': e.status
                        }
                        for e in self.exchanges
                    ]
                })

            @app.post(f"{self.config.admin_prefix}/reset")
            async def reset_metrics():
                """Reset metrics."""
                self.metrics = ReplayMetrics()
                return JSONResponse(content={'status': 'reset'})

        @app.api_route("/{path:path}", methods=ALL_METHODS)
        async def replay_request(request: Request, path: str):
            """Serve the recorded response for the incoming request."""
            return await self.handle(request.method, live_url(request))

        return app

    async def handle(self, method: str, url: str) -> Response:
        """
        Handle one request end to end.

        Per-request errors become error responses here; nothing escapes
        to affect other requests.
        """
        request = RequestDescriptor.from_url(method, url)
        logger.debug(f"Incoming: {request.method} {request.url}")

        try:
            synthesized = await self.dispatch(request)
        except RequestError as e:
            if isinstance(e, LocalReadError):
                logger.error(f"Error: {e}")
            else:
                logger.debug(f"{e.status_code} for {request.method} {request.url}: {e}")
            return self._serve_error(request, e)

        return self._serve(request, synthesized, ORIGIN_MATCHED_ENTRY)

    async def dispatch(self, request: RequestDescriptor) -> SynthesizedResponse:
        """
        Resolve a request into a synthesized response.

        Local mappings take precedence over the trace.

        Raises:
            LocalReadError: Mapped file could not be read
            CaptureError: Matched entry was unusable at capture time
            NoMatchError: Nothing corresponds to the request
        """
        result = self.matcher.find_match(request)

        local_path = self.resolve_local_path(request.url)
        if local_path is not None:
            try:
                content = await self.file_reader.read(local_path)
            except OSError as e:
                self.metrics.local_read_failures += 1
                raise LocalReadError(local_path, request.url, cause=e) from e

            self.metrics.local_files_served += 1
            if result.status is MatchStatus.FOUND:
                exchange = result.exchange.with_content(content)
            else:
                mime_type = mimetypes.guess_type(local_path)[0] or DEFAULT_MIME_TYPE
                exchange = RecordedExchange.shim(request.url, mime_type, content)
            return self.synthesizer.synthesize(exchange, request)

        if result.status is MatchStatus.NOT_FOUND:
            raise NoMatchError(request.method, request.url)
        if result.status is MatchStatus.UNUSABLE:
            raise CaptureError(request.url, result.exchange.capture_error)

        return self.synthesizer.synthesize(result.exchange, request)

    def resolve_local_path(self, url: str) -> Optional[str]:
        """Local file for `url` from the first matching mapping, resolved against the config directory."""
        destination = self.rules.map_url(url)
        if destination is None:
            return None
        return os.path.abspath(os.path.join(self.config.resolve_root, destination))

    def _serve(self, request: RequestDescriptor, synthesized: SynthesizedResponse, origin: str) -> Response:
        response = Response(content=synthesized.body, status_code=synthesized.status)
        response.raw_headers = _raw_headers(synthesized.headers, len(synthesized.body))
        self._log_interaction(ResponseSummary(
            status=synthesized.status,
            method=request.method,
            url=request.url,
            content_type=synthesized.content_type,
            content_length=len(synthesized.body),
            origin=origin,
            content=synthesized.body
        ))
        return response

    def _serve_error(self, request: RequestDescriptor, error: RequestError) -> Response:
        content = error.body().encode('utf-8')
        response = Response(content=content, status_code=error.status_code)
        response.raw_headers = _raw_headers([('content-type', ERROR_CONTENT_TYPE)], len(content))
        self._log_interaction(ResponseSummary(
            status=error.status_code,
            method=request.method,
            url=request.url,
            content_type=ERROR_CONTENT_TYPE,
            content_length=len(content),
            origin=error.origin,
            content=content
        ))
        return response

    def _log_interaction(self, summary: ResponseSummary):
        self.metrics.record(summary.origin)
        if self.config.debug:
            summary.log()

    def start(self, host: Optional[str] = None, port: Optional[int] = None, access_log: bool = False):
        """
        Start the replay server.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable uvicorn access logging
        """
        actual_host = host or self.config.host
        actual_port = port or self.config.port

        print(f"har-replay: Listening on {actual_host}:{actual_port}")
        print(f"   Entries loaded: {len(self.exchanges)}")
        if self.config.admin_enabled:
            print(f"   Admin API: http://{actual_host}:{actual_port}{self.config.admin_prefix}/metrics")

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=access_log
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def _raw_headers(headers: List[Tuple[str, str]], content_length: int) -> List[Tuple[bytes, bytes]]:
    """Encode headers as ordered raw pairs, keeping repeated names as separate lines."""
    raw = [(name.encode('latin-1', 'replace'), value.encode('latin-1', 'replace')) for name, value in headers]
    raw.append((b'content-length', str(content_length).encode('latin-1')))
    return raw


def live_url(request: Request) -> str:
    """
    Absolute URL of `request` as the client sent it.

    Starlette's `request.url` is built from the percent-decoded path, while
    recorded URLs keep their encoding, so the path and query are taken raw
    from the ASGI scope.
    """
    raw_path = request.scope.get('raw_path')
    if raw_path is None:
        return str(request.url)

    path = raw_path.split(b'?', 1)[0].decode('latin-1')
    query = request.scope.get('query_string', b'').decode('latin-1')
    url = f"{request.url.scheme}://{request.url.netloc}{path}"
    return f"{url}?{query}" if query else url
