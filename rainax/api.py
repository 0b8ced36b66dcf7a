"""Local HTTP control API that lets browser extensions queue downloads."""

from __future__ import annotations

import hmac
import ipaddress
import json
import re
import socket
import socketserver
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlsplit

from rainax.status import DownloadStatus

DEFAULT_MAX_BODY = 64 * 1024
API_VERSION = "2.0"
HEADER_TIMEOUT = 5.0
BODY_TIMEOUT = 3.0

_STATUS_LINES = {
    200: "200 OK",
    204: "204 No Content",
    400: "400 Bad Request",
    401: "401 Unauthorized",
    403: "403 Forbidden",
    404: "404 Not Found",
    411: "411 Length Required",
    413: "413 Request Entity Too Large",
    415: "415 Unsupported Media Type",
    422: "422 Unprocessable Entity",
}

_EXTENSION_SCHEMES = frozenset({"chrome-extension", "moz-extension", "edge-extension"})
_LOCAL_HOSTS = ("127.0.0.1", "localhost")
_VALID_QUALITIES = frozenset(
    {"best", "1080p", "720p", "480p", "360p", "audio", "mp3", "m4a", "worst"}
)
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_MAX_TITLE = 200


@dataclass
class HttpRequest:
    """A parsed request: upper-case method, path without query, headers, body."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str:
        """Return a header value by case-insensitive name, or ''."""
        return self.headers.get(name.lower(), "")

    @property
    def content_length(self) -> int:
        """The declared Content-Length, 0 when missing or not a number."""
        return _to_int(self.header("content-length"))


def _to_int(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        return 0


def _split_head(raw: bytes) -> tuple[bytes, bytes]:
    for separator in (b"\r\n\r\n", b"\n\n"):
        index = raw.find(separator)
        if index >= 0:
            return raw[:index], raw[index + len(separator):]
    return raw, b""


def parse_request(raw: bytes) -> HttpRequest:
    """Parse the head and any body bytes of an HTTP request.

    Raises ValueError when there is no usable request line.
    """
    head, body = _split_head(raw)
    lines = head.split(b"\n")
    parts = lines[0].strip().split(b" ")
    if len(parts) < 2:
        raise ValueError("malformed request line")
    method = parts[0].decode("utf-8", "replace").upper()
    path = parts[1].decode("utf-8", "replace").split("?", 1)[0]
    headers: dict[str, str] = {}
    for raw_line in lines[1:]:
        line = raw_line.decode("utf-8", "replace").strip()
        name, colon, value = line.partition(":")
        if colon:
            headers[name.strip().lower()] = value.strip()
    return HttpRequest(method=method, path=path, headers=headers, body=body)


def _dump(obj: Any) -> bytes:
    return json.dumps(
        obj, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    ).encode("utf-8")


def _string_field(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


class ApiRequestHandler:
    """Answers one request on behalf of a loopback client.

    ``is_safe_url(url)`` vets download URLs, ``on_download(url, title,
    quality)`` receives accepted downloads and ``status_source()`` yields the
    statuses of the queued items for ``/status``.
    """

    def __init__(
        self,
        token: str,
        port: int,
        peer_host: str,
        is_safe_url: Callable[[str], bool],
        on_download: Optional[Callable[[str, str, str], None]] = None,
        status_source: Optional[Callable[[], Iterable[DownloadStatus]]] = None,
        max_body: int = DEFAULT_MAX_BODY,
    ) -> None:
        self.token = token
        self.port = port
        self.peer_host = peer_host
        self.is_safe_url = is_safe_url
        self.on_download = on_download
        self.status_source = status_source
        self.max_body = max_body

    # ── checks ──────────────────────────────────────────────────────────

    def _client_is_local(self) -> bool:
        try:
            addr = ipaddress.ip_address(self.peer_host.split("%", 1)[0])
        except ValueError:
            return False
        if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped:
            addr = addr.ipv4_mapped
        return addr.is_loopback

    def _host_header_ok(self, request: HttpRequest) -> bool:
        host = request.header("host").lower().strip()
        return host in {f"{name}:{self.port}" for name in _LOCAL_HOSTS}

    def origin_allowed(self, origin: str) -> bool:
        """True for an empty origin, a browser extension, or this API itself."""
        if not origin:
            return True
        try:
            parts = urlsplit(origin.lower().strip())
            port = parts.port
        except ValueError:
            return False
        host = parts.hostname or ""
        if parts.scheme in _EXTENSION_SCHEMES:
            return bool(host)
        if parts.scheme == "http" and host in _LOCAL_HOSTS:
            return (80 if port is None else port) == self.port
        return False

    def _origin_ok_for_state_change(self, request: HttpRequest) -> bool:
        origin = request.header("origin").lower().strip()
        if origin:
            try:
                scheme = urlsplit(origin).scheme
            except ValueError:
                scheme = ""
            if scheme in _EXTENSION_SCHEMES:
                return self.origin_allowed(origin)
        fetch_site = request.header("sec-fetch-site").lower()
        if fetch_site in ("cross-site", "same-site"):
            return False
        return self.origin_allowed(origin)

    def _token_ok(self, request: HttpRequest) -> bool:
        provided = request.header("x-ydm-token")
        if not provided or not self.token:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), self.token.encode("utf-8"))

    # ── responses ───────────────────────────────────────────────────────

    def _json(self, request: HttpRequest, code: int, obj: Any) -> bytes:
        body = _dump(obj)
        origin = request.header("origin")
        lines = [
            f"HTTP/1.1 {_STATUS_LINES.get(code, str(code))}",
            "Content-Type: application/json; charset=utf-8",
            f"Content-Length: {len(body)}",
        ]
        if origin and self.origin_allowed(origin):
            lines.append(f"Access-Control-Allow-Origin: {origin}")
        lines += [
            "Vary: Origin",
            "X-Content-Type-Options: nosniff",
            "Referrer-Policy: no-referrer",
            "Cache-Control: no-store",
            "Connection: close",
        ]
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + body

    def _error(self, request: HttpRequest, code: int, message: str) -> bytes:
        return self._json(request, code, {"error": message})

    # ── dispatch ────────────────────────────────────────────────────────

    def handle(self, request: HttpRequest) -> bytes:
        """Return the complete response bytes for ``request``."""
        if request.method == "OPTIONS":
            return self._handle_options(request)
        if request.method == "GET":
            return self._handle_get(request)
        if request.method == "POST":
            return self._handle_post(request)
        return self._error(request, 405, "Method not allowed")

    def _handle_options(self, request: HttpRequest) -> bytes:
        if not self._client_is_local() or not self._host_header_ok(request):
            return self._error(request, 403, "Forbidden – local check failed")
        origin = request.header("origin").lower().strip()
        if not origin or not self._origin_ok_for_state_change(request):
            return self._error(request, 403, "Forbidden – origin check failed")
        lines = [
            "HTTP/1.1 204 No Content",
            f"Access-Control-Allow-Origin: {origin}",
            "Access-Control-Allow-Methods: GET, POST, OPTIONS",
            "Access-Control-Allow-Headers: Content-Type, X-YDM-Token",
            "Access-Control-Max-Age: 600",
            "Vary: Origin",
            "Content-Length: 0",
            "Connection: close",
        ]
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")

    def _handle_get(self, request: HttpRequest) -> bytes:
        if not self._client_is_local() or not self._host_header_ok(request):
            return self._error(request, 403, "Forbidden")
        if request.path == "/ping":
            return self._json(request, 200, {"status": "running", "version": API_VERSION})
        if not self._token_ok(request):
            return self._error(request, 401, "Unauthorized")
        if request.path == "/status":
            return self._json(request, 200, self._status_counts())
        return self._error(request, 404, "Not found")

    def _status_counts(self) -> dict[str, int]:
        statuses = list(self.status_source()) if self.status_source else []
        running = statuses.count(DownloadStatus.RUNNING)
        queued = statuses.count(DownloadStatus.QUEUED)
        paused = statuses.count(DownloadStatus.PAUSED)
        return {
            "running": running,
            "queued": queued,
            "paused": paused,
            "total": running + queued + paused,
        }

    def _handle_post(self, request: HttpRequest) -> bytes:
        if not self._client_is_local() or not self._host_header_ok(request):
            return self._error(request, 403, "Forbidden")
        if not self._origin_ok_for_state_change(request):
            return self._error(request, 403, "Forbidden – origin")
        if not self._token_ok(request):
            return self._error(request, 401, "Unauthorized")
        if request.path != "/download":
            return self._error(request, 404, "Not found")

        ctype = request.header("content-type").split(";", 1)[0].strip().lower()
        if ctype != "application/json":
            return self._error(request, 415, "Content-Type must be application/json")

        length = request.content_length
        if length <= 0 or length > self.max_body:
            return self._error(request, 413, "Missing or oversized body")

        try:
            data = json.loads(request.body)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return self._error(request, 400, "Invalid JSON")

        url = _string_field(data, "url").strip()
        title = _string_field(data, "title").strip()
        quality = _string_field(data, "quality").strip().lower()

        if not self.is_safe_url(url):
            return self._error(request, 422, "Invalid or disallowed URL")
        if quality not in _VALID_QUALITIES:
            quality = "best"
        title = _CONTROL_RE.sub("", title)[:_MAX_TITLE]

        if self.on_download is not None:
            self.on_download(url, title, quality)
        return self._json(request, 200, {"status": "queued"})


# ── network server ──────────────────────────────────────────────────────


def _read_head(sock: socket.socket) -> bytes:
    sock.settimeout(HEADER_TIMEOUT)
    data = b""
    try:
        while b"\r\n\r\n" not in data and b"\n\n" not in data:
            chunk = sock.recv(65536)
            if not chunk:
                break
            data += chunk
    except OSError:
        pass
    return data


def _read_body(sock: socket.socket, body: bytes, length: int) -> bytes:
    sock.settimeout(BODY_TIMEOUT)
    try:
        while len(body) < length:
            chunk = sock.recv(65536)
            if not chunk:
                break
            body += chunk
    except OSError:
        pass
    return body


class _ConnectionHandler(socketserver.BaseRequestHandler):
    server: "_ApiTCPServer"

    def handle(self) -> None:
        api = self.server.api
        sock: socket.socket = self.request
        raw = _read_head(sock)
        if not raw:
            return
        try:
            request = parse_request(raw)
        except ValueError:
            return
        length = request.content_length
        if 0 < length <= api.max_body and len(request.body) < length:
            request.body = _read_body(sock, request.body, length)
        handler = ApiRequestHandler(
            token=api.token,
            port=self.server.server_address[1],
            peer_host=self.client_address[0],
            is_safe_url=api.is_safe_url,
            on_download=api.on_download,
            status_source=api.status_source,
            max_body=api.max_body,
        )
        try:
            sock.sendall(handler.handle(request))
        except OSError:
            pass


class _ApiTCPServer(socketserver.TCPServer):
    api: "ApiServer"


class _ApiTCPServer6(_ApiTCPServer):
    address_family = socket.AF_INET6


class ApiServer:
    """Serves the control API on a background thread, one request at a time."""

    def __init__(
        self,
        host: str,
        port: int,
        token: str,
        is_safe_url: Callable[[str], bool],
        on_download: Optional[Callable[[str, str, str], None]] = None,
        status_source: Optional[Callable[[], Iterable[DownloadStatus]]] = None,
        max_body: int = DEFAULT_MAX_BODY,
    ) -> None:
        self.host = host
        self.token = token
        self.is_safe_url = is_safe_url
        self.on_download = on_download
        self.status_source = status_source
        self.max_body = max_body
        self._requested_port = port
        self._server: Optional[_ApiTCPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """The bound port while running, otherwise the requested one."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    def start(self) -> None:
        """Bind and start serving; raises OSError if the port cannot be bound."""
        if self._server is not None:
            return
        server_cls = _ApiTCPServer6 if ":" in self.host else _ApiTCPServer
        server = server_cls((self.host, self._requested_port), _ConnectionHandler)
        server.api = self
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.2},
            name="rainax-api",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop serving and release the port."""
        server, thread = self._server, self._thread
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(3.0)
        self._server = None
        self._thread = None

    def __enter__(self) -> "ApiServer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()