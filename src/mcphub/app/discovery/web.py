"""Loopback HTTP endpoint publishing the registry at ``/.well-known/mcp.json``."""

from __future__ import annotations

import errno
import json
import socket
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Any, Dict, Iterable, List, Tuple
from urllib.parse import urlparse

from mcphub.domain.mcp.value_objects import Server
from mcphub.domain.timestamps import format_timestamp, utcnow
from mcphub.utils.locks import ReadWriteLock
from mcphub.utils.logging import get_logger

logger = get_logger(__name__)

LOOPBACK_HOST = "127.0.0.1"
WELL_KNOWN_PATH = "/.well-known/mcp.json"
SCHEMA_VERSION = "1.0"
PROVIDER = "MCP Hub"
PROVIDER_DESCRIPTION = "MCP servers managed by MCP Hub"

_CORS_HEADERS = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, OPTIONS"),
    ("Access-Control-Allow-Headers", "Content-Type, Accept"),
)

_HTML_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>MCP Hub Discovery</title>
<style>
body { font-family: system-ui, sans-serif; max-width: 800px; margin: 50px auto; padding: 20px; }
h1 { color: #333; }
code { background: #f4f4f4; padding: 2px 6px; border-radius: 4px; }
a { color: #0066cc; }
</style>
</head>
<body>
<h1>MCP Hub Discovery Server</h1>
<p>This server provides MCP server discovery for other applications.</p>
<h2>Endpoints</h2>
<ul>
<li><a href="/.well-known/mcp.json"><code>/.well-known/mcp.json</code></a> - MCP server discovery index</li>
<li><a href="/health"><code>/health</code></a> - Health check</li>
</ul>
<p><small>Powered by <a href="https://github.com/mcp-hub">MCP Hub</a></small></p>
</body>
</html>
"""


class BindError(RuntimeError):
    """Raised when the discovery endpoint cannot bind its port."""

    def __init__(self, port: int, message: str) -> None:
        super().__init__(message)
        self.port = port


class PortInUseError(BindError):
    pass


class PortPermissionError(BindError):
    pass


def server_card(server: Server) -> Dict[str, Any]:
    """Discovery card for one server; environment values are never published."""

    card: Dict[str, Any] = {"schemaVersion": SCHEMA_VERSION, "name": server.name}
    if server.description:
        card["description"] = server.description
    card["transport"] = {
        "type": "stdio",
        "command": server.command,
        "args": list(server.args),
        "env": {},
    }
    card["tags"] = list(server.tags)
    return card


def discovery_index(servers: Iterable[Server]) -> Dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "provider": PROVIDER,
        "description": PROVIDER_DESCRIPTION,
        "servers": [server_card(server) for server in servers],
        "updatedAt": format_timestamp(utcnow()),
    }


class ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    # server_close() joins handler threads, so shutdown drains in-flight requests.
    daemon_threads = False
    block_on_close = True
    allow_reuse_address = True


class DiscoveryServerHandle:
    """Running endpoint: swap its snapshot with ``update_servers`` and stop it with ``shutdown``."""

    def __init__(self, server: ThreadedHTTPServer, servers: Iterable[Server]) -> None:
        self._server = server
        self._snapshot: Tuple[Server, ...] = tuple(servers)
        self._snapshot_lock = ReadWriteLock()
        self._state_lock = threading.Lock()
        self._running = True
        self._thread = threading.Thread(
            target=server.serve_forever,
            name=f"mcphub-discovery-{self.port}",
            daemon=True,
        )

    @property
    def host(self) -> str:
        return str(self._server.server_address[0])

    @property
    def port(self) -> int:
        return int(self._server.server_address[1])

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._running

    def snapshot(self) -> Tuple[Server, ...]:
        with self._snapshot_lock.read():
            return self._snapshot

    def update_servers(self, servers: Iterable[Server]) -> None:
        fresh = tuple(servers)
        with self._snapshot_lock.write():
            self._snapshot = fresh
        logger.debug("discovery.snapshot_updated", servers=len(fresh))

    def shutdown(self) -> None:
        with self._state_lock:
            if not self._running:
                return
            self._running = False
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=5)
        logger.info("discovery.stopped", port=self.port)

    def _start(self) -> None:
        self._thread.start()


def start_discovery_server(
    port: int,
    servers: Iterable[Server],
    host: str = LOOPBACK_HOST,
) -> DiscoveryServerHandle:
    """Bind ``host:port`` and serve the discovery routes on a background thread."""

    handle: DiscoveryServerHandle | None = None

    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: object) -> None:  # noqa: A003 - silence default logging
            return

        def end_headers(self) -> None:
            for name, value in _CORS_HEADERS:
                self.send_header(name, value)
            super().end_headers()

        def _write(self, status: HTTPStatus, body: bytes, content_type: str) -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:  # noqa: N802
            path = urlparse(self.path).path
            if path == "/":
                self._write(HTTPStatus.OK, _HTML_PAGE.encode("utf-8"), "text/html; charset=utf-8")
                return
            if path == "/health":
                self._write(HTTPStatus.OK, b"OK", "text/plain; charset=utf-8")
                return
            if path == WELL_KNOWN_PATH:
                payload = discovery_index(handle.snapshot() if handle is not None else ())
                data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
                self._write(HTTPStatus.OK, data, "application/json")
                return
            self._write(HTTPStatus.NOT_FOUND, b"Not Found", "text/plain; charset=utf-8")

        def do_OPTIONS(self) -> None:  # noqa: N802
            self.send_response(HTTPStatus.NO_CONTENT)
            self.send_header("Content-Length", "0")
            self.end_headers()

    try:
        server = ThreadedHTTPServer((host, port), Handler)
    except OSError as exc:
        raise _bind_error(port, exc) from exc
    handle = DiscoveryServerHandle(server, servers)
    handle._start()
    logger.info("discovery.started", host=handle.host, port=handle.port)
    return handle


def is_port_available(port: int, host: str = LOOPBACK_HOST) -> bool:
    """Try binding ``host:port`` the way the endpoint does, then release it."""

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _bind_error(port: int, exc: OSError) -> BindError:
    if exc.errno == errno.EADDRINUSE:
        return PortInUseError(port, f"Port {port} is already in use")
    if exc.errno in (errno.EACCES, errno.EPERM):
        return PortPermissionError(port, f"Permission denied binding port {port}")
    return BindError(port, f"Failed to bind to port {port}: {exc}")


__all__ = [
    "BindError",
    "DiscoveryServerHandle",
    "LOOPBACK_HOST",
    "PortInUseError",
    "PortPermissionError",
    "WELL_KNOWN_PATH",
    "discovery_index",
    "is_port_available",
    "server_card",
    "start_discovery_server",
]
