from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import logging
from urllib.parse import urlparse

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_client.registry import CollectorRegistry

from ipmi_tap.context import AppContext
from ipmi_tap.errors import ConfigError

METRICS_PATH = "/metrics"
RELOAD_PATH = "/-/reload"
HEALTH_PATH = "/health"

logger = logging.getLogger(__name__)


class ExporterHandler(BaseHTTPRequestHandler):
    server: ExporterServer

    def do_GET(self) -> None:
        path = urlparse(self.path).path
        if path == METRICS_PATH:
            self.handle_metrics()
        elif path == HEALTH_PATH:
            self._send(200, b"ok\n")
        elif path == RELOAD_PATH:
            self._send(405, b"This endpoint requires a POST request.\n")
        else:
            self._send(404, b"Not found\n")

    def do_POST(self) -> None:
        path = urlparse(self.path).path
        if path == RELOAD_PATH:
            self.handle_reload()
        elif path in (METRICS_PATH, HEALTH_PATH):
            self._send(405, b"Method not allowed\n")
        else:
            self._send(404, b"Not found\n")

    def do_PUT(self) -> None:
        self._method_not_allowed()

    do_DELETE = do_PUT
    do_PATCH = do_PUT
    do_HEAD = do_PUT

    def _method_not_allowed(self) -> None:
        path = urlparse(self.path).path
        if path in (METRICS_PATH, HEALTH_PATH, RELOAD_PATH):
            self._send(405, b"Method not allowed\n")
        else:
            self._send(404, b"Not found\n")

    def handle_metrics(self) -> None:
        try:
            body = generate_latest(self.server.registry)
        except Exception:
            logger.exception("Failed to render metrics")
            self._send(500, b"Failed to render metrics\n")
            return
        self._send(200, body, CONTENT_TYPE_LATEST)

    def handle_reload(self) -> None:
        try:
            self.server.context.reload()
        except ConfigError as exc:
            logger.error("Config reload via HTTP failed: %s", exc)
            self._send(500, f"failed to reload config: {exc}\n".encode("utf-8"))
            return
        self._send(200, b"Config reloaded\n")

    def _send(self, status: int, body: bytes, content_type: str = "text/plain; charset=utf-8") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), fmt % args)


class ExporterServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        context: AppContext,
        registry: CollectorRegistry,
    ) -> None:
        super().__init__(address, ExporterHandler)
        self.context = context
        self.registry = registry
