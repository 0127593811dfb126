"""HTTP endpoint serving the metrics registry and exporter health."""
import json
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__
from .config import Settings
from .errors import ExposureServerError
from .metrics import SensorMetrics
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

EXPORTER_NAME = "purple-exporter"


class _ExporterHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    # a second exporter on the same port must fail to bind
    allow_reuse_port = False

    metrics: SensorMetrics
    scheduler: Optional[Scheduler] = None
    settings: Optional[Settings] = None


class ExporterHandler(BaseHTTPRequestHandler):
    server: _ExporterHTTPServer

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        if path == "/metrics":
            self.handle_metrics()
        elif path == "/health" or path == "/":
            self.handle_health()
        elif path == "/version":
            self.handle_version()
        elif path == "/debug":
            self.handle_debug()
        else:
            self._send(404, "text/plain", b"Not Found\n")

    def log_message(self, fmt, *args):
        return

    def _send(self, code: int, content_type: str, body: bytes) -> None:
        self.send_response(code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, payload: dict) -> None:
        self._send(200, "application/json", json.dumps(payload, indent=2).encode("utf-8"))

    def handle_metrics(self):
        self._send(200, CONTENT_TYPE_LATEST, generate_latest(self.server.metrics.registry))

    def handle_health(self):
        """
        Exporter health means:
          - HTTP server is up
          - poller thread is still ticking
        NOT "all sensors are up"
        """
        scheduler = self.server.scheduler
        if scheduler is None or scheduler.is_healthy():
            self._send(200, "text/plain", f"OK\nversion={__version__}\n".encode("utf-8"))
            return
        now = time.time()
        body = f"UNHEALTHY: poller heartbeat stale (last={scheduler.last_heartbeat}, now={now})\n"
        self._send(503, "text/plain", body.encode("utf-8"))

    def handle_version(self):
        """Return exporter version information."""
        self._send_json({"version": __version__, "exporter": EXPORTER_NAME})

    def handle_debug(self):
        """Return internal state for debugging."""
        now = time.time()
        settings = self.server.settings
        scheduler = self.server.scheduler
        debug_info: dict = {"version": __version__, "timestamp": now}
        if settings is not None:
            debug_info["configuration"] = {
                "update_interval": settings.update_interval,
                "sensor_timeout": settings.sensor_timeout,
                "listen": settings.listen,
                "log_level": settings.log_level,
            }
            debug_info["targets"] = list(settings.sensor_addresses)
        if scheduler is not None:
            debug_info["poller"] = {
                "state": scheduler.state.value,
                "last_heartbeat": scheduler.last_heartbeat,
                "heartbeat_age_seconds": scheduler.heartbeat_age(now),
                "cycles_completed": scheduler.cycles_completed,
            }
        debug_info["sensors"] = self.server.metrics.snapshot()
        self._send_json(debug_info)


class ExposureServer:
    """Owns the HTTP listener and the thread serving it."""

    def __init__(self, host: str, port: int, metrics: SensorMetrics,
                 scheduler: Optional[Scheduler] = None, settings: Optional[Settings] = None):
        self.host = host
        self.port = port
        self.metrics = metrics
        self.scheduler = scheduler
        self.settings = settings
        self._httpd: Optional[_ExporterHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_address(self) -> tuple[str, int]:
        """The bound (host, port); the port is real even when 0 was requested."""
        if self._httpd is None:
            return self.host, self.port
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        try:
            httpd = _ExporterHTTPServer((self.host, self.port), ExporterHandler)
        except OSError as e:
            raise ExposureServerError(f"Cannot listen on {self.host}:{self.port}: {e}") from e
        httpd.metrics = self.metrics
        httpd.scheduler = self.scheduler
        httpd.settings = self.settings
        self._httpd = httpd

        def serve():
            try:
                httpd.serve_forever()
            except Exception as e:
                logger.error(f"HTTP server error: {e}")

        self._thread = threading.Thread(target=serve, name="http-server", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        self._httpd = None
