import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from prometheus_client import CollectorRegistry

from purple_exporter.metrics import SensorMetrics

SAMPLE_PAYLOAD = {
    "SensorId": "abc123",
    "place": "outside",
    "version": "7.0",
    "current_temp_f": 72.5,
    "current_humidity": 41.0,
    "current_dewpoint_f": 48.2,
    "pressure": 1013.2,
    "pm2.5_aqi": 12.0,
    "pm2.5_aqi_b": 11.5,
    "Geo": "PurpleAir-1234",
}


class _SensorHandler(BaseHTTPRequestHandler):
    """Serves whatever body/status the owning FakeSensor currently holds."""

    def do_GET(self):
        sensor = self.server.sensor
        sensor.requests += 1
        if self.path != "/json":
            self.send_response(404)
            self.end_headers()
            return
        body = sensor.body
        self.send_response(sensor.status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt, *args):
        return


class FakeSensor:
    """A local HTTP server standing in for one sensor's /json endpoint."""

    def __init__(self):
        self.status_code = 200
        self.body = json.dumps(SAMPLE_PAYLOAD).encode("utf-8")
        self.requests = 0
        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), _SensorHandler)
        self._httpd.daemon_threads = True
        self._httpd.sensor = self
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    @property
    def address(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"{host}:{port}"

    def set_payload(self, payload) -> None:
        self.body = json.dumps(payload).encode("utf-8")

    def start(self) -> "FakeSensor":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()


@pytest.fixture()
def fake_sensor():
    sensor = FakeSensor().start()
    try:
        yield sensor
    finally:
        sensor.stop()


@pytest.fixture()
def closed_address() -> str:
    """An address on which nothing listens, so connections are refused."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"127.0.0.1:{port}"


@pytest.fixture()
def metrics() -> SensorMetrics:
    return SensorMetrics(CollectorRegistry())


class SlowSensor:
    """
    A raw-socket sensor that either never answers or sends its body one
    byte at a time, `drip_interval` seconds apart.
    """

    def __init__(self):
        self.silent = False
        self.drip_interval = 0.3
        self._stop = threading.Event()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self._sock.settimeout(0.1)
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def address(self) -> str:
        host, port = self._sock.getsockname()[:2]
        return f"{host}:{port}"

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            threading.Thread(target=self._answer, args=(conn,), daemon=True).start()

    def _answer(self, conn: socket.socket) -> None:
        body = json.dumps(SAMPLE_PAYLOAD).encode("utf-8")
        with conn:
            try:
                conn.recv(4096)
                if self.silent:
                    self._stop.wait()
                    return
                conn.sendall(
                    b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                    + f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
                )
                for i in range(len(body)):
                    if self._stop.wait(self.drip_interval):
                        return
                    conn.sendall(body[i:i + 1])
            except OSError:
                return

    def start(self) -> "SlowSensor":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        self._sock.close()


@pytest.fixture()
def slow_sensor():
    sensor = SlowSensor().start()
    try:
        yield sensor
    finally:
        sensor.stop()
