"""
Prometheus metrics published by the exporter.

SensorMetrics owns its own CollectorRegistry so tests (and embedding
applications) never share state through the process-wide default
registry. Every metric is registered up front, before the first write.
"""
import logging
import threading
import time
from typing import Any, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge

from . import __version__
from .client import SensorStatus
from .errors import FetchError

logger = logging.getLogger(__name__)


class SensorMetrics:
    """Sensor gauges plus per-address scrape bookkeeping."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        reg = self.registry

        # Sensor readings, labeled by the sensor's own ID
        self.pm25_aqi = Gauge("pm2_5_aqi", "PM2.5 AQI", ["host", "channel"], registry=reg)
        self.sensor_id = Gauge("sensor_id", "The sensor device ID", ["host", "sensor_id"], registry=reg)
        self.version = Gauge("version", "Version", ["host", "version"], registry=reg)
        self.temp = Gauge("temp_f", "The current temperature (F)", ["host"], registry=reg)
        self.humidity = Gauge("humidity", "The current humidity", ["host"], registry=reg)
        self.dewpoint = Gauge("dewpoint", "The current dewpoint (F)", ["host"], registry=reg)
        self.pressure = Gauge("pressure", "The current pressure in millibars", ["host"], registry=reg)

        # Exporter health, labeled by configured address
        self.exporter_info = Gauge(
            "purple_exporter_info", "Exporter version information.", ["version"], registry=reg
        )
        self.up = Gauge(
            "purple_up", "Was the last scrape of the sensor successful.", ["address"], registry=reg
        )
        self.last_scrape = Gauge(
            "purple_last_scrape_timestamp_seconds",
            "Unix time of the last successful scrape.",
            ["address"],
            registry=reg,
        )
        self.scrape_duration = Gauge(
            "purple_scrape_duration_seconds",
            "Duration of the last scrape in seconds.",
            ["address"],
            registry=reg,
        )
        self.scrape_errors = Counter(
            "purple_scrape_errors_total",
            "Total number of scrape errors, by error type.",
            ["address", "error_type"],
            registry=reg,
        )
        self.status_changes = Counter(
            "purple_status_changes_total",
            "Total number of up/down transitions.",
            ["address", "direction"],
            registry=reg,
        )
        self.cycle_duration = Gauge(
            "purple_cycle_duration_seconds",
            "Duration of the last complete scrape cycle in seconds.",
            registry=reg,
        )
        self.exporter_info.labels(version=__version__).set(1)

        # Bookkeeping for up/down transitions and the debug endpoint
        self._lock = threading.Lock()
        self._up: dict[str, bool] = {}
        self._hosts: dict[str, str] = {}
        self._last_error: dict[str, Optional[str]] = {}
        self._last_success: dict[str, float] = {}
        self._errors_total: dict[str, int] = {}

    def publish(self, status: SensorStatus, host: str) -> None:
        """Overwrite every reading gauge for one sensor."""
        self.sensor_id.labels(host, status.sensor_id).set(1)
        self.version.labels(host, status.version).set(1)
        self.temp.labels(host).set(status.temperature_f)
        self.humidity.labels(host).set(status.humidity)
        self.dewpoint.labels(host).set(status.dewpoint_f)
        self.pressure.labels(host).set(status.pressure_mb)
        self.pm25_aqi.labels(host, "a").set(status.pm25_aqi_a)
        self.pm25_aqi.labels(host, "b").set(status.pm25_aqi_b)

    def record_success(self, address: str, status: SensorStatus, duration: float,
                       timestamp: Optional[float] = None) -> str:
        """
        Publish a successful scrape and mark the address up.

        Returns:
            The host label the readings were published under
        """
        host = status.sensor_id or address
        now = timestamp if timestamp is not None else time.time()
        self.publish(status, host)
        self.up.labels(address).set(1)
        self.last_scrape.labels(address).set(now)
        self.scrape_duration.labels(address).set(duration)

        with self._lock:
            prev_up = self._up.get(address)
            self._up[address] = True
            self._hosts[address] = host
            self._last_error[address] = None
            self._last_success[address] = now
        if prev_up is False:
            self.status_changes.labels(address, "up").inc()
            logger.info(f"Sensor {address} came back online")
        return host

    def record_failure(self, address: str, error: FetchError, duration: float) -> None:
        """Mark the address down. Previously published readings are left as they are."""
        self.up.labels(address).set(0)
        self.scrape_duration.labels(address).set(duration)
        self.scrape_errors.labels(address, error.error_type).inc()

        with self._lock:
            prev_up = self._up.get(address)
            self._up[address] = False
            self._last_error[address] = str(error)
            self._errors_total[address] = self._errors_total.get(address, 0) + 1
        if prev_up is True:
            self.status_changes.labels(address, "down").inc()
            logger.warning(f"Sensor {address} went offline")

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Per-address state for the debug endpoint."""
        now = time.time()
        with self._lock:
            addresses = set(self._up) | set(self._last_error)
            out: dict[str, dict[str, Any]] = {}
            for address in sorted(addresses):
                last = self._last_success.get(address)
                out[address] = {
                    "up": self._up.get(address, False),
                    "host": self._hosts.get(address),
                    "last_update": last,
                    "last_update_age_seconds": now - last if last else None,
                    "last_error": self._last_error.get(address),
                    "scrape_errors_total": self._errors_total.get(address, 0),
                }
            return out
