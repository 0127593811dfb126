"""
HTTP client for the sensor's local JSON status document.

Each sensor serves its current readings at http://<address>/json.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import requests

from .errors import FetchError

logger = logging.getLogger(__name__)

# ======================
# Constants
# ======================

STATUS_PATH = "/json"
# Per-request timeout (seconds): bounds the connect, each read, and the whole body
DEFAULT_TIMEOUT = 5.0
# Body read size while watching the overall deadline. A one-byte read returns
# as soon as anything arrives, so a trickling sensor cannot block past it.
READ_CHUNK_SIZE = 1

# ======================
# Data model
# ======================

@dataclass(frozen=True)
class SensorStatus:
    """One decoded status document from a single sensor."""
    sensor_id: str
    place: str
    version: str
    temperature_f: float
    humidity: float
    dewpoint_f: float
    pressure_mb: float
    pm25_aqi_a: float
    pm25_aqi_b: float

    @classmethod
    def from_payload(cls, payload: Any) -> "SensorStatus":
        """
        Build a status from a decoded JSON document.

        Unknown keys are ignored and missing keys decode as zero values.

        Raises:
            ValueError: If the document is not an object or a reading is not numeric
        """
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
        return cls(
            sensor_id=_str_field(payload, "SensorId"),
            place=_str_field(payload, "place"),
            version=_str_field(payload, "version"),
            temperature_f=_float_field(payload, "current_temp_f"),
            humidity=_float_field(payload, "current_humidity"),
            dewpoint_f=_float_field(payload, "current_dewpoint_f"),
            pressure_mb=_float_field(payload, "pressure"),
            pm25_aqi_a=_float_field(payload, "pm2.5_aqi"),
            pm25_aqi_b=_float_field(payload, "pm2.5_aqi_b"),
        )

# ======================
# Parsing helpers
# ======================

def _str_field(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()

def _float_field(payload: dict[str, Any], key: str) -> float:
    """Read a numeric field. Missing or null is 0.0, anything non-numeric is an error."""
    value = payload.get(key)
    if value is None:
        return 0.0
    # bool is an int subclass, but a true/false reading is not a measurement
    if isinstance(value, bool):
        raise ValueError(f"field {key!r} is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"field {key!r} is not numeric: {value!r}") from None

# ======================
# Error Categorization
# ======================

def categorize_error(error: Exception) -> str:
    """
    Categorize a fetch exception into error types for observability.

    Args:
        error: The exception to categorize

    Returns:
        Error type string: 'timeout', 'connection_refused', 'http_status',
        'parse', 'network', or 'other'
    """
    error_str = str(error).lower()

    if isinstance(error, requests.Timeout) or "timed out" in error_str:
        return "timeout"
    elif isinstance(error, requests.ConnectionError) and (
        "refused" in error_str or _caused_by(error, ConnectionRefusedError)
    ):
        return "connection_refused"
    elif isinstance(error, requests.HTTPError):
        return "http_status"
    elif isinstance(error, ValueError):
        # also covers requests.JSONDecodeError
        return "parse"
    elif isinstance(error, (requests.RequestException, OSError)):
        return "network"
    else:
        return "other"

def _caused_by(error: BaseException, exc_type: type) -> bool:
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        if isinstance(current, exc_type):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False

# ======================
# Client
# ======================

class SensorClient:
    """
    Fetches sensor status documents over plain HTTP.

    The client holds no per-sensor state, so one instance is shared by
    every worker thread of a scrape cycle.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session

    def status_url(self, address: str) -> str:
        return f"http://{address}{STATUS_PATH}"

    def fetch(self, address: str) -> SensorStatus:
        """
        GET the status document of one sensor and decode it.

        Args:
            address: Sensor address as host or host:port

        Returns:
            The decoded SensorStatus

        Raises:
            FetchError: On connect/read errors, timeouts, non-2xx responses,
                or a body that does not decode into a status document
        """
        url = self.status_url(address)
        http = self._session if self._session is not None else requests
        deadline = time.monotonic() + self.timeout
        try:
            response = http.get(url, timeout=self.timeout, stream=True)
            try:
                response.raise_for_status()
                body = self._read_body(response, url, deadline)
            finally:
                response.close()
            return SensorStatus.from_payload(json.loads(body))
        except (requests.RequestException, ValueError) as e:
            raise FetchError(address, str(e), categorize_error(e)) from e

    def _read_body(self, response: requests.Response, url: str, deadline: float) -> bytes:
        """
        Read the whole body, giving up once the overall deadline passes.

        The per-read socket timeout alone would let a sensor that trickles
        bytes hold the request open indefinitely.
        """
        chunks: list[bytes] = []
        for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise requests.Timeout(f"Reading {url} timed out after {self.timeout}s")
        if time.monotonic() > deadline:
            raise requests.Timeout(f"Reading {url} timed out after {self.timeout}s")
        return b"".join(chunks)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
