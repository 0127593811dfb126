"""
Exporter configuration.

Sensor addresses and the listen address come from the command line.
Tuning knobs come from the environment. Everything is validated up front
and collected into an immutable Settings object.
"""
import argparse
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from . import __version__
from .errors import ConfigurationError

# ======================
# Defaults
# ======================

DEFAULT_LISTEN = "0.0.0.0:8080"
DEFAULT_UPDATE_INTERVAL = 5.0  # seconds
DEFAULT_SENSOR_TIMEOUT = 5.0  # seconds
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("CRITICAL", "FATAL", "ERROR", "WARN", "WARNING", "INFO", "DEBUG", "NOTSET")

SENSOR_ADDRS_ENV = "PURPLE_SENSOR_ADDRS"
UPDATE_INTERVAL_ENV = "UPDATE_INTERVAL"
SENSOR_TIMEOUT_ENV = "SENSOR_TIMEOUT"
LOG_LEVEL_ENV = "LOG_LEVEL"

# Longest valid DNS name
MAX_HOSTNAME_LENGTH = 253


@dataclass(frozen=True)
class Settings:
    sensor_addresses: tuple[str, ...]
    listen_host: str
    listen_port: int
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    sensor_timeout: float = DEFAULT_SENSOR_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def listen(self) -> str:
        return f"{self.listen_host}:{self.listen_port}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="purple-exporter",
        description="Prometheus exporter for PurpleAir air-quality sensors",
    )
    parser.add_argument(
        "--sensor-addr",
        action="append",
        default=None,
        metavar="HOST[:PORT]",
        help=f"Sensor address to poll; repeat for several sensors (fallback: ${SENSOR_ADDRS_ENV})",
    )
    parser.add_argument(
        "--listen",
        default=DEFAULT_LISTEN,
        metavar="HOST:PORT",
        help=f"Address to serve /metrics on (default: {DEFAULT_LISTEN})",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _split_port(value: str) -> tuple[str, Optional[str]]:
    """Split 'host:port' into its parts. Bracketed IPv6 hosts are supported."""
    value = value.strip()
    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            return "", None
        return host, (rest[1:] if rest else None)
    if value.count(":") == 1:
        host, _, port = value.partition(":")
        return host, port
    return value, None


def _valid_port(port: str) -> bool:
    return port.isdigit() and 1 <= int(port) <= 65535


def validate_address(address: str) -> bool:
    """
    Basic sensor address validation.
    Returns True if the host part is non-empty and of reasonable length,
    and the port (if any) is a valid TCP port.
    """
    host, port = _split_port(address)
    if not host or len(host) > MAX_HOSTNAME_LENGTH or any(c.isspace() for c in host):
        return False
    if port is not None and not _valid_port(port):
        return False
    return True


def parse_listen_address(value: str) -> tuple[str, int]:
    """Parse HOST:PORT (HOST may be empty, meaning all interfaces)."""
    host, port = _split_port(value)
    if port is None or not _valid_port(port):
        raise ConfigurationError(f"Invalid listen address: {value!r} (expected HOST:PORT)")
    return host or "0.0.0.0", int(port)


def _read_positive_float(environ: Mapping[str, str], name: str, default: float,
                         errors: list[str]) -> float:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        errors.append(f"{name} must be a number, got {raw!r}")
        return default
    if not math.isfinite(value):
        errors.append(f"{name} must be a finite number, got {raw!r}")
        return default
    if value <= 0:
        errors.append(f"{name} must be > 0, got {value}")
    return value


def load_settings(argv: Optional[Sequence[str]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Parse arguments and environment into Settings.

    Raises:
        ConfigurationError: Listing every problem found
        SystemExit: On argparse usage errors, --help or --version
    """
    args = build_parser().parse_args(argv)
    environ = os.environ if environ is None else environ
    errors: list[str] = []

    if args.sensor_addr:
        raw_addresses = list(args.sensor_addr)
    else:
        raw_addresses = (environ.get(SENSOR_ADDRS_ENV) or "").split(",")

    addresses: list[str] = []
    for address in raw_addresses:
        address = address.strip()
        if not address:
            # blank entries are only an error when given explicitly
            if args.sensor_addr:
                errors.append("Sensor address must not be empty")
            continue
        if not validate_address(address):
            errors.append(f"Invalid sensor address: {address}")
            continue
        if address not in addresses:
            addresses.append(address)

    if not addresses and not errors:
        errors.append(
            "At least one sensor address is required "
            f"(use --sensor-addr or set {SENSOR_ADDRS_ENV})"
        )

    listen_host, listen_port = "", 0
    try:
        listen_host, listen_port = parse_listen_address(args.listen)
    except ConfigurationError as e:
        errors.append(str(e))

    update_interval = _read_positive_float(environ, UPDATE_INTERVAL_ENV, DEFAULT_UPDATE_INTERVAL, errors)
    sensor_timeout = _read_positive_float(environ, SENSOR_TIMEOUT_ENV, DEFAULT_SENSOR_TIMEOUT, errors)
    log_level = (environ.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL
    if log_level not in LOG_LEVELS:
        errors.append(f"{LOG_LEVEL_ENV} must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    if errors:
        raise ConfigurationError("Configuration errors:\n  " + "\n  ".join(errors))

    return Settings(
        sensor_addresses=tuple(addresses),
        listen_host=listen_host,
        listen_port=listen_port,
        update_interval=update_interval,
        sensor_timeout=sensor_timeout,
        log_level=log_level,
    )
