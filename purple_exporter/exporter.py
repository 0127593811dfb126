#!/usr/bin/env python3
"""
Process entry point: wires settings, scrape loop and HTTP endpoint together.
"""
import logging
import signal
import sys
from typing import Optional, Sequence

from . import __version__
from .client import SensorClient
from .config import load_settings
from .cycle import ScrapeCycle
from .errors import ConfigurationError, ExposureServerError
from .metrics import SensorMetrics
from .scheduler import Scheduler
from .server import ExposureServer

logger = logging.getLogger(__name__)

# ======================
# Logging Setup
# ======================

def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

# ======================
# Main
# ======================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the exporter. Returns the process exit code."""
    try:
        settings = load_settings(argv)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)

    metrics = SensorMetrics()
    client = SensorClient(timeout=settings.sensor_timeout)
    cycle = ScrapeCycle(settings.sensor_addresses, client, metrics)
    scheduler = Scheduler(cycle.run, settings.update_interval)
    server = ExposureServer(
        settings.listen_host, settings.listen_port, metrics,
        scheduler=scheduler, settings=settings,
    )

    try:
        server.start()
    except ExposureServerError as e:
        logger.error(str(e))
        client.close()
        return 1

    def signal_handler(signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        scheduler.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info(
        f"Purple exporter v{__version__} listening on {settings.listen}, "
        f"polling {len(settings.sensor_addresses)} sensor(s) every {settings.update_interval}s "
        f"(timeout {settings.sensor_timeout}s)"
    )
    for address in settings.sensor_addresses:
        logger.info(f"  - {address}")

    poller_thread = scheduler.start()

    try:
        # Wait for shutdown signal
        while not scheduler.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        scheduler.stop()
    finally:
        logger.info("Shutting down HTTP server...")
        server.shutdown()

        # An in-flight cycle is bounded by the sensor timeout
        logger.info("Waiting for poller thread to finish...")
        poller_thread.join(timeout=settings.update_interval + settings.sensor_timeout * 2)

        if poller_thread.is_alive():
            logger.warning("Poller thread did not finish in time")
        else:
            logger.info("Poller thread finished cleanly")

        client.close()
        logger.info("Exporter shutdown complete")

    return 0


if __name__ == "__main__":
    sys.exit(main())
