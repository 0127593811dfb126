"""One round of concurrent sensor scrapes."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

from .client import SensorClient, SensorStatus
from .errors import FetchError
from .metrics import SensorMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScrapeResult:
    """Outcome of scraping one sensor: either a status or an error."""
    address: str
    status: Optional[SensorStatus] = None
    error: Optional[FetchError] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class ScrapeCycle:
    """
    Scrapes every configured sensor in parallel and publishes the results.

    run() returns only after every fetch has finished, successfully or
    not. A failing sensor never affects the others; its previously
    published readings stay in place until it answers again.
    """

    def __init__(self, addresses: Sequence[str], client: SensorClient, metrics: SensorMetrics):
        self.addresses = tuple(addresses)
        self.client = client
        self.metrics = metrics

    def run(self) -> list[ScrapeResult]:
        if not self.addresses:
            return []
        cycle_start = time.monotonic()

        # Leaving the executor block joins every worker
        with ThreadPoolExecutor(max_workers=len(self.addresses), thread_name_prefix="scraper") as executor:
            futures = [executor.submit(self._scrape_one, address) for address in self.addresses]
        results = [future.result() for future in futures]

        cycle_duration = time.monotonic() - cycle_start
        self.metrics.cycle_duration.set(cycle_duration)
        failed = sum(1 for r in results if not r.ok)
        logger.debug(
            f"Completed scrape cycle for {len(results)} sensor(s) in {cycle_duration:.3f}s "
            f"({len(results) - failed} ok, {failed} failed)"
        )
        return results

    def _scrape_one(self, address: str) -> ScrapeResult:
        """Scrape a single sensor. Never raises."""
        scrape_start = time.monotonic()
        try:
            status = self.client.fetch(address)
            duration = time.monotonic() - scrape_start
            host = self.metrics.record_success(address, status, duration)
            logger.debug(f"Scraped {address} ({host}) successfully in {duration:.3f}s")
            return ScrapeResult(address=address, status=status, duration=duration)
        except FetchError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error while scraping {address}")
            error = FetchError(address, str(e), "other")

        duration = time.monotonic() - scrape_start
        logger.warning(f"Failed to scrape {address} ({error.error_type}): {error} (duration: {duration:.3f}s)")
        self.metrics.record_failure(address, error, duration)
        return ScrapeResult(address=address, error=error, duration=duration)
