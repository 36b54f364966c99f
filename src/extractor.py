"""Crawl traversal base implementing the Strategy Pattern.

``BaseCrawler`` owns everything that is site-independent about a crawl:
walking the index pages, assigning a correlation key to each newly
discovered listing link, creating its record in the CorrelationStore, and
fanning out one listing visit per key. Subclasses provide the site-specific
hooks: how links are found, how the next index page is found, and what a
listing visit extracts.

The key assigned at discovery is passed to ``visit_listing`` as an argument
and must be threaded through every callback that visit triggers. Nothing in
the crawl reads a shared "current listing" variable.

The crawl is complete once the index traversal has finished and every
spawned listing task has returned; only then is the store snapshotted.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from typing import Any

from playwright.async_api import Page
from pydantic import BaseModel

from config.settings import GlobalConfig, get_config
from src.browser import BrowserManager
from src.exceptions import NavigationError
from src.logger import get_logger
from src.store import CorrelationStore, ListingRecord
from src.validator import CoverageMonitor

log = get_logger(__name__)


class CrawlResult(BaseModel):
    """Final state of a crawl.

    Attributes:
        records: Every record in discovery order.
        listings_discovered: Number of records created.
        pages_scraped: Number of index pages processed.
        source_url: Index page the crawl started from.
        coverage: Per-stage counters from the CoverageMonitor.
    """

    records: list[ListingRecord]
    listings_discovered: int
    pages_scraped: int
    source_url: str
    coverage: dict[str, Any] = {}

    @property
    def exportable_count(self) -> int:
        """Number of records that pass the non-empty plate gate."""
        return sum(1 for record in self.records if record.is_exportable)


class BaseCrawler(ABC):
    """Abstract base class for marketplace crawls.

    Attributes:
        config: GlobalConfig instance for runtime configuration.
        browser: BrowserManager for page operations.
        store: CorrelationStore receiving every record update.
        monitor: CoverageMonitor counting per-stage outcomes.
        _semaphore: Bounds concurrent listing visits.

    Example:
        class MarketCrawler(BaseCrawler):
            async def discover_links(self, page: Page) -> list[str]:
                ...
    """

    def __init__(
        self,
        browser: BrowserManager,
        store: CorrelationStore | None = None,
        config: GlobalConfig | None = None,
    ) -> None:
        self.config = config or get_config()
        self.browser = browser
        self.store = store if store is not None else CorrelationStore()
        self.monitor = CoverageMonitor(self.config)
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)
        self._key_counter = itertools.count()
        self._seen_links: set[str] = set()
        self._tasks: list[asyncio.Task[None]] = []
        self._pages_scraped = 0
        self._started = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name used in logs."""
        ...

    @property
    @abstractmethod
    def start_url(self) -> str:
        """First index page of the crawl."""
        ...

    @abstractmethod
    async def discover_links(self, page: Page) -> list[str]:
        """Return absolute listing URLs found on an index page, in page order."""
        ...

    @abstractmethod
    async def get_next_page_url(self, page: Page) -> str | None:
        """Return the next index page URL, or None at the last page."""
        ...

    @abstractmethod
    async def visit_listing(self, key: str, url: str) -> None:
        """Visit one listing page and apply its events to record ``key``.

        Implementations must pass ``key`` explicitly to every callback they
        trigger. Exceptions are caught and logged by the caller.
        """
        ...

    async def crawl(self) -> CrawlResult:
        """Run the full crawl and return the final snapshot.

        Navigation failures on an index page end the traversal early but
        still wait for the listing visits already spawned.

        A crawler runs once: keys, seen links and the store belong to that
        run, so create a new crawler for another crawl.

        Raises:
            RuntimeError: If this crawler has already been started.
        """
        if self._started:
            raise RuntimeError(f"{self.name} has already crawled; create a new crawler")
        self._started = True

        log.info(
            "Starting crawl",
            crawler=self.name,
            start_url=self.start_url,
            pagination_limit=self.config.pagination_limit,
            max_concurrent_requests=self.config.max_concurrent_requests,
        )

        page = await self.browser.new_page()
        try:
            current_url: str | None = self.start_url

            while current_url is not None:
                if (
                    self.config.pagination_limit > 0
                    and self._pages_scraped >= self.config.pagination_limit
                ):
                    log.info(
                        "Pagination limit reached",
                        limit=self.config.pagination_limit,
                        pages_scraped=self._pages_scraped,
                    )
                    break

                try:
                    await self.browser.navigate(page, current_url)
                except NavigationError as exc:
                    log.error(
                        "Index page could not be fetched",
                        stage="index",
                        url=current_url,
                        reason=exc.message,
                    )
                    break

                self._pages_scraped += 1
                try:
                    links = await self.discover_links(page)
                except Exception as exc:
                    log.exception(
                        "Index page links could not be read",
                        stage="index",
                        url=current_url,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    break
                spawned = sum(1 for link in links if self._dispatch(link))

                log.info(
                    "Index page processed",
                    page_number=self._pages_scraped,
                    url=current_url,
                    links_found=len(links),
                    listings_spawned=spawned,
                )

                current_url = await self.get_next_page_url(page)

        finally:
            await page.close()
            # Crawl completes only when every listing visit has finished.
            await asyncio.gather(*self._tasks)

        self.monitor.record("integrity_violations", self.store.violations)
        self.monitor.evaluate()

        records = self.store.snapshot()
        result = CrawlResult(
            records=records,
            listings_discovered=len(records),
            pages_scraped=self._pages_scraped,
            source_url=self.start_url,
            coverage=self.monitor.get_summary(),
        )

        log.info(
            "Crawl complete",
            crawler=self.name,
            listings=result.listings_discovered,
            exportable=result.exportable_count,
            pages_scraped=result.pages_scraped,
        )
        return result

    def _dispatch(self, link: str) -> bool:
        """Assign a key to a newly discovered link and schedule its visit.

        Returns:
            False if the link was already discovered during this crawl.
        """
        if link in self._seen_links:
            log.debug("Duplicate listing link skipped", url=link)
            return False
        self._seen_links.add(link)

        key = str(next(self._key_counter))
        self.store.create(key, link)
        self.monitor.record("discovered")
        log.info("Listing discovered", key=key, url=link)

        self._tasks.append(asyncio.create_task(self._run_visit(key, link)))
        return True

    async def _run_visit(self, key: str, url: str) -> None:
        """Run one listing visit, containing every failure to that listing."""
        try:
            await self.visit_listing(key, url)
        except NavigationError as exc:
            self.monitor.record("visit_failed")
            log.warning(
                "Listing page could not be fetched",
                key=key,
                stage="listing",
                url=url,
                reason=exc.message,
                status_code=exc.status_code,
            )
        except Exception as exc:
            self.monitor.record("visit_failed")
            log.exception(
                "Listing visit failed",
                key=key,
                stage="listing",
                url=url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
