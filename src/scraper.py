"""Marketplace crawler: listing extraction and valuation enrichment.

For every listing link found on the index page, ``ListingCrawler`` opens
the listing in its own page, reads the price fragment and the aside fragment,
and turns them into record updates:

    price text  -> listed_price  -> differential (when estimate is known)
    aside text  -> plate         -> registry lookup -> vehicle metadata
                                 -> valuation lookup -> estimated_price
                                 -> differential (when listed price is known)

Every callback receives the listing's key as an argument. Failures at any
stage are logged with key, stage and URL and leave the dependent fields
absent; they never abort the crawl.

CSS selectors are externalized to GlobalConfig so that markup changes can be
handled without code changes.
"""

from collections.abc import Mapping
from urllib.parse import urljoin

from playwright.async_api import Page

from config.settings import GlobalConfig
from src.browser import BrowserManager
from src.exceptions import UnknownKeyError
from src.extractor import BaseCrawler
from src.logger import get_logger
from src.parsing import extract_plate, extract_price
from src.pricing import compute_differential
from src.store import CorrelationStore, RecordField
from src.valuation import ValuationClient

log = get_logger(__name__)


class ListingCrawler(BaseCrawler):
    """Concrete crawler for the vehicle marketplace.

    Attributes:
        valuation: ValuationClient used for registry and price lookups.

    Example:
        async with BrowserManager.create() as browser, ValuationClient.create() as client:
            crawler = ListingCrawler(browser, client)
            result = await crawler.crawl()
    """

    def __init__(
        self,
        browser: BrowserManager,
        valuation: ValuationClient,
        store: CorrelationStore | None = None,
        config: GlobalConfig | None = None,
    ) -> None:
        super().__init__(browser, store, config)
        self.valuation = valuation

    @property
    def name(self) -> str:
        return "ListingCrawler"

    @property
    def start_url(self) -> str:
        return self.config.base_url

    async def discover_links(self, page: Page) -> list[str]:
        """Collect absolute listing URLs from the index page."""
        selector = self.config.css_selector_item_link
        links: list[str] = []

        for position, element in enumerate(await page.locator(selector).all()):
            try:
                href = await element.get_attribute("href")
            except Exception as exc:
                log.warning(
                    "Listing link could not be read, skipped",
                    stage="index",
                    url=page.url,
                    position=position,
                    error=str(exc),
                )
                continue
            if not href:
                continue
            links.append(urljoin(page.url, href))

        if not links:
            log.warning("No listing links found", selector=selector, url=page.url)

        return links

    async def get_next_page_url(self, page: Page) -> str | None:
        """Return the next index page, or None when pagination is disabled."""
        selector = self.config.css_selector_next_page
        if not selector:
            return None

        try:
            next_link = page.locator(selector)
            if await next_link.count() == 0:
                log.debug("No next page link found - reached last page")
                return None

            relative_url = await next_link.first.get_attribute("href")
            if not relative_url:
                return None

            return urljoin(page.url, relative_url)

        except Exception as exc:
            log.warning("Error detecting next page", url=page.url, error=str(exc))
            return None

    async def visit_listing(self, key: str, url: str) -> None:
        """Fetch one listing page and apply its price and plate events to ``key``.

        The price event fires as soon as its fragment is read, so a failure
        reading the aside does not lose the listed price.
        """
        async with self._semaphore, self.browser.visit(url) as page:
            price_text = await self._read_text(page, self.config.css_selector_list_price)
            self.on_price(key, url, price_text)
            aside_text = await self._read_text(page, self.config.css_selector_plate_aside)

        await self.on_plate(key, url, aside_text)

    def on_price(self, key: str, url: str, text: str | None) -> None:
        """Record the listed price found on a listing page."""
        price = extract_price(text, self.config.price_max_digits)
        if not price:
            self.monitor.record("price_missing")
            log.info("No listed price found", key=key, stage="price", url=url)
            return

        self.monitor.record("price_found")
        log.info("Listed price found", key=key, listed_price=price)
        if self._apply(key, url, {RecordField.LISTED_PRICE: price}):
            self.refresh_differential(key, url)

    async def on_plate(self, key: str, url: str, text: str | None) -> None:
        """Record the plate and enrich the record through the valuation API.

        The valuation lookup is skipped when the registry lookup fails, and
        neither runs if the plate update was rejected.
        """
        plate = extract_plate(text)
        if not plate:
            self.monitor.record("plate_missing")
            log.info("No plate found", key=key, stage="plate", url=url)
            return

        self.monitor.record("plate_found")
        log.info("Plate found", key=key, plate=plate)
        if not self._apply(key, url, {RecordField.PLATE: plate}):
            return

        registry = await self.valuation.lookup_vehicle(plate)
        if not registry.ok:
            self.monitor.record("registry_failed")
            log.warning(
                "Registry lookup failed, enrichment skipped",
                key=key,
                stage="registry",
                url=url,
                plate=plate,
                reason=registry.error,
            )
            return

        vehicle = registry.value
        self._apply(
            key,
            url,
            {
                RecordField.MODEL_ID: vehicle.model_id,
                RecordField.DISTANCE_TRAVELLED: vehicle.distance,
                RecordField.MODEL_YEAR: vehicle.model_year,
                RecordField.REGISTRATION_DATE: vehicle.registration_date,
            },
        )

        valuation = await self.valuation.lookup_price(plate, vehicle)
        if not valuation.ok:
            self.monitor.record("valuation_failed")
            log.warning(
                "Valuation lookup failed",
                key=key,
                stage="valuation",
                url=url,
                plate=plate,
                reason=valuation.error,
            )
            return

        if self._apply(key, url, {RecordField.ESTIMATED_PRICE: valuation.value}):
            self.monitor.record("enriched")
            self.refresh_differential(key, url)

    def refresh_differential(self, key: str, url: str) -> None:
        """Write the price differential once both prices are present."""
        record = self.store.get(key)
        if record is None or record.price_differential is not None:
            return

        differential = compute_differential(record.listed_price, record.estimated_price)
        if differential is None:
            return

        if self._apply(key, url, {RecordField.PRICE_DIFFERENTIAL: differential}):
            log.info("Price differential computed", key=key, differential=differential)

    def _apply(self, key: str, url: str, values: Mapping[RecordField, str | None]) -> bool:
        """Apply an update to the store, logging correlation violations."""
        try:
            return self.store.update_fields(key, values)
        except UnknownKeyError as exc:
            log.warning(
                "Event dropped for unknown record",
                key=key,
                stage="correlation",
                url=url,
                fields=exc.fields,
            )
            return False

    async def _read_text(self, page: Page, selector: str) -> str | None:
        """Return the inner text of the first element matching ``selector``."""
        locator = page.locator(selector)
        if await locator.count() == 0:
            return None
        return await locator.first.inner_text()
