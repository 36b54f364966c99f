"""Pytest configuration and shared fixtures for the AutoSpread test suite.

Guarantees:
- No external network requests (Playwright mocked, httpx on MockTransport)
- Isolated configuration (the GlobalConfig singleton is rebuilt per test)
- All file output goes to tmp_path

Factory fixtures build index pages, listing pages and valuation API
handlers so that each test only states the scenario it cares about.
"""

import json
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """Provide isolated GlobalConfig with safe test defaults.

    Clears the lru_cache singleton before and after the test so that
    environment overrides never leak between tests.
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    output_dir = tmp_path / "output"
    log_dir.mkdir()
    output_dir.mkdir()

    test_env = {
        "APP_NAME": "AutoSpread-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "BASE_URL": "https://market.example.com/bilar?q=d4",
        "PAGINATION_LIMIT": "1",
        "MAX_CONCURRENT_REQUESTS": "3",
        "REQUEST_TIMEOUT_MS": "5000",
        "VALUATION_API_URL": "https://valuation.example.com/api/",
        "VALUATION_TIMEOUT_SEC": "2.0",
        "VALUATION_USER_AGENT": "Test",
        "OUTPUT_DIR": str(output_dir),
        "OUTPUT_FILENAME": "result.csv",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


@pytest.fixture
def mock_playwright(mocker: MockerFixture) -> tuple[MagicMock, MagicMock, MagicMock, MagicMock]:
    """Patch async_playwright with a mock chain for the start() pattern.

    Returns:
        Tuple of (async_playwright_instance, playwright_mock, browser_mock, context_mock)
    """
    context_mock = MagicMock()
    context_mock.new_page = AsyncMock()
    context_mock.close = AsyncMock()

    browser_mock = MagicMock()
    browser_mock.new_context = AsyncMock(return_value=context_mock)
    browser_mock.close = AsyncMock()

    playwright_mock = MagicMock()
    playwright_mock.chromium.launch = AsyncMock(return_value=browser_mock)
    playwright_mock.stop = AsyncMock()

    async_playwright_instance = MagicMock()
    async_playwright_instance.start = AsyncMock(return_value=playwright_mock)
    mocker.patch("src.browser.async_playwright", return_value=async_playwright_instance)

    return async_playwright_instance, playwright_mock, browser_mock, context_mock


def _text_locator(text: str | Exception | None) -> MagicMock:
    """Locator whose first match has ``text``, or no match when text is None.

    An exception instance is raised by every read instead.
    """
    locator = MagicMock()
    if isinstance(text, Exception):
        locator.count = AsyncMock(side_effect=text)
        locator.first.inner_text = AsyncMock(side_effect=text)
        locator.first.get_attribute = AsyncMock(side_effect=text)
        return locator

    locator.count = AsyncMock(return_value=0 if text is None else 1)
    locator.first.inner_text = AsyncMock(return_value=text or "")
    locator.first.get_attribute = AsyncMock(return_value=text)
    locator.all = AsyncMock(return_value=[])
    return locator


def _links_locator(hrefs: list[str | Exception]) -> MagicMock:
    """Locator matching one anchor element per href.

    An exception instance in ``hrefs`` is raised when that element's href
    is read.
    """
    elements = []
    for href in hrefs:
        element = MagicMock()
        if isinstance(href, Exception):
            element.get_attribute = AsyncMock(side_effect=href)
        else:
            element.get_attribute = AsyncMock(return_value=href)
        elements.append(element)

    locator = MagicMock()
    locator.count = AsyncMock(return_value=len(elements))
    locator.all = AsyncMock(return_value=elements)
    return locator


@pytest.fixture
def site_factory() -> Callable[..., Callable[[], MagicMock]]:
    """Factory for a fake marketplace served through mocked Playwright pages.

    Args (of the returned factory):
        index: index URL -> list of listing hrefs on that page (an exception
            instance stands for a link whose href cannot be read).
        listings: absolute listing URL -> dict with optional ``price`` and
            ``aside`` fragment texts (None = element missing, an exception
            instance = read fails) and ``status``.
        next_pages: index URL -> href of the next index page.

    Returns:
        A ``new_page`` callable; every page answers locators according to the
        URL it last navigated to, so visit order does not matter.
    """

    def _create(
        index: dict[str, list[str]],
        listings: dict[str, dict[str, Any]] | None = None,
        next_pages: dict[str, str] | None = None,
    ) -> Callable[[], MagicMock]:
        listings = listings or {}
        next_pages = next_pages or {}

        def new_page() -> MagicMock:
            page = MagicMock()
            page.url = "about:blank"
            page.close = AsyncMock()

            async def goto(url: str, wait_until: str | None = None) -> MagicMock:
                page.url = url
                status = listings.get(url, {}).get("status", 200)
                return MagicMock(status=status)

            def locator(selector: str) -> MagicMock:
                if page.url in index:
                    if "item-link" in selector:
                        return _links_locator(index[page.url])
                    return _text_locator(next_pages.get(page.url))

                listing = listings.get(page.url, {})
                if "list_price" in selector:
                    return _text_locator(listing.get("price"))
                if "body_aside" in selector:
                    return _text_locator(listing.get("aside"))
                return _text_locator(None)

            page.goto = AsyncMock(side_effect=goto)
            page.locator = locator
            return page

        return new_page

    return _create


@pytest.fixture
def valuation_handler_factory() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    """Factory for httpx.MockTransport handlers emulating the valuation API.

    Args (of the returned factory):
        vehicles: plate -> registry ``vehicle`` dict.
        prices: plate -> ``valued_dealer_price``.
        registry_error: exception to raise for every registry call.
        valuation_status: HTTP status for valuation calls.

    The handler records every request in its ``requests`` attribute.
    """

    def _create(
        vehicles: dict[str, dict[str, Any]] | None = None,
        prices: dict[str, Any] | None = None,
        registry_error: Exception | None = None,
        valuation_status: int = 200,
    ) -> Callable[[httpx.Request], httpx.Response]:
        vehicles = vehicles or {}
        prices = prices or {}
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            action = request.url.params.get("bpapi_action")
            plate = request.url.params.get("regnr", "")

            if action == "get_vehicle_registry_se":
                if registry_error is not None:
                    raise registry_error
                if plate not in vehicles:
                    return httpx.Response(404, json={"error": "not found"})
                return httpx.Response(200, json={"vehicle": vehicles[plate]})

            if action == "get_values":
                if valuation_status != 200:
                    return httpx.Response(valuation_status, text="error")
                if plate not in prices:
                    return httpx.Response(200, content=json.dumps({}).encode())
                return httpx.Response(200, json={"valued_dealer_price": prices[plate]})

            return httpx.Response(400, text="unknown action")

        handler.requests = seen  # type: ignore[attr-defined]
        return handler

    return _create


@pytest.fixture
def sample_vehicle() -> dict[str, Any]:
    """Registry payload for a typical vehicle."""
    return {
        "model_id": "31337",
        "estimated_distance": 4500,
        "model_year": "2015",
        "registration_date": "2014-11-20",
    }


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
