"""AutoSpread Entry Point.

Bootstrap and orchestration only; all functional code resides in /src.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Run the crawl and valuation pipeline
    4. Export the results and map fatal errors to exit codes

Usage:
    python main.py
"""

import asyncio
import sys
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, get_config
from src.browser import BrowserManager
from src.exceptions import (
    AutoSpreadError,
    ExportError,
    LoggingInitializationError,
)
from src.logger import configure_logging
from src.reporter import ReportGenerator
from src.scraper import ListingCrawler
from src.store import CorrelationStore
from src.valuation import ValuationClient


def _validate_startup_requirements(config: GlobalConfig) -> None:
    """Ensure the output directory can be created before crawling.

    Raises:
        SystemExit: If the output directory cannot be created.
    """
    try:
        config.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.critical(
            "Failed to create output directory",
            output_dir=str(config.output_dir),
            error=str(exc),
        )
        sys.exit(1)

    logger.debug(
        "Startup validation complete",
        output_dir=str(config.output_dir),
        base_url=config.base_url,
    )


async def _run_pipeline(config: GlobalConfig) -> int:
    """Crawl the marketplace, enrich every listing and export the table.

    Returns:
        Exit code (0 for success).
    """
    logger.info(
        "Pipeline execution started",
        app_name=config.app_name,
        environment=config.environment,
        base_url=config.base_url,
        valuation_api_url=config.valuation_api_url,
    )

    store = CorrelationStore()

    async with BrowserManager.create(config) as browser, ValuationClient.create(config) as valuation:
        crawler = ListingCrawler(browser, valuation, store, config)
        result = await crawler.crawl()

    logger.info(
        "Crawl finished, exporting",
        listings=result.listings_discovered,
        exportable=result.exportable_count,
        pages_scraped=result.pages_scraped,
    )

    reporter = ReportGenerator(config)
    reports = reporter.generate_all(result)

    logger.info(
        "Exports written",
        **{name: str(path) for name, path in reports.items()},
    )
    logger.info("Coverage summary", **result.coverage)

    logger.info("Pipeline execution completed successfully")
    return 0


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Log a fatal error and exit with status 1."""
    if isinstance(exc, ExportError):
        logger.critical(
            "Export failed - results were not saved",
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    if isinstance(exc, AutoSpreadError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main() -> int:
    """Application entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet - print to stderr
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    try:
        _validate_startup_requirements(config)
    except SystemExit:
        raise
    except Exception as exc:
        logger.exception("Startup validation failed", error=str(exc))
        return 1

    try:
        return asyncio.run(_run_pipeline(config))
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user (Ctrl+C)")
        return 130
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
