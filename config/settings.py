"""Global configuration management using pydantic-settings.

All runtime knobs (crawl target, selectors, valuation endpoint, export
options) are read from environment variables or a local ``.env`` file and
validated once at startup. ``get_config`` caches the instance so every
component shares the same view of the configuration.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment (development/staging/production).
        debug: Enable verbose debugging output.
        headless: Run Chromium without a visible window.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        base_url: Marketplace index page the crawl starts from.
        pagination_limit: Maximum index pages to traverse (0 = unlimited).
        max_concurrent_requests: Concurrent listing-page visits.
        request_timeout_ms: Page navigation timeout in milliseconds.
        valuation_api_url: Endpoint serving registry and valuation lookups.
        valuation_timeout_sec: Timeout for a single valuation API call.
        valuation_user_agent: User-Agent header sent to the valuation API.
        user_agents: User-agent pool for the browser context.
        price_max_digits: Listed prices are truncated to this many digits.
        css_selector_item_link: Listing link selector on the index page.
        css_selector_list_price: Price fragment selector on a listing page.
        css_selector_plate_aside: Aside fragment holding the plate.
        css_selector_next_page: Next index page link (empty disables paging).
        coverage_warning_threshold: Plate coverage ratio that triggers a warning.
        output_dir: Directory for exported tables.
        output_filename: File name of the CSV export.
        export_excel: Also write an Excel workbook.
        export_dashboard: Also write an HTML dashboard.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="AutoSpread", description="Application identifier")
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Crawl Target
    base_url: str = Field(
        default=(
            "https://www.blocket.se/hela_sverige?q=d4&cg=1020&w=3&st=s&ps=3&pe=19"
            "&mys=2014&mye=2015&ms=&me=26&cxpf=8&cxpt=&fu=&pl=&gb=&ca=15&is=1"
            "&l=0&md=th&sp=1&cb=41"
        ),
        description="Marketplace index page URL",
    )
    pagination_limit: int = Field(
        default=1, ge=0, description="Max index pages to traverse (0 = unlimited)"
    )

    # Crawl Resources
    max_concurrent_requests: int = Field(
        default=5, ge=1, le=20, description="Concurrent listing-page visits"
    )
    request_timeout_ms: int = Field(
        default=30000, ge=5000, le=120000, description="Page timeout in milliseconds"
    )

    # Valuation Service
    valuation_api_url: str = Field(
        default="https://www.bilpriser.se/api/",
        description="Registry and valuation API endpoint",
    )
    valuation_timeout_sec: float = Field(
        default=2.0, gt=0.0, le=30.0, description="Timeout per valuation call"
    )
    valuation_user_agent: str = Field(
        default="Test", min_length=1, description="User-Agent for valuation calls"
    )

    user_agents: list[str] = Field(
        default=[
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        ],
        min_length=1,
        description="Browser user-agent pool",
    )

    # Extraction
    price_max_digits: int = Field(
        default=6, ge=1, le=12, description="Listed price digit cap"
    )
    css_selector_item_link: str = Field(
        default="a.item-link", description="Listing link selector"
    )
    css_selector_list_price: str = Field(
        default="p.list_price", description="Listed price selector"
    )
    css_selector_plate_aside: str = Field(
        default="aside.body_aside", description="Aside fragment containing the plate"
    )
    css_selector_next_page: str = Field(
        default="", description="Next index page selector (empty = no pagination)"
    )

    # Coverage Monitoring
    coverage_warning_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Plate coverage warning ratio"
    )

    # Output Configuration
    output_dir: Path = Field(default=Path("output"), description="Export directory")
    output_filename: str = Field(
        default="result.csv", min_length=1, description="CSV export file name"
    )
    export_excel: bool = Field(default=False, description="Also export an Excel workbook")
    export_dashboard: bool = Field(default=False, description="Also export an HTML dashboard")

    @field_validator("log_dir", "output_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("base_url", "valuation_api_url")
    @classmethod
    def validate_http_url(cls, value: str) -> str:
        """Reject URLs that are not absolute http(s) URLs."""
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Expected an absolute http(s) URL, got '{value}'")
        return value

    @field_validator("valuation_api_url")
    @classmethod
    def ensure_trailing_slash(cls, value: str) -> str:
        """Ensure the API URL ends with a slash before the query string."""
        return value if value.endswith("/") else f"{value}/"


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
