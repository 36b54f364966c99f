"""Payload validation and crawl coverage monitoring.

This module implements:
- Pydantic schemas for the registry and valuation API responses
- CoverageMonitor, which counts per-stage outcomes of a crawl

A response that does not match its schema is treated exactly like a failed
call: the lookup returns a failed result and the dependent record fields stay
absent. The coverage monitor never halts the crawl; it only reports how many
listings reached each stage so that extraction gaps are visible in the logs.
"""

from collections import Counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import GlobalConfig, get_config
from src.logger import get_logger

log = get_logger(__name__)


class VehicleInfo(BaseModel):
    """Vehicle metadata returned by the registry lookup.

    Attributes:
        model_id: Valuation service model identifier.
        estimated_distance: Estimated distance travelled (in mil).
        model_year: Model year.
        registration_date: First registration date.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    model_id: str = Field(..., min_length=1)
    estimated_distance: int = Field(..., ge=0)
    model_year: str = Field(..., min_length=1)
    registration_date: str | None = None

    @property
    def distance(self) -> str:
        """Distance as the string sent back to the valuation lookup."""
        return str(self.estimated_distance)


class RegistryPayload(BaseModel):
    """Registry lookup response: ``{"vehicle": {...}}``."""

    vehicle: VehicleInfo


class ValuationPayload(BaseModel):
    """Valuation lookup response: ``{"valued_dealer_price": "..."}``."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    valued_dealer_price: str = Field(..., min_length=1)

    @field_validator("valued_dealer_price")
    @classmethod
    def require_digits(cls, value: str) -> str:
        """Normalise whitespace and reject non-integer amounts.

        Raises:
            ValueError: If the price contains anything but digits.
        """
        cleaned = "".join(value.split())
        if not cleaned.isdigit():
            raise ValueError(f"Cannot parse dealer price from '{value}'")
        return cleaned


class CoverageMonitor:
    """Per-stage outcome counters for one crawl.

    Stages:
        discovered: listing links turned into records.
        visit_failed: listing pages that could not be fetched.
        price_found / price_missing: listed price extraction.
        plate_found / plate_missing: plate extraction.
        registry_failed: registry lookups that failed.
        valuation_failed: valuation lookups that failed.
        enriched: records that received an estimated price.
        integrity_violations: correlation events dropped by the store.

    Example:
        monitor = CoverageMonitor()
        monitor.record("discovered")
        monitor.record("plate_found")
        monitor.evaluate()
    """

    STAGES: tuple[str, ...] = (
        "discovered",
        "visit_failed",
        "price_found",
        "price_missing",
        "plate_found",
        "plate_missing",
        "registry_failed",
        "valuation_failed",
        "enriched",
        "integrity_violations",
    )

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self._counts: Counter[str] = Counter()

    def record(self, stage: str, count: int = 1) -> None:
        """Increment the counter for ``stage``.

        Raises:
            ValueError: If ``stage`` is not a known stage name.
        """
        if stage not in self.STAGES:
            raise ValueError(f"Unknown coverage stage '{stage}'")
        self._counts[stage] += count

    def count(self, stage: str) -> int:
        return self._counts[stage]

    @property
    def plate_coverage(self) -> float:
        """Share of discovered listings where a plate was found."""
        discovered = self._counts["discovered"]
        if discovered == 0:
            return 0.0
        return self._counts["plate_found"] / discovered

    def evaluate(self) -> None:
        """Log the coverage outcome, warning when plate coverage is low."""
        discovered = self._counts["discovered"]
        if discovered == 0:
            log.warning("Coverage evaluated with no discovered listings")
            return

        coverage = self.plate_coverage
        threshold = self.config.coverage_warning_threshold

        log.info(
            "Crawl coverage evaluated",
            discovered=discovered,
            plate_coverage=f"{coverage:.1%}",
            threshold=f"{threshold:.1%}",
        )

        if coverage + 1e-9 < threshold:
            log.warning(
                "Plate coverage below threshold, selectors may have drifted",
                plate_coverage=f"{coverage:.1%}",
                threshold=f"{threshold:.1%}",
                plate_missing=self._counts["plate_missing"],
                visit_failed=self._counts["visit_failed"],
            )

    def get_summary(self) -> dict[str, Any]:
        """Return every stage counter plus the plate coverage ratio."""
        summary: dict[str, Any] = {stage: self._counts[stage] for stage in self.STAGES}
        summary["plate_coverage"] = f"{self.plate_coverage:.1%}"
        return summary
