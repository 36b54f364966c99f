"""Export of crawl results as CSV, Excel and an HTML dashboard.

The CSV table is the primary output and is always written, even when no
listing qualified (header row only). Only records with a non-empty plate are
exported; the others are skipped silently.

The column schema is a fixed, ordered list of (column name, accessor) pairs,
so every column reads a typed field of ``ListingRecord`` directly. Absent
fields are written as empty cells.

Excel and dashboard exports are opt-in through GlobalConfig.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from config.settings import GlobalConfig, get_config
from src.exceptions import ExportError
from src.extractor import CrawlResult
from src.logger import get_logger
from src.store import ListingRecord

log = get_logger(__name__)

EXPORT_COLUMNS: list[tuple[str, Callable[[ListingRecord], str | None]]] = [
    ("Plate", lambda record: record.plate),
    ("Estimated", lambda record: record.estimated_price),
    ("Blocket", lambda record: record.listed_price),
    ("Diff", lambda record: record.price_differential),
    ("Link", lambda record: record.link),
    ("Model Id", lambda record: record.model_id),
    ("Distance", lambda record: record.distance_travelled),
    ("Year", lambda record: record.model_year),
    ("Reg Date", lambda record: record.registration_date),
]

HEADER: list[str] = [name for name, _ in EXPORT_COLUMNS]


def exportable_rows(records: Iterable[ListingRecord]) -> list[list[str]]:
    """Return one row per record with a non-empty plate, in column order."""
    return [
        [accessor(record) or "" for _, accessor in EXPORT_COLUMNS]
        for record in records
        if record.is_exportable
    ]


class ReportGenerator:
    """Writes the export files for a finished crawl.

    Attributes:
        config: GlobalConfig instance for output paths and export toggles.
        _timestamp: Generation timestamp used in secondary file names.

    Example:
        reporter = ReportGenerator()
        csv_path = reporter.generate_csv(result.records)
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self._timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")

    def _ensure_output_dir(self) -> Path:
        """Ensure output directory exists and return path.

        Raises:
            ExportError: If directory cannot be created.
        """
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
            return self.config.output_dir
        except OSError as exc:
            raise ExportError(
                export_type="output_directory",
                reason=f"Cannot create output directory: {exc}",
                output_path=str(self.config.output_dir),
            ) from exc

    def to_dataframe(self, records: Iterable[ListingRecord]) -> pd.DataFrame:
        """Build the export table; absent fields are empty strings."""
        return pd.DataFrame(exportable_rows(records), columns=HEADER)

    def generate_csv(self, records: Iterable[ListingRecord]) -> Path:
        """Write the export table as CSV.

        Raises:
            ExportError: If the file cannot be written.
        """
        output_dir = self._ensure_output_dir()
        output_path = output_dir / self.config.output_filename

        df = self.to_dataframe(records)
        log.info("Saving CSV export", output_path=str(output_path), rows=len(df))

        try:
            df.to_csv(output_path, index=False)
        except OSError as exc:
            raise ExportError(
                export_type="CSV",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

        log.info("CSV export saved", output_path=str(output_path), rows=len(df))
        return output_path

    def generate_excel(self, result: CrawlResult, filename: str | None = None) -> Path:
        """Write an Excel workbook with a Listings and a Summary sheet.

        Raises:
            ExportError: If the workbook cannot be written.
        """
        output_dir = self._ensure_output_dir()
        filename = filename or f"autospread_export_{self._timestamp}"
        output_path = output_dir / f"{filename}.xlsx"

        log.info("Generating Excel export", output_path=str(output_path))

        try:
            df = self.to_dataframe(result.records)
            summary_df = pd.DataFrame([self._summary(result, df)])

            with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name="Listings", index=False)
                summary_df.to_excel(writer, sheet_name="Summary", index=False)

        except Exception as exc:
            raise ExportError(
                export_type="Excel",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

        log.info("Excel export saved", output_path=str(output_path), rows=len(df))
        return output_path

    def _summary(self, result: CrawlResult, df: pd.DataFrame) -> dict[str, Any]:
        """Summary statistics for the Excel workbook."""
        diffs = pd.to_numeric(df["Diff"], errors="coerce").dropna()
        return {
            "Report Generated": datetime.now(UTC).isoformat(),
            "Source URL": result.source_url,
            "Pages Scraped": result.pages_scraped,
            "Listings Discovered": result.listings_discovered,
            "Exported Rows": len(df),
            "Valued Rows": len(diffs),
            "Mean Diff": f"{diffs.mean():.0f}" if len(diffs) > 0 else "N/A",
            "Max Diff": f"{diffs.max():.0f}" if len(diffs) > 0 else "N/A",
            "Plate Coverage": result.coverage.get("plate_coverage", "N/A"),
        }

    def generate_dashboard(self, result: CrawlResult, filename: str | None = None) -> Path:
        """Write a standalone HTML dashboard of price differentials.

        Raises:
            ExportError: If no row has a differential or writing fails.
        """
        output_dir = self._ensure_output_dir()
        filename = filename or f"autospread_dashboard_{self._timestamp}"
        output_path = output_dir / f"{filename}.html"

        df = self.to_dataframe(result.records)
        valued = pd.DataFrame(
            {
                "plate": df["Plate"],
                "listed": pd.to_numeric(df["Blocket"], errors="coerce"),
                "estimated": pd.to_numeric(df["Estimated"], errors="coerce"),
                "diff": pd.to_numeric(df["Diff"], errors="coerce"),
            }
        ).dropna()

        if len(valued) == 0:
            raise ExportError(
                export_type="Dashboard",
                reason="No valued listings available for visualization",
                output_path=str(output_path),
            )

        log.info("Generating HTML dashboard", output_path=str(output_path))

        try:
            fig = make_subplots(
                rows=1,
                cols=2,
                subplot_titles=("Price Differential", "Listed vs Estimated"),
                horizontal_spacing=0.1,
            )

            fig.add_trace(
                go.Histogram(
                    x=valued["diff"],
                    nbinsx=20,
                    name="Diff",
                    marker_color="#3498db",
                    hovertemplate="Diff: %{x}<br>Count: %{y}<extra></extra>",
                ),
                row=1,
                col=1,
            )

            fig.add_trace(
                go.Scatter(
                    x=valued["listed"],
                    y=valued["estimated"],
                    mode="markers",
                    text=valued["plate"],
                    name="Listings",
                    marker_color="#27ae60",
                    hovertemplate=(
                        "<b>%{text}</b><br>Listed: %{x}<br>Estimated: %{y}<extra></extra>"
                    ),
                ),
                row=1,
                col=2,
            )

            fig.update_layout(
                title={
                    "text": (
                        f"<b>AutoSpread Dashboard</b><br>"
                        f"<sup>Source: {result.source_url} | "
                        f"Valued: {len(valued)} | "
                        f"Generated: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M UTC')}</sup>"
                    ),
                    "x": 0.5,
                    "xanchor": "center",
                },
                showlegend=False,
                height=600,
                template="plotly_white",
            )
            fig.update_xaxes(title_text="Estimated - Listed", row=1, col=1)
            fig.update_yaxes(title_text="Count", row=1, col=1)
            fig.update_xaxes(title_text="Listed price", row=1, col=2)
            fig.update_yaxes(title_text="Estimated price", row=1, col=2)

            fig.write_html(str(output_path), include_plotlyjs=True, full_html=True)

        except Exception as exc:
            raise ExportError(
                export_type="Dashboard",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

        log.info("HTML dashboard saved", output_path=str(output_path), rows=len(valued))
        return output_path

    def generate_all(self, result: CrawlResult) -> dict[str, Path]:
        """Write the CSV plus every export enabled in the configuration.

        The dashboard is skipped with a warning when no listing was valued.
        """
        reports = {"csv": self.generate_csv(result.records)}

        if self.config.export_excel:
            reports["excel"] = self.generate_excel(result)

        if self.config.export_dashboard:
            if any(record.price_differential for record in result.records if record.is_exportable):
                reports["dashboard"] = self.generate_dashboard(result)
            else:
                log.warning("No valued listings - skipping dashboard export")

        return reports
