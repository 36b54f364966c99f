"""Correlation store for listing records.

The store is the only shared mutable state of a crawl. Every record is keyed
by the identifier assigned when its link was discovered, and every later event
for that listing (price, plate, registry data, valuation) is applied through
``update`` or ``update_fields`` using that key.

Fields are write-once: the check for "already set" and the write happen under
the same lock, so two racing updates for the same field leave exactly one
value behind. Records are frozen pydantic models; callers receive immutable
views and can only change state through the store.
"""

import threading
from collections.abc import Mapping
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from src.exceptions import DuplicateKeyError, UnknownKeyError
from src.logger import get_logger

log = get_logger(__name__)


class RecordField(StrEnum):
    """Updatable fields of a ListingRecord."""

    LISTED_PRICE = "listed_price"
    ESTIMATED_PRICE = "estimated_price"
    PRICE_DIFFERENTIAL = "price_differential"
    PLATE = "plate"
    MODEL_ID = "model_id"
    DISTANCE_TRAVELLED = "distance_travelled"
    MODEL_YEAR = "model_year"
    REGISTRATION_DATE = "registration_date"


# Registry metadata is written as one group.
VEHICLE_FIELDS: tuple[RecordField, ...] = (
    RecordField.MODEL_ID,
    RecordField.DISTANCE_TRAVELLED,
    RecordField.MODEL_YEAR,
    RecordField.REGISTRATION_DATE,
)


class ListingRecord(BaseModel):
    """One discovered listing.

    ``key`` and ``link`` are fixed at creation. Every other field starts
    absent (None) and is set at most once.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    link: str
    listed_price: str | None = None
    estimated_price: str | None = None
    price_differential: str | None = None
    plate: str | None = None
    model_id: str | None = None
    distance_travelled: str | None = None
    model_year: str | None = None
    registration_date: str | None = None

    @property
    def is_exportable(self) -> bool:
        """True when the record carries a non-empty plate."""
        return bool(self.plate)


class CorrelationStore:
    """Keyed accumulator of listing records with write-once updates.

    All methods are safe to call from concurrent callbacks. None of them
    block on I/O; the lock is held only for the dictionary operation.

    Attributes:
        violations: Number of rejected overwrites and unknown-key updates.

    Example:
        store = CorrelationStore()
        store.create("0", "https://example.com/item/0")
        store.update("0", RecordField.PLATE, "ABC123")
        store.update("0", RecordField.PLATE, "XYZ999")  # rejected, returns False
    """

    def __init__(self) -> None:
        self._records: dict[str, ListingRecord] = {}
        self._lock = threading.Lock()
        self._violations = 0

    def create(self, key: str, link: str) -> ListingRecord:
        """Insert a new record with only ``key`` and ``link`` set.

        Raises:
            DuplicateKeyError: If ``key`` is already in use.
        """
        with self._lock:
            if key in self._records:
                raise DuplicateKeyError(key)
            record = ListingRecord(key=key, link=link)
            self._records[key] = record

        log.debug("Record created", key=key, link=link)
        return record

    def update(self, key: str, field: RecordField, value: str | None) -> bool:
        """Set a single field if it is still absent.

        Returns:
            True if the value was written, False if it was empty or the
            field was already set.

        Raises:
            UnknownKeyError: If no record exists for ``key``.
        """
        return self.update_fields(key, {field: value})

    def update_fields(self, key: str, values: Mapping[RecordField, str | None]) -> bool:
        """Atomically set a group of fields that are all still absent.

        Empty values are skipped. If any non-empty target field is already
        set, nothing is written.

        Returns:
            True if at least one value was written.

        Raises:
            UnknownKeyError: If no record exists for ``key``.
        """
        pending = {RecordField(field): value for field, value in values.items() if value}
        if not pending:
            return False

        unknown: UnknownKeyError | None = None
        conflicts: list[str] = []

        with self._lock:
            record = self._records.get(key)
            if record is None:
                self._violations += 1
                unknown = UnknownKeyError(key, [str(field) for field in pending])
            else:
                conflicts = [
                    str(field) for field in pending if getattr(record, field) is not None
                ]
                if conflicts:
                    self._violations += 1
                else:
                    self._records[key] = record.model_copy(
                        update={str(field): value for field, value in pending.items()}
                    )

        if unknown is not None:
            log.warning(
                "Data integrity: update for unknown record dropped",
                key=key,
                fields=unknown.fields,
            )
            raise unknown

        if conflicts:
            log.warning(
                "Data integrity: write-once field already set, update rejected",
                key=key,
                fields=conflicts,
            )
            return False

        return True

    def get(self, key: str) -> ListingRecord | None:
        """Return the current view of a record, or None if it does not exist."""
        with self._lock:
            return self._records.get(key)

    def snapshot(self) -> list[ListingRecord]:
        """Return every record in discovery order.

        Intended to be called once the crawl has completed.
        """
        with self._lock:
            return list(self._records.values())

    @property
    def violations(self) -> int:
        """Count of rejected overwrites and unknown-key updates."""
        return self._violations

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records
