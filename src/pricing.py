"""Derived price computation."""

from src.logger import get_logger

log = get_logger(__name__)


def compute_differential(listed: str | None, estimated: str | None) -> str | None:
    """Return ``estimated - listed`` as an integer string.

    Both prices must be present and numeric; otherwise the differential is
    left absent (None) rather than computed from partial input.

    Args:
        listed: Listed price from the marketplace, as a numeric string.
        estimated: Estimated price from the valuation service.

    Returns:
        The differential, e.g. ``"16500"`` for listed ``"185000"`` and
        estimated ``"201500"``, or None.
    """
    if not listed or not estimated:
        return None

    try:
        difference = int(estimated.strip()) - int(listed.strip())
    except ValueError:
        log.debug(
            "Differential skipped, non-numeric price",
            listed=listed,
            estimated=estimated,
        )
        return None

    return str(difference)
