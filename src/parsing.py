"""Text extractors for listing page fragments.

Pure, best-effort helpers: given the text of a page fragment they return the
plate or price substring, or an empty string when nothing usable is found.
An empty result is a coverage gap, not an error.
"""

import re

# Swedish registration plates: three letters followed by three digits.
PLATE_PATTERN = re.compile(r"[a-zA-Z]{3}\d{3}")
NON_DIGITS = re.compile(r"[^0-9]+")


def extract_plate(text: str | None) -> str:
    """Return the first plate-shaped token in ``text``.

    Example:
        >>> extract_plate("Regnr: ABC123, mil: 4500")
        'ABC123'
    """
    if not text:
        return ""
    match = PLATE_PATTERN.search(text)
    return match.group(0) if match else ""


def extract_price(text: str | None, max_digits: int = 6) -> str:
    """Return the digits of a price fragment, capped at ``max_digits``.

    Thousands separators, currency and any trailing text are dropped, so
    ``"189 900 kr"`` becomes ``"189900"``.
    """
    if not text:
        return ""
    digits = NON_DIGITS.sub("", text)
    return digits[:max_digits]
