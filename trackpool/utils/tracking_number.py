import re

MIN_TRACKING_LENGTH = 20
MAX_TRACKING_LENGTH = 22
# USPS display grouping for 22-digit numbers: 4-4-4-4-4-2
DISPLAY_GROUPS = (4, 4, 4, 4, 4, 2)

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_tracking_number(raw: str) -> str:
    """Strip every non-digit character from a candidate tracking number."""
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def is_valid_tracking_number(normalized: str) -> bool:
    """
    Cheap length filter for a normalized tracking number.

    Args:
        normalized (str): Output of ``normalize_tracking_number``.

    Returns:
        bool: True if it is all ASCII digits and 20 to 22 characters long.
    """
    if not normalized or not (normalized.isascii() and normalized.isdigit()):
        return False
    return MIN_TRACKING_LENGTH <= len(normalized) <= MAX_TRACKING_LENGTH


def format_tracking_number(number: str) -> str:
    """
    Format a tracking number for humans.

    22-digit numbers are grouped USPS style, e.g.
    ``9405536207565275376438`` -> ``9405 5362 0756 5275 3764 38``.
    Any other length is returned unchanged.
    """
    if number is None:
        return number
    cleaned = re.sub(r"\s", "", number)
    if len(cleaned) != sum(DISPLAY_GROUPS):
        return number

    parts = []
    start = 0
    for size in DISPLAY_GROUPS:
        parts.append(cleaned[start:start + size])
        start += size
    return " ".join(parts)
