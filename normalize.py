"""
Price and text normalization helpers.

Pure string transforms shared by the extractor and the variant resolver.
Locale-agnostic: nothing here depends on the process locale.
"""

import re

# Currency markers stripped before parsing a price
_CURRENCY_RE = re.compile(r"(?i)(tl|try|usd|eur|gbp|₺|\$|€|£)")
_WHITESPACE_RE = re.compile(r"\s+")
# "1.299" / "12.345.678": dot used only as a thousands separator
_DOT_THOUSANDS_RE = re.compile(r"^\d{1,3}(\.\d{3})+$")
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")
# Count multipliers as rendered on the site ("1,2B" favori = 1200)
_COUNT_SUFFIXES = {"b": 1_000, "k": 1_000, "bin": 1_000, "m": 1_000_000, "mn": 1_000_000}
_COUNT_RE = re.compile(r"(?i)(\d+(?:[.,]\d+)*)\s*(bin|mn|b|k|m)?\b")


def clean_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace (newlines, tabs, NBSP) into single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.replace("\xa0", " ")).strip()


def slug(text: str | None) -> str:
    """Lowercase, trim, and hyphenate whitespace runs: ' XL Long ' -> 'xl-long'."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub("-", text.strip().lower())


def parse_price(raw: str | None) -> float:
    """Parse a locale-formatted price string into a float in major units.

    "342,39 TL" -> 342.39, "1.299,99 TL" -> 1299.99, "1.299 TL" -> 1299.0,
    "$1,299.99" -> 1299.99. Unparsable input returns 0.0.
    """
    if not raw:
        return 0.0
    text = _CURRENCY_RE.sub("", raw)
    text = _WHITESPACE_RE.sub("", text.replace("\xa0", ""))
    match = _NUMBER_RE.search(text)
    if not match:
        return 0.0
    number = match.group(0)

    has_dot = "." in number
    has_comma = "," in number
    if has_dot and has_comma:
        # Right-most separator is the decimal separator
        if number.rfind(",") > number.rfind("."):
            number = number.replace(".", "").replace(",", ".")
        else:
            number = number.replace(",", "")
    elif has_comma:
        # A single comma is the decimal separator; several are thousands groups
        if number.count(",") > 1:
            number = number.replace(",", "")
        else:
            number = number.replace(",", ".")
    elif has_dot and _DOT_THOUSANDS_RE.match(number):
        number = number.replace(".", "")

    try:
        return round(float(number), 2)
    except ValueError:
        return 0.0


def parse_count(text: str | None) -> int:
    """Parse a display count: "103 favori" -> 103, "1,2B" -> 1200, "2.345" -> 2345."""
    if not text:
        return 0
    match = _COUNT_RE.search(clean_whitespace(text))
    if not match:
        return 0
    number, suffix = match.group(1), (match.group(2) or "").lower()
    if suffix:
        try:
            return int(float(number.replace(",", ".")) * _COUNT_SUFFIXES[suffix])
        except ValueError:
            return 0
    return int(number.replace(".", "").replace(",", ""))
