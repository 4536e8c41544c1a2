"""
HTML parser for rendered product pages.

Wraps the lxml-backed BeautifulSoup tree together with the structured data
sources the extractor falls back on: JSON-LD, Open Graph meta tags, embedded
window state objects and the breadcrumb trail.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


@dataclass
class ParsedPage:
    """A parsed product document plus its structured data."""

    soup: BeautifulSoup
    url: str = ""
    json_ld: list[dict] = field(default_factory=list)
    og_tags: dict[str, str] = field(default_factory=dict)
    embedded_json: dict[str, Any] = field(default_factory=dict)
    breadcrumbs: list[str] = field(default_factory=list)  # from structured data only

    def json_ld_product(self) -> dict | None:
        """Return the first JSON-LD block typed as a Product, if any."""
        for block in self.json_ld:
            block_type = block.get("@type")
            if block_type == "Product" or (isinstance(block_type, list) and "Product" in block_type):
                return block
        return None


def parse_html(html: str, url: str = "") -> ParsedPage:
    """Parse an HTML page and collect its structured data sources."""
    soup = BeautifulSoup(html, "lxml")
    json_ld = _extract_json_ld(soup)
    return ParsedPage(
        soup=soup,
        url=url,
        json_ld=json_ld,
        og_tags=_extract_og_tags(soup),
        embedded_json=_extract_window_globals(soup),
        breadcrumbs=_extract_breadcrumbs(json_ld),
    )


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------


def _extract_json_ld(soup: BeautifulSoup) -> list[dict]:
    """Extract all JSON-LD blocks from <script type="application/ld+json"> tags."""
    results: list[dict] = []
    for tag in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = tag.string
        if not text:
            continue
        try:
            data = json.loads(text)
            # Flatten arrays and @graph wrappers
            if isinstance(data, dict) and isinstance(data.get("@graph"), list):
                data = data["@graph"]
            if isinstance(data, list):
                results.extend(d for d in data if isinstance(d, dict))
            elif isinstance(data, dict):
                results.append(data)
        except (json.JSONDecodeError, TypeError):
            logger.debug("Skipping malformed JSON-LD block")
    return results


# ---------------------------------------------------------------------------
# Open Graph meta tags
# ---------------------------------------------------------------------------


def _extract_og_tags(soup: BeautifulSoup) -> dict[str, str]:
    """Extract Open Graph and product meta tags. Handles both property= and name= attributes."""
    tags: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        prop = meta.get("property", "") or meta.get("name", "")
        if not isinstance(prop, str):
            continue
        content = meta.get("content", "")
        if not content:
            continue
        if prop.startswith("og:"):
            tags[prop[3:]] = content
        elif prop.startswith("product:"):
            # product:price:amount -> price:amount
            key = prop[8:]
            if key not in tags:
                tags[key] = content
    return tags


# ---------------------------------------------------------------------------
# Embedded window state
# ---------------------------------------------------------------------------

_WINDOW_GLOBAL_RE = re.compile(r"window\.(__[A-Z][A-Z0-9_]*__)\s*=\s*")


def _extract_window_globals(soup: BeautifulSoup) -> dict[str, Any]:
    """Extract window.__X__ = {...} assignments from inline script tags."""
    results: dict[str, Any] = {}
    for tag in soup.find_all("script"):
        if tag.get("src") or tag.get("type") in ("application/json", "text/json", "application/ld+json"):
            continue
        text = tag.string
        if not text:
            continue

        for match in _WINDOW_GLOBAL_RE.finditer(text):
            var_name = match.group(1)
            start = match.end()
            while start < len(text) and text[start] in " \t\n\r":
                start += 1

            json_str = _brace_match(text, start)
            if not json_str:
                continue
            try:
                results[var_name] = json.loads(json_str)
            except (json.JSONDecodeError, TypeError):
                logger.debug(f"Skipping malformed JSON for {var_name}")
    return results


def _brace_match(text: str, start: int) -> str | None:
    """Extract a balanced JSON object/array from text starting at position start.

    Handles nested braces/brackets and string literals with escaped quotes.
    """
    if start >= len(text) or text[start] not in ("{", "["):
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        c = text[i]
        if escape_next:
            escape_next = False
            continue
        if c == "\\" and in_string:
            escape_next = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c in ("{", "["):
            depth += 1
        elif c in ("}", "]"):
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


# ---------------------------------------------------------------------------
# Breadcrumbs
# ---------------------------------------------------------------------------


def _extract_breadcrumbs(json_ld: list[dict]) -> list[str]:
    """Ordered breadcrumb names from a JSON-LD BreadcrumbList."""
    for block in json_ld:
        if block.get("@type") != "BreadcrumbList":
            continue
        items = block.get("itemListElement", [])
        if not isinstance(items, list):
            continue
        items = [i for i in items if isinstance(i, dict)]
        sorted_items = sorted(items, key=lambda x: x.get("position", 0))
        names = []
        for item in sorted_items:
            name = item.get("name")
            if not name and isinstance(item.get("item"), dict):
                name = item["item"].get("name")
            if name:
                names.append(str(name).strip())
        if names:
            return names
    return []


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def best_from_srcset(srcset: str | None) -> str | None:
    """Parse an srcset attribute and return the highest-resolution URL.

    Handles both width descriptors ('800w') and pixel-density descriptors ('2x').
    """
    if not srcset or not isinstance(srcset, str):
        return None

    best_url: str | None = None
    best_value: float = 0

    for entry in srcset.split(","):
        parts = entry.strip().split()
        if not parts or not parts[0]:
            continue
        url = parts[0]
        value: float = 1
        if len(parts) >= 2:
            descriptor = parts[-1].strip().lower()
            try:
                value = float(descriptor[:-1]) if descriptor[-1:] in ("w", "x") else 0
            except ValueError:
                value = 0
        if value >= best_value:
            best_url = url
            best_value = value

    return best_url


def normalize_url(url: str) -> str:
    """Normalize a URL: add https: to protocol-relative URLs."""
    url = url.strip()
    if url.startswith("//"):
        return "https:" + url
    return url
