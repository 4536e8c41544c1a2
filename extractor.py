"""
Product field extractor: rendered product page -> Product.

Each field is located by an ordered list of CSS selectors; the first
non-empty match wins. Structured data (JSON-LD, Open Graph, embedded window
state) is consulted only after every selector misses. A missing optional field
falls back to its default; a missing name or brand raises MissingRequiredField.

Pure: no I/O, no mutation of the parsed page.
"""

import logging
import re
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

import config
from errors import MissingRequiredField
from models import Product, ProductAttribute
from normalize import clean_whitespace, parse_count, parse_price, slug
from parser import ParsedPage, best_from_srcset, normalize_url

logger = logging.getLogger(__name__)

# ===== Selector fallbacks =====

FIELD_SELECTORS: dict[str, list[str]] = {
    "name": [
        "h1.pr-new-br span",
        "h1.product-title span",
        "h1[data-testid=product-title]",
        "h1.pr-new-br",
        "h1.product-name",
    ],
    "brand": [
        "h1.pr-new-br a",
        "a.product-brand-name-with-link",
        "[data-testid=product-brand]",
        "span.product-brand",
        "h1.pr-new-br strong",
    ],
    "discounted_price": [
        "div.product-price-container span.prc-dsc",
        "div.product-price-container span.prc-slg",
        "span.prc-dsc",
        "span.prc-slg",
        "[data-testid=price-current-price]",
    ],
    "original_price": [
        "div.product-price-container span.prc-org",
        "span.prc-org",
        "[data-testid=price-original-price]",
    ],
    "category": [
        "div.product-detail-breadcrumb a",
        "div.product-navigation a",
        "div.breadcrumb-wrapper a",
        "ul.breadcrumb li",
    ],
    "spec_table": [
        "ul.detail-attr-container li",
        "div.product-attributes li",
        "table.product-properties tr",
    ],
    "features": [
        "ul#content-descriptions-list li",
        "div.content-descriptions li",
        "div.detail-desc-list li",
        "ul.feature-list li",
    ],
    "description": [
        "div.product-description",
        "div.detail-description",
    ],
    "score": [
        "div.product-rating-score div.value",
        "span.rating-score",
        "div.rating-score",
    ],
    "rating_count": [
        "a.rvw-cnt-tx",
        "span.total-review-count",
        "div.pr-rnr-sm-p span",
    ],
    "favorite_count": [
        "div.fv-dt span",
        "span.favorite-count",
        "div.favorite-count",
    ],
    "shipping_info": [
        "div.same-day-shipping div",
        "div.delivery-info span.info-text",
        "div.estimated-delivery",
    ],
    "payment_options": [
        "div.payment-options-content span.banner-content",
        "ul.payment-options li",
    ],
    "stock_status": [
        "div.pr-in-stock span",
        "div.stock-status",
    ],
    "seller_name": [
        "a.seller-name-text",
        "div.seller-name-text",
        "div.merchant-box-wrapper a",
    ],
}

# Image galleries, searched in order; every matching container contributes
GALLERY_CONTAINERS = [
    "div.gallery-modal",
    "div.product-slide-container",
    "div.base-product-image",
    "div[class*=styles-module_slider]",
    "div.product-images",
]

# Slicing attribute sections (e.g. the color picker) with their selected value
SLICING_SECTIONS = "div.slicing-attributes section"

_SKU_RE = re.compile(r"p-(\d+)")

# Thumbnail path segments -> full-resolution equivalents
_THUMBNAIL_REWRITES = [
    (re.compile(r"/mnresize/\d+/\d+/"), "/"),
    (re.compile(r"/(?:thumbs?|small)/", re.IGNORECASE), "/"),
    (re.compile(r"_(?:thumb|thumbnail|small|mini)(?=\.[a-zA-Z]{3,4}(?:\?|$))", re.IGNORECASE), "_org"),
]
_SKIP_IMAGE_RE = re.compile(r"(?i)(favicon|logo|pixel|tracking|1x1|spacer|placeholder|\.svg)")

_MAX_SCORE = 5.0


# ===== Main Entry Point =====


def extract_product(page: ParsedPage, url: str | None = None) -> Product:
    """Extract a Product from a parsed page.

    Raises MissingRequiredField when name or brand cannot be found.
    """
    url = url or page.url
    soup = page.soup
    ld = page.json_ld_product() or {}

    name = _extract_name(soup, page, ld)
    if not name:
        raise MissingRequiredField("name", url)
    brand = _extract_brand(soup, page, ld)
    if not brand:
        raise MissingRequiredField("brand", url)

    discounted, original = _extract_prices(soup, page, ld)

    attributes = _extract_spec_table(soup) + _extract_slicing_attributes(soup)
    rating_count = _extract_rating_count(soup, ld)
    favorite_count = parse_count(_select_text(soup, FIELD_SELECTORS["favorite_count"]))
    if rating_count:
        attributes.append(ProductAttribute(name="Rating Count", value=str(rating_count)))
    if favorite_count:
        attributes.append(ProductAttribute(name="Favorite Count", value=str(favorite_count)))

    product = Product(
        sku=_extract_sku(url, ld, name),
        name=name,
        brand=brand,
        description=_extract_description(soup, ld),
        category=_extract_category(soup, page),
        original_price=original,
        discounted_price=discounted,
        images=_extract_images(soup, page, ld),
        attributes=attributes,
        features=_select_all_texts(soup, FIELD_SELECTORS["features"]),
        score=_extract_score(soup, ld),
        rating_count=rating_count,
        favorite_count=favorite_count,
        shipping_info=_select_text(soup, FIELD_SELECTORS["shipping_info"]) or config.DEFAULT_SHIPPING_INFO,
        payment_options=(
            _select_all_texts(soup, FIELD_SELECTORS["payment_options"]) or list(config.DEFAULT_PAYMENT_OPTIONS)
        ),
        stock_status=_extract_stock_status(soup, ld),
        seller_name=_select_text(soup, FIELD_SELECTORS["seller_name"]) or config.DEFAULT_SELLER_NAME,
        url=url or None,
    )
    color = product.get_attribute("Color")
    if color:
        product.color = color

    logger.debug(
        f"Extracted {product.sku}: {product.name} ({product.brand}) "
        f"{product.discounted_price}/{product.original_price}, {len(product.images)} images"
    )
    return product


def extract_sku_from_url(url: str | None) -> str | None:
    """Return the numeric product id from a '...-p-<digits>' URL path, if any."""
    if not url:
        return None
    match = _SKU_RE.search(urlparse(url).path)
    return match.group(1) if match else None


# =====================================================================
# Selector helpers
# =====================================================================


def _node_text(node: Tag) -> str:
    return clean_whitespace(node.get_text(" ", strip=True))


def _select_text(soup: BeautifulSoup, selectors: list[str]) -> str:
    """Text of the first selector that yields a non-empty node."""
    for selector in selectors:
        for node in soup.select(selector):
            text = _node_text(node)
            if text:
                return text
    return ""


def _select_all_texts(soup: BeautifulSoup, selectors: list[str]) -> list[str]:
    """Deduplicated non-empty texts of the first selector that matches anything."""
    for selector in selectors:
        texts = [_node_text(n) for n in soup.select(selector)]
        texts = [t for t in texts if t]
        if texts:
            return list(dict.fromkeys(texts))
    return []


def _ld_value(ld: dict, *path: str) -> Any:
    """Walk nested JSON-LD keys; lists take their first element."""
    value: Any = ld
    for key in path:
        if isinstance(value, list):
            value = value[0] if value else None
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    return value


def _embedded_product(page: ParsedPage) -> dict:
    """Product object from an embedded window state, e.g. __PRODUCT_DETAIL_APP_INITIAL_STATE__."""
    for state in page.embedded_json.values():
        if isinstance(state, dict) and isinstance(state.get("product"), dict):
            return state["product"]
    return {}


# =====================================================================
# Field extraction
# =====================================================================


def _extract_name(soup: BeautifulSoup, page: ParsedPage, ld: dict) -> str:
    name = _select_text(soup, FIELD_SELECTORS["name"])
    if name:
        return name
    if isinstance(ld.get("name"), str):
        return clean_whitespace(ld["name"])
    embedded = _embedded_product(page).get("name")
    if isinstance(embedded, str) and embedded.strip():
        return clean_whitespace(embedded)
    return clean_whitespace(page.og_tags.get("title", ""))


def _extract_brand(soup: BeautifulSoup, page: ParsedPage, ld: dict) -> str:
    brand = _select_text(soup, FIELD_SELECTORS["brand"])
    if brand:
        return brand
    ld_brand = ld.get("brand")
    if isinstance(ld_brand, dict):
        ld_brand = ld_brand.get("name")
    if isinstance(ld_brand, str) and ld_brand.strip():
        return clean_whitespace(ld_brand)
    embedded = _embedded_product(page).get("brand")
    if isinstance(embedded, dict):
        embedded = embedded.get("name")
    if isinstance(embedded, str) and embedded.strip():
        return clean_whitespace(embedded)
    return clean_whitespace(page.og_tags.get("brand", ""))


def _extract_prices(soup: BeautifulSoup, page: ParsedPage, ld: dict) -> tuple[float, float]:
    """Return (discounted, original). Original defaults to discounted."""
    discounted = parse_price(_select_text(soup, FIELD_SELECTORS["discounted_price"]))
    if not discounted:
        raw = _ld_value(ld, "offers", "price") or _ld_value(ld, "offers", "lowPrice")
        if raw is not None:
            discounted = parse_price(str(raw))
    if not discounted:
        embedded_price = _embedded_product(page).get("price")
        if isinstance(embedded_price, dict):
            selling = embedded_price.get("sellingPrice")
            if isinstance(selling, dict):
                selling = selling.get("value")
            if selling is not None:
                discounted = parse_price(str(selling))
    if not discounted and page.og_tags.get("price:amount"):
        discounted = parse_price(page.og_tags["price:amount"])

    original = parse_price(_select_text(soup, FIELD_SELECTORS["original_price"]))
    if not original:
        original = discounted
    if discounted > original:
        discounted, original = original, discounted
    return discounted, original


def _extract_description(soup: BeautifulSoup, ld: dict) -> str | None:
    text = _select_text(soup, FIELD_SELECTORS["description"])
    if not text and isinstance(ld.get("description"), str):
        text = clean_whitespace(ld["description"])
    return text or None


def _extract_category(soup: BeautifulSoup, page: ParsedPage) -> str | None:
    for selector in FIELD_SELECTORS["category"]:
        parts = [_node_text(n) for n in soup.select(selector)]
        parts = [p for p in parts if p]
        if parts:
            return " > ".join(parts)
    if page.breadcrumbs:
        return " > ".join(b for b in page.breadcrumbs if b)
    return None


def _extract_spec_table(soup: BeautifulSoup) -> list[ProductAttribute]:
    """Name/value pairs from the specification list or table."""
    for selector in FIELD_SELECTORS["spec_table"]:
        attributes: list[ProductAttribute] = []
        for row in soup.select(selector):
            cells = [_node_text(c) for c in row.find_all(["span", "th", "td", "dt", "dd"], recursive=False)]
            cells = [c for c in cells if c]
            if len(cells) < 2:
                continue
            name = cells[0].rstrip(":").strip()
            if name:
                attributes.append(ProductAttribute(name=name, value=" ".join(cells[1:])))
        if attributes:
            return attributes
    return []


def _extract_slicing_attributes(soup: BeautifulSoup) -> list[ProductAttribute]:
    """Currently selected value of each slicing section (e.g. 'Renk: Siyah')."""
    attributes: list[ProductAttribute] = []
    for section in soup.select(SLICING_SECTIONS):
        title_node = section.select_one(".slc-title h2") or section.select_one(".slc-title")
        title = _node_text(title_node) if title_node else ""
        # "Renk: Siyah" headings carry the value inline
        inline_value = ""
        if ":" in title:
            title, inline_value = (s.strip() for s in title.split(":", 1))
        selected = section.select_one(".selected")
        value = ""
        if selected is not None:
            value = clean_whitespace(selected.get("title") or "") or _node_text(selected)
        value = value or inline_value
        if title and value:
            attributes.append(ProductAttribute(name=title, value=value))
    return attributes


def _extract_images(soup: BeautifulSoup, page: ParsedPage, ld: dict) -> list[str]:
    urls: list[str] = []
    for container_selector in GALLERY_CONTAINERS:
        for container in soup.select(container_selector):
            for img in container.find_all("img"):
                url = best_from_srcset(img.get("srcset") or img.get("data-srcset"))
                url = url or img.get("data-src") or img.get("src")
                if url and isinstance(url, str):
                    urls.append(url)

    if not urls:
        ld_images = ld.get("image")
        if isinstance(ld_images, str):
            urls.append(ld_images)
        elif isinstance(ld_images, list):
            urls.extend(i if isinstance(i, str) else (i or {}).get("url", "") for i in ld_images)
        elif isinstance(ld_images, dict) and ld_images.get("url"):
            urls.append(ld_images["url"])
    if not urls and page.og_tags.get("image"):
        urls.append(page.og_tags["image"])

    return normalize_image_urls(urls)


def normalize_image_urls(urls: list[str]) -> list[str]:
    """Upgrade thumbnails to full resolution, drop non-product images, dedup in order."""
    result: list[str] = []
    for url in urls:
        if not url:
            continue
        url = normalize_url(url)
        if not url.startswith("http") or _SKIP_IMAGE_RE.search(url):
            continue
        for pattern, replacement in _THUMBNAIL_REWRITES:
            url = pattern.sub(replacement, url)
        result.append(url)
    return list(dict.fromkeys(result))


def _extract_score(soup: BeautifulSoup, ld: dict) -> float | None:
    raw = _select_text(soup, FIELD_SELECTORS["score"])
    if not raw:
        ld_rating = _ld_value(ld, "aggregateRating", "ratingValue")
        raw = str(ld_rating) if ld_rating is not None else ""
    score = parse_price(raw)
    if 0 < score <= _MAX_SCORE:
        return score
    return None


def _extract_rating_count(soup: BeautifulSoup, ld: dict) -> int:
    count = parse_count(_select_text(soup, FIELD_SELECTORS["rating_count"]))
    if not count:
        raw = _ld_value(ld, "aggregateRating", "ratingCount") or _ld_value(ld, "aggregateRating", "reviewCount")
        count = parse_count(str(raw)) if raw is not None else 0
    return count


def _extract_stock_status(soup: BeautifulSoup, ld: dict) -> str:
    status = _select_text(soup, FIELD_SELECTORS["stock_status"])
    if status:
        return status
    availability = _ld_value(ld, "offers", "availability")
    if isinstance(availability, str) and availability.rsplit("/", 1)[-1] == "OutOfStock":
        return "Tükendi"
    return config.DEFAULT_STOCK_STATUS


def _extract_sku(url: str | None, ld: dict, name: str) -> str:
    sku = extract_sku_from_url(url)
    if sku:
        return sku
    for key in ("sku", "productID", "mpn"):
        value = ld.get(key)
        if value:
            return str(value).strip()
    logger.warning(f"No SKU in URL or structured data for '{name}', deriving from name")
    return slug(name)
