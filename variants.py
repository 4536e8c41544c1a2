"""
Variant resolver: one product page -> its color x size variant records.

Two steps:
  1) Colors: every color anchor on the page. The selected anchor is the page
     being viewed (the already-extracted base product); linked anchors are
     fetched once and run through the same field extractor.
  2) Sizes: every available size control on each color's own page becomes a
     clone of that color's product with a derived SKU ({sku}-{slug(size)}).

Variant pages are never walked further (no variant-of-a-variant). A failed
color branch is logged and omitted; siblings are unaffected.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from bs4 import Tag

import config
from errors import MissingRequiredField, VariantFetchFailure
from extractor import extract_product, extract_sku_from_url
from models import Product
from normalize import clean_whitespace, slug
from parser import ParsedPage, parse_html

logger = logging.getLogger(__name__)

FetchPage = Callable[[str], Awaitable[str]]

COLOR_ANCHOR_SELECTORS = [
    "div.slicing-attributes a.slc-img",
    "div.styles-module_slicingBox a",
    "[data-testid=color-variant]",
]
SIZE_CONTROL_SELECTORS = [
    "div.variants div.sp-itm",
    "div.size-variant-wrapper button",
    "ul.size-list li",
]
_DISABLED_CLASSES = {"so", "disabled", "out-of-stock", "sold-out", "passive"}
_SELECTED_CLASSES = {"selected", "active"}


@dataclass
class ColorOption:
    label: str
    url: str | None  # absolute; None when the anchor is not navigable
    selected: bool


@dataclass
class SizeOption:
    label: str
    available: bool
    selected: bool


@dataclass
class ColorBranch:
    """A color-level product and the document it was extracted from."""

    product: Product
    page: ParsedPage
    is_current: bool = False


@dataclass
class VariantResolution:
    """Color-level products (each holding its size variants) plus the flattened output."""

    colors: list[Product] = field(default_factory=list)
    variants: list[Product] = field(default_factory=list)


# =====================================================================
# DOM discovery
# =====================================================================


def _classes(node: Tag) -> set[str]:
    value = node.get("class") or []
    if isinstance(value, str):
        value = value.split()
    return {c.lower() for c in value}


def _is_true(node: Tag, attr: str) -> bool:
    return str(node.get(attr, "")).lower() == "true"


def _absolute_url(href: str, site_origin: str) -> str | None:
    href = href.strip()
    if not href or href.startswith(("#", "javascript:")):
        return None
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        return "https:" + href
    return site_origin + (href if href.startswith("/") else "/" + href)


def find_color_options(page: ParsedPage, site_origin: str = config.SITE_ORIGIN) -> list[ColorOption]:
    """Color anchors in DOM order, from the first selector that matches."""
    for selector in COLOR_ANCHOR_SELECTORS:
        anchors = page.soup.select(selector)
        if not anchors:
            continue
        options: list[ColorOption] = []
        for anchor in anchors:
            img = anchor.find("img")
            label = clean_whitespace(
                anchor.get("title") or anchor.get("data-title") or (img.get("alt") if img else "") or anchor.get_text(" ")
            )
            selected = bool(_classes(anchor) & _SELECTED_CLASSES) or _is_true(anchor, "aria-selected")
            url = _absolute_url(anchor.get("href") or "", site_origin)
            options.append(ColorOption(label=label, url=url, selected=selected))
        return options
    return []


def find_size_options(page: ParsedPage) -> list[SizeOption]:
    """Size controls in DOM order, from the first selector that matches."""
    for selector in SIZE_CONTROL_SELECTORS:
        controls = page.soup.select(selector)
        if not controls:
            continue
        options: list[SizeOption] = []
        for control in controls:
            label = clean_whitespace(control.get("title") or control.get_text(" "))
            if not label:
                continue
            classes = _classes(control)
            disabled = (
                control.has_attr("disabled")
                or _is_true(control, "aria-disabled")
                or bool(classes & _DISABLED_CLASSES)
            )
            selected = bool(classes & _SELECTED_CLASSES) or _is_true(control, "aria-checked")
            options.append(SizeOption(label=label, available=not disabled, selected=selected))
        return options
    return []


# =====================================================================
# Resolver
# =====================================================================


class VariantResolver:
    def __init__(self, fetch_page: FetchPage | None = None, site_origin: str = config.SITE_ORIGIN):
        self.fetch_page = fetch_page
        self.site_origin = site_origin.rstrip("/")

    async def resolve_variants(
        self, page: ParsedPage, base: Product, fetch_page: FetchPage | None = None
    ) -> list[Product]:
        """Flattened variant list, color-major then size-minor, in DOM order."""
        resolution = await self.resolve(page, base, fetch_page)
        return resolution.variants

    async def resolve(self, page: ParsedPage, base: Product, fetch_page: FetchPage | None = None) -> VariantResolution:
        branches = await self.resolve_colors(page, base, fetch_page)

        resolution = VariantResolution()
        main: Product | None = None
        for branch in branches:
            sizes = self.expand_sizes(branch.product, branch.page)
            color_product = branch.product.copy_product()
            color_product.variants = [s.copy_product() for s in sizes]
            resolution.colors.append(color_product)

            produced = sizes or [branch.product]
            resolution.variants.extend(produced)
            if branch.is_current:
                main = _pick_main(branch.page, sizes) or branch.product

        resolution.variants = _dedup_by_sku(resolution.variants)
        for variant in resolution.variants:
            variant.is_main_variant = variant is main
        for color_product in resolution.colors:
            for sized in color_product.variants:
                sized.is_main_variant = main is not None and sized.sku == main.sku
            color_product.is_main_variant = (
                main is not None and not color_product.variants and color_product.sku == main.sku
            )

        logger.info(
            f"Resolved {base.sku}: {len(resolution.colors)} color(s), {len(resolution.variants)} variant(s)"
        )
        return resolution

    async def resolve_colors(
        self, page: ParsedPage, base: Product, fetch_page: FetchPage | None = None
    ) -> list[ColorBranch]:
        """One branch per reachable color, in DOM order. The base branch is always present."""
        fetch_page = fetch_page or self.fetch_page
        options = find_color_options(page, self.site_origin)

        base_branch = ColorBranch(product=base.copy_product(), page=page, is_current=True)
        slots: list[ColorBranch | ColorOption] = []
        base_placed = False
        for option in options:
            if option.selected or (option.url and _same_product(option.url, base)):
                if base_placed:
                    continue
                if option.label:
                    _apply_color(base_branch.product, option.label)
                slots.append(base_branch)
                base_placed = True
            elif option.url:
                slots.append(option)
            else:
                logger.debug(f"Skipping non-navigable color '{option.label}' on {base.sku}")
        if not base_placed:
            slots.insert(0, base_branch)

        to_fetch = [s for s in slots if isinstance(s, ColorOption)]
        if to_fetch and fetch_page is None:
            logger.warning(f"No page fetcher configured; skipping {len(to_fetch)} linked color(s) of {base.sku}")
            return [base_branch]

        results = await asyncio.gather(
            *[self._fetch_color(option, base, fetch_page) for option in to_fetch],
            return_exceptions=True,
        )
        fetched = dict(zip((id(o) for o in to_fetch), results))

        branches: list[ColorBranch] = []
        for slot in slots:
            if isinstance(slot, ColorBranch):
                branches.append(slot)
                continue
            result = fetched[id(slot)]
            if isinstance(result, ColorBranch):
                branches.append(result)
            elif isinstance(result, Exception):
                logger.warning(f"Skipping color '{slot.label}' of {base.sku}: {result}")
            else:
                raise result
        return branches

    def expand_sizes(self, color_product: Product, page: ParsedPage) -> list[Product]:
        """Clone the color-level product once per available size control on its page.

        Repeated controls (mobile and desktop pickers) yield one variant per SKU.
        """
        variants: list[Product] = []
        seen: set[str] = set()
        for option in find_size_options(page):
            if not option.available:
                logger.debug(f"Skipping unavailable size '{option.label}' of {color_product.sku}")
                continue
            sku = f"{color_product.sku}-{slug(option.label)}"
            if sku in seen:
                continue
            seen.add(sku)
            variant = color_product.copy_product()
            variant.sku = sku
            variant.parent_sku = color_product.sku
            variant.size = option.label
            variant.set_attribute("Size", option.label)
            variant.variants = []
            variant.is_main_variant = False
            variants.append(variant)
        return variants

    async def _fetch_color(self, option: ColorOption, base: Product, fetch_page: FetchPage) -> ColorBranch:
        try:
            html = await fetch_page(option.url)
        except Exception as e:
            raise VariantFetchFailure(option.url, str(e) or type(e).__name__) from e
        try:
            color_page = parse_html(html, option.url)
            product = extract_product(color_page, option.url)
        except MissingRequiredField:
            raise
        except Exception as e:
            raise VariantFetchFailure(option.url, f"parse error: {e}") from e

        if product.sku == base.sku:
            product.sku = f"{base.sku}-{slug(option.label or product.color or 'color')}"
        product.parent_sku = base.sku
        product.is_main_variant = False
        product.variants = []
        _apply_color(product, option.label or product.color or "")
        return ColorBranch(product=product, page=color_page)


# =====================================================================
# Helpers
# =====================================================================


def _apply_color(product: Product, label: str) -> None:
    if not label:
        return
    product.color = label
    product.set_attribute("Color", label)


def _same_product(url: str, base: Product) -> bool:
    return extract_sku_from_url(url) == base.sku


def _pick_main(page: ParsedPage, sizes: list[Product]) -> Product | None:
    """The selected available size on the viewed page, else its first available size."""
    if not sizes:
        return None
    by_label = {s.size: s for s in sizes}
    for option in find_size_options(page):
        if option.selected and option.available and option.label in by_label:
            return by_label[option.label]
    return sizes[0]


def _dedup_by_sku(products: list[Product]) -> list[Product]:
    seen: set[str] = set()
    result: list[Product] = []
    for product in products:
        if product.sku in seen:
            logger.warning(f"Dropping duplicate variant SKU {product.sku}")
            continue
        seen.add(product.sku)
        result.append(product)
    return result
