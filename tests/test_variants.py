"""Tests for color/size variant resolution."""

import asyncio

import httpx

from conftest import BLUE_URL, ORIGIN, RED_URL, SIZES, FakeFetcher, build_page
from extractor import extract_product
from parser import parse_html
from variants import VariantResolver, find_color_options, find_size_options


def _resolve(html: str, fetcher, url: str = RED_URL):
    page = parse_html(html, url)
    base = extract_product(page, url)
    resolver = VariantResolver(site_origin=ORIGIN)
    return asyncio.run(resolver.resolve(page, base, fetcher))


class TestDiscovery:
    def test_color_options_in_dom_order(self, red_html):
        options = find_color_options(parse_html(red_html, RED_URL), ORIGIN)

        assert [o.label for o in options] == ["Red", "Blue"]
        assert [o.selected for o in options] == [True, False]
        assert options[0].url is None
        assert options[1].url == BLUE_URL

    def test_size_options_flag_disabled(self, red_html):
        options = find_size_options(parse_html(red_html, RED_URL))

        assert [(o.label, o.available) for o in options] == [("S", True), ("M", False), ("L", True)]

    def test_absolute_href_kept(self):
        html = build_page(colors=[("Green", "https://other.example.com/x-p-7", False)])
        options = find_color_options(parse_html(html), ORIGIN)

        assert options[0].url == "https://other.example.com/x-p-7"


class TestEndToEnd:
    def test_two_colors_three_sizes_one_disabled(self, red_html, fetcher):
        resolution = _resolve(red_html, fetcher)
        variants = resolution.variants

        assert [v.sku for v in variants] == ["1001-s", "1001-l", "1002-s", "1002-l"]
        assert [v.parent_sku for v in variants] == ["1001", "1001", "1002", "1002"]
        assert [v.color for v in variants] == ["Red", "Red", "Blue", "Blue"]
        assert [v.size for v in variants] == ["S", "L", "S", "L"]
        assert all(v.size != "M" for v in variants)
        assert [v.get_attribute("Size") for v in variants] == ["S", "L", "S", "L"]
        assert [v.get_attribute("Color") for v in variants] == ["Red", "Red", "Blue", "Blue"]
        assert fetcher.calls == [BLUE_URL]

    def test_color_level_parents_hold_their_sizes(self, red_html, fetcher):
        resolution = _resolve(red_html, fetcher)

        assert [c.sku for c in resolution.colors] == ["1001", "1002"]
        assert resolution.colors[1].parent_sku == "1001"
        assert [v.sku for v in resolution.colors[1].variants] == ["1002-s", "1002-l"]
        assert resolution.colors[1].images == ["https://cdn.example.com/ty952/product/blue_1_org.jpg"]

    def test_resolve_variants_uses_configured_fetcher(self, red_html, fetcher):
        page = parse_html(red_html, RED_URL)
        resolver = VariantResolver(fetcher, site_origin=ORIGIN)
        variants = asyncio.run(resolver.resolve_variants(page, extract_product(page, RED_URL)))

        assert len(variants) == 4
        assert fetcher.calls == [BLUE_URL]

    def test_repeated_size_controls_yield_one_variant_each(self):
        repeated = [("S", True), ("S", True), ("L", True)]
        red = build_page(colors=[("Red", None, True), ("Blue", "/shaka/omuz-cantasi-p-1002", False)], sizes=repeated)
        blue = build_page(colors=[("Red", "/shaka/omuz-cantasi-p-1001", False), ("Blue", None, True)], sizes=repeated)
        resolution = _resolve(red, FakeFetcher({RED_URL: red, BLUE_URL: blue}))

        for color in resolution.colors:
            skus = [v.sku for v in color.variants]
            assert skus == [f"{color.sku}-s", f"{color.sku}-l"]
            assert sum(v.is_main_variant for v in color.variants) <= 1
        assert sum(v.is_main_variant for v in resolution.variants) == 1

    def test_skus_are_unique(self, red_html, fetcher):
        skus = [v.sku for v in _resolve(red_html, fetcher).variants]

        assert len(skus) == len(set(skus))

    def test_exactly_one_main_variant(self, red_html, fetcher):
        variants = _resolve(red_html, fetcher).variants

        mains = [v for v in variants if v.is_main_variant]
        assert len(mains) == 1
        assert mains[0].sku == "1001-s"

    def test_selected_size_becomes_main(self, fetcher):
        html = build_page(
            colors=[("Red", None, True), ("Blue", "/shaka/omuz-cantasi-p-1002", False)],
            sizes=SIZES,
        ).replace('<div class="sp-itm">L</div>', '<div class="sp-itm selected">L</div>')
        variants = _resolve(html, fetcher).variants

        assert [v.sku for v in variants if v.is_main_variant] == ["1001-l"]

    def test_clones_share_no_containers(self, red_html, fetcher):
        variants = _resolve(red_html, fetcher).variants

        variants[0].images.append("https://cdn.example.com/extra.jpg")
        variants[0].attributes[0].value = "changed"
        assert "https://cdn.example.com/extra.jpg" not in variants[1].images
        assert variants[1].attributes[0].value != "changed"


class TestSingleProduct:
    def test_no_colors_no_sizes_returns_base(self):
        html = build_page()
        variants = _resolve(html, FakeFetcher({})).variants

        assert len(variants) == 1
        assert variants[0].sku == "1001"
        assert variants[0].parent_sku is None
        assert variants[0].is_main_variant is True

    def test_sizes_only(self):
        html = build_page(sizes=[("38", True), ("39", False), ("40 Geniş", True)])
        variants = _resolve(html, FakeFetcher({})).variants

        assert [v.sku for v in variants] == ["1001-38", "1001-40-geniş"]
        assert all(v.parent_sku == "1001" for v in variants)

    def test_colors_without_sizes(self, fetcher):
        red = build_page(colors=[("Red", None, True), ("Blue", "/shaka/omuz-cantasi-p-1002", False)])
        blue = build_page(colors=[("Red", "/shaka/omuz-cantasi-p-1001", False), ("Blue", None, True)])
        variants = _resolve(red, FakeFetcher({RED_URL: red, BLUE_URL: blue})).variants

        assert [v.sku for v in variants] == ["1001", "1002"]
        assert [v.parent_sku for v in variants] == [None, "1001"]
        assert [v.is_main_variant for v in variants] == [True, False]


class TestFailureIsolation:
    def test_network_failure_omits_only_that_color(self, red_html):
        fetcher = FakeFetcher({}, errors={BLUE_URL: httpx.ConnectError("connection refused")})
        variants = _resolve(red_html, fetcher).variants

        assert [v.sku for v in variants] == ["1001-s", "1001-l"]

    def test_missing_brand_on_variant_page_skips_it(self, red_html):
        broken_blue = build_page(brand=None, colors=[("Blue", None, True)], sizes=SIZES)
        variants = _resolve(red_html, FakeFetcher({BLUE_URL: broken_blue})).variants

        assert [v.sku for v in variants] == ["1001-s", "1001-l"]

    def test_sibling_survives_failed_sibling(self, red_html, blue_html):
        green_url = f"{ORIGIN}/shaka/omuz-cantasi-p-1003"
        html = build_page(
            colors=[
                ("Red", None, True),
                ("Green", "/shaka/omuz-cantasi-p-1003", False),
                ("Blue", "/shaka/omuz-cantasi-p-1002", False),
            ],
            sizes=SIZES,
        )
        fetcher = FakeFetcher({BLUE_URL: blue_html}, errors={green_url: httpx.ReadTimeout("timed out")})
        variants = _resolve(html, fetcher).variants

        assert [v.sku for v in variants] == ["1001-s", "1001-l", "1002-s", "1002-l"]

    def test_variant_pages_are_not_walked(self, red_html, fetcher):
        _resolve(red_html, fetcher)

        # The Blue page links back to Red; that link is never followed
        assert RED_URL not in fetcher.calls
