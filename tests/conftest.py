"""Shared fixtures: product page HTML builders and fake collaborators."""

import asyncio
import json

import pytest

import config

ORIGIN = "https://shop.example.com"
RED_URL = f"{ORIGIN}/shaka/omuz-cantasi-p-1001"
BLUE_URL = f"{ORIGIN}/shaka/omuz-cantasi-p-1002"


def build_page(
    name: str | None = "Suni Deri Omuz Çantası",
    brand: str | None = "Shaka",
    price: str = "342,39 TL",
    original_price: str | None = "399,99 TL",
    colors: list[tuple[str, str | None, bool]] | None = None,
    sizes: list[tuple[str, bool]] | None = None,
    images: list[str] | None = None,
    json_ld: dict | None = None,
) -> str:
    """Render a product page in the site's markup.

    colors: (label, href or None, selected); sizes: (label, available).
    """
    title = ""
    if name is not None or brand is not None:
        brand_html = f'<a href="/{(brand or "").lower()}">{brand}</a>' if brand else ""
        name_html = f"<span>{name}</span>" if name else ""
        title = f'<h1 class="pr-new-br">{brand_html}{name_html}</h1>'

    prices = f'<span class="prc-dsc">{price}</span>'
    if original_price:
        prices = f'<span class="prc-org">{original_price}</span>' + prices

    if images is None:
        images = [
            "https://cdn.example.com/mnresize/128/192/ty952/product/1_org.jpg",
            "https://cdn.example.com/ty952/product/1_org.jpg",
            "https://cdn.example.com/ty952/product/2_org.jpg",
        ]
    gallery = "".join(f'<img src="{src}">' for src in images)

    color_html = ""
    if colors:
        anchors = []
        for label, href, selected in colors:
            cls = "slc-img selected" if selected else "slc-img"
            href_attr = f' href="{href}"' if href else ""
            anchors.append(f'<a class="{cls}"{href_attr} title="{label}"><img alt="{label}"></a>')
        color_html = (
            '<div class="slicing-attributes"><section>'
            '<div class="slc-title"><h2>Renk:</h2></div>' + "".join(anchors) + "</section></div>"
        )

    size_html = ""
    if sizes:
        items = "".join(
            f'<div class="sp-itm{"" if available else " so"}">{label}</div>' for label, available in sizes
        )
        size_html = f'<div class="variants">{items}</div>'

    ld_html = ""
    if json_ld:
        ld_html = f'<script type="application/ld+json">{json.dumps(json_ld)}</script>'

    return f"""<html><head>{ld_html}</head><body>
<div class="product-detail-breadcrumb"><a>Trendyol</a><a>Kadın</a><a>  </a><a>Çanta</a></div>
{title}
<div class="product-price-container">{prices}</div>
<div class="gallery-modal">{gallery}</div>
{color_html}
{size_html}
<ul class="detail-attr-container">
  <li><span>Materyal</span><span>Suni Deri</span></li>
  <li><span>Stil</span><span>Casual</span></li>
</ul>
<ul id="content-descriptions-list"><li>İki bölmeli</li><li>Ayarlanabilir askı</li><li>İki bölmeli</li></ul>
<div class="product-rating-score"><div class="value">4,6</div></div>
<a class="rvw-cnt-tx">2 Değerlendirme</a>
<div class="fv-dt"><span>103 favori</span></div>
</body></html>"""


SIZES = [("S", True), ("M", False), ("L", True)]


@pytest.fixture(autouse=True)
def no_llm(monkeypatch):
    """Keep a developer's OPENAI_API_KEY from reaching the network in tests."""
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")


@pytest.fixture
def red_html() -> str:
    return build_page(
        colors=[("Red", None, True), ("Blue", "/shaka/omuz-cantasi-p-1002", False)],
        sizes=SIZES,
    )


@pytest.fixture
def blue_html() -> str:
    return build_page(
        colors=[("Red", "/shaka/omuz-cantasi-p-1001", False), ("Blue", None, True)],
        sizes=SIZES,
        images=["https://cdn.example.com/ty952/product/blue_1_org.jpg"],
    )


class FakeFetcher:
    """Serves canned HTML by URL; records calls; raises for configured URLs."""

    def __init__(self, pages: dict[str, str], errors: dict[str, Exception] | None = None):
        self.pages = pages
        self.errors = errors or {}
        self.calls: list[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        if url in self.errors:
            raise self.errors[url]
        if url not in self.pages:
            raise KeyError(url)
        return self.pages[url]


@pytest.fixture
def fetcher(red_html, blue_html) -> FakeFetcher:
    return FakeFetcher({RED_URL: red_html, BLUE_URL: blue_html})


class FakeRewriter:
    """Stands in for the LLM rewrite: returns a fixed value or raises."""

    def __init__(self, result=None, error: Exception | None = None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.messages: list[list[dict]] = []

    async def __call__(self, messages: list[dict]):
        self.messages.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result
