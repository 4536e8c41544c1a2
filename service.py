"""
Product service: the crawl / transform / save / read operations behind the API.

crawl(url)      -> fetch -> extract -> resolve variants -> store (transient)
transform(sku)  -> load -> enhance description -> re-store
save(product)   -> replace the SKU's record with long retention
"""

import logging

from enhancer import DescriptionEnhancer
from errors import NotFound
from extractor import extract_product
from fetcher import PageFetcher
from models import Product, ProductVariants
from parser import parse_html
from store import ProductStore, Retention
from variants import FetchPage, VariantResolution, VariantResolver

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(
        self,
        store: ProductStore,
        fetch_page: FetchPage,
        enhancer: DescriptionEnhancer | None = None,
        resolver: VariantResolver | None = None,
    ):
        self.store = store
        self.fetch_page = fetch_page
        self.enhancer = enhancer or DescriptionEnhancer()
        self.resolver = resolver or VariantResolver(fetch_page)

    async def crawl(self, url: str) -> list[Product]:
        """Crawl a product page and return its flattened variant list.

        Raises ValueError for an empty URL and MissingRequiredField when the
        page itself has no name or brand. Fetch errors for the main page propagate.
        """
        url = (url or "").strip()
        if not url:
            raise ValueError("URL is required")

        logger.info(f"Crawling {url}")
        html = await self.fetch_page(url)
        page = parse_html(html, url)
        base = extract_product(page, url)
        logger.info(f"  Base product: {base.sku} {base.name} ({base.brand})")

        resolution = await self.resolver.resolve(page, base, self.fetch_page)
        await self._store_crawl(base.sku, resolution)
        return [v.copy_product() for v in resolution.variants]

    async def _store_crawl(self, root_sku: str, resolution: VariantResolution) -> None:
        """Store every color-level parent, then every variant, as transient records."""
        written: set[str] = set()
        for color in resolution.colors:
            record = color.copy_product()
            if record.sku == root_sku:
                record.variants = [v.copy_product() for v in resolution.variants if v.sku != root_sku]
            await self.store.set(record.sku, record, Retention.TRANSIENT)
            written.add(record.sku)

        for variant in resolution.variants:
            if variant.sku in written:
                continue
            await self.store.set(variant.sku, variant, Retention.TRANSIENT)
            written.add(variant.sku)
        logger.info(f"  Stored {len(written)} record(s) for {root_sku}")

    async def transform(self, sku: str) -> Product:
        """Enhance a stored product's description. Raises NotFound.

        The rewrite runs while the SKU is locked, so a concurrent save lands
        after the enhanced record instead of being overwritten by it.
        """

        async def enhance(existing: Product | None) -> Product:
            if existing is None:
                raise NotFound(sku)
            return await self.enhancer.enhance(existing)

        return await self.store.update(sku, enhance)

    async def save(self, product: Product) -> Product:
        """Persist a product, replacing any existing record for its SKU."""
        logger.info(f"Saving {product.sku}")
        return await self.store.update(product.sku, lambda _existing: product, Retention.SAVED)

    async def save_sku(self, sku: str) -> Product:
        """Promote an already-stored record to saved. Raises NotFound."""

        def promote(existing: Product | None) -> Product:
            if existing is None:
                raise NotFound(sku)
            return existing

        logger.info(f"Saving {sku}")
        return await self.store.update(sku, promote, Retention.SAVED)

    async def get(self, sku: str) -> Product:
        return await self.store.get(sku)

    async def list_saved(self) -> list[Product]:
        """Saved products, highest score first (unscored last)."""
        products = [p for p in await self.store.list_by_prefix("") if p.is_saved]
        return sorted(products, key=lambda p: p.score if p.score is not None else -1.0, reverse=True)

    async def get_variants(self, sku: str) -> ProductVariants:
        return ProductVariants.from_product(await self.store.get(sku))

    async def remove(self, sku: str) -> None:
        await self.store.remove(sku)

    async def cleanup(self, max_idle: float) -> int:
        """Evict expired transient records and close an idle fetch session."""
        evicted = await self.store.evict_expired()
        if isinstance(self.fetch_page, PageFetcher):
            await self.fetch_page.close_if_idle(max_idle)
        return evicted
