"""
FastAPI server for the product crawler.

Endpoints:
- POST   /api/products/crawl            → crawl a URL, return flattened variants
- POST   /api/products/transform/{sku}  → enhance a stored product's description
- POST   /api/products                  → save (replace) a product
- POST   /api/products/save/{sku}       → promote a crawled product to saved
- GET    /api/products                  → saved products, highest score first
- GET    /api/products/{sku}            → single product
- GET    /api/products/{sku}/variants   → colors, sizes and variant records
- DELETE /api/products/{sku}            → remove a product
"""

import asyncio
import logging

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

import ai
import config
from errors import MissingRequiredField, NotFound, StoreWriteFailure
from fetcher import PageFetcher
from models import CrawlRequest, Product, ProductVariants
from service import ProductService
from store import create_store

logger = logging.getLogger("server")

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

_service: ProductService | None = None
_cleanup_task: asyncio.Task | None = None


def get_service() -> ProductService:
    global _service
    if _service is None:
        _service = ProductService(store=create_store(), fetch_page=PageFetcher())
    return _service


async def _cleanup_loop(interval: float) -> None:
    """Periodically evict expired transient records and close idle fetch sessions."""
    while True:
        await asyncio.sleep(interval)
        try:
            evicted = await get_service().cleanup(max_idle=interval)
            logger.info("Cleanup ran: %d record(s) evicted", evicted)
        except Exception:
            logger.warning("Cleanup run failed", exc_info=True)


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Product Crawler API",
    default_response_class=ORJSONResponse,
)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
    max_age=86400,
)


@app.on_event("startup")
async def startup() -> None:
    global _cleanup_task
    get_service()
    _cleanup_task = asyncio.create_task(_cleanup_loop(config.CLEANUP_INTERVAL_SECONDS))
    logger.info("LLM rewrite configured: %s", ai.is_configured())


@app.on_event("shutdown")
async def shutdown() -> None:
    global _cleanup_task
    if _cleanup_task is not None:
        _cleanup_task.cancel()
        _cleanup_task = None
    if _service is not None and isinstance(_service.fetch_page, PageFetcher):
        await _service.fetch_page.aclose()
    await ai.close()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return ORJSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(MissingRequiredField)
async def missing_field_handler(request: Request, exc: MissingRequiredField):
    logger.warning("No product extracted: %s", exc)
    return ORJSONResponse(status_code=404, content={"detail": "No products found at the specified URL"})


@app.exception_handler(StoreWriteFailure)
async def store_failure_handler(request: Request, exc: StoreWriteFailure):
    logger.error("Store write failed: %s", exc)
    return ORJSONResponse(status_code=500, content={"detail": "Failed to persist product"})


@app.exception_handler(httpx.HTTPError)
async def fetch_failure_handler(request: Request, exc: httpx.HTTPError):
    logger.error("Page fetch failed: %s", exc)
    return ORJSONResponse(status_code=502, content={"detail": "Failed to fetch product page"})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.post("/api/products/crawl", response_model=list[Product])
async def crawl_product(request: CrawlRequest, service: ProductService = Depends(get_service)):
    """Crawl a product page and return its variants."""
    if not request.url.strip():
        raise HTTPException(status_code=400, detail="URL is required")
    products = await service.crawl(request.url)
    if not products:
        raise HTTPException(status_code=404, detail="No products found at the specified URL")
    return products


@app.post("/api/products/transform/{sku}", response_model=Product)
async def transform_product(sku: str, service: ProductService = Depends(get_service)):
    return await service.transform(sku)


@app.post("/api/products", response_model=Product)
async def save_product(product: Product, service: ProductService = Depends(get_service)):
    return await service.save(product)


@app.post("/api/products/save/{sku}", response_model=Product)
async def save_product_by_sku(sku: str, service: ProductService = Depends(get_service)):
    return await service.save_sku(sku)


@app.get("/api/products", response_model=list[Product])
async def list_products(service: ProductService = Depends(get_service)):
    """Saved products, highest score first."""
    return await service.list_saved()


@app.get("/api/products/{sku}", response_model=Product)
async def get_product(sku: str, service: ProductService = Depends(get_service)):
    return await service.get(sku)


@app.get("/api/products/{sku}/variants", response_model=ProductVariants)
async def get_product_variants(sku: str, service: ProductService = Depends(get_service)):
    return await service.get_variants(sku)


@app.delete("/api/products/{sku}", status_code=204)
async def delete_product(sku: str, service: ProductService = Depends(get_service)):
    await service.remove(sku)
    return Response(status_code=204)
