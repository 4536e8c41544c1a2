"""
Command-line entry point.

  python main.py crawl <url> [<url> ...] [--enhance] [--save] [--output FILE]
  python main.py serve [--host HOST] [--port PORT]

crawl runs each URL through fetch -> extract -> resolve variants, optionally
enhances and saves every variant, prints a summary and writes the variants
as a JSON array.
"""

import argparse
import asyncio
import logging
import time
from pathlib import Path

import orjson

import config
from errors import MissingRequiredField
from fetcher import PageFetcher
from models import Product
from service import ProductService
from store import create_store

logger = logging.getLogger(__name__)

OUTPUT_FILE = Path(__file__).parent / "crawled.json"


async def crawl_urls(urls: list[str], enhance: bool, save: bool) -> tuple[list[Product], int]:
    """Crawl URLs concurrently. Returns (all variants, failure count)."""
    fetcher = PageFetcher()
    service = ProductService(store=create_store(), fetch_page=fetcher)
    try:
        results = await asyncio.gather(*[service.crawl(url) for url in urls], return_exceptions=True)

        products: list[Product] = []
        failures = 0
        for url, result in zip(urls, results):
            if isinstance(result, MissingRequiredField):
                logger.error(f"Skipped {url}: {result}")
                failures += 1
            elif isinstance(result, Exception):
                logger.error(f"Failed to crawl {url}: {result}", exc_info=result)
                failures += 1
            else:
                products.extend(result)

        if enhance:
            products = [await service.transform(p.sku) for p in products]
        if save:
            products = [await service.save(p) for p in products]
        return products, failures
    finally:
        await fetcher.aclose()


def print_summary(products: list[Product], failures: int, wall_clock: float) -> None:
    print(f"\n{'='*60}")
    print(f"Crawled {len(products)} variant(s), {failures} failure(s) in {wall_clock:.2f}s")
    print(f"{'='*60}")
    for p in products:
        marker = " *" if p.is_main_variant else ""
        print(f"\n  {p.sku}{marker}  {p.name}")
        print(f"    Brand:    {p.brand}")
        print(f"    Price:    {p.discounted_price:.2f}", end="")
        if p.original_price > p.discounted_price:
            print(f" (was {p.original_price:.2f})", end="")
        print()
        if p.parent_sku:
            print(f"    Parent:   {p.parent_sku}")
        print(f"    Color:    {p.color or '-'}   Size: {p.size or '-'}")
        print(f"    Category: {p.category or '-'}")
        print(f"    Images:   {len(p.images)} URLs, Attributes: {len(p.attributes)}")
        if p.description:
            print(f"    Description: {p.description[:120]}")


async def run_crawl(args: argparse.Namespace) -> None:
    t0 = time.monotonic()
    products, failures = await crawl_urls(args.urls, enhance=args.enhance, save=args.save)
    print_summary(products, failures, time.monotonic() - t0)

    output = Path(args.output)
    data = [p.model_dump(mode="json", by_alias=True) for p in products]
    output.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    logger.info(f"Wrote {len(products)} products to {output}")


def run_server(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("server:app", host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Product page crawler")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Crawl one or more product URLs")
    crawl.add_argument("urls", nargs="+", help="Product page URLs")
    crawl.add_argument("--enhance", action="store_true", help="Rewrite descriptions after crawling")
    crawl.add_argument("--save", action="store_true", help="Persist every variant as saved")
    crawl.add_argument("--output", default=str(OUTPUT_FILE), help="JSON output file")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=config.SERVER_HOST)
    serve.add_argument("--port", type=int, default=config.SERVER_PORT)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = parse_args(argv)
    if args.command == "crawl":
        asyncio.run(run_crawl(args))
    else:
        run_server(args)


if __name__ == "__main__":
    main()
