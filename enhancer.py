"""
Description enhancer: product facts -> final human-readable description.

Three stages:
  A) Backfill standard attributes with generic defaults (never overwrite)
  B) Build a deterministic template description, always available as fallback
  C) One LLM rewrite under a timeout; any failure keeps the template

Common updates (boilerplate, count floors, default score) run regardless of
which description path won.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

import orjson
from pydantic import BaseModel, ValidationError

import ai
import config
from errors import EnhancementFailure
from models import Product

logger = logging.getLogger(__name__)

Rewriter = Callable[[list[dict[str, Any]]], Awaitable[Any]]

# Backfilled when missing or empty
STANDARD_ATTRIBUTES: dict[str, str] = {
    "Material": "High-quality material",
    "Style": "Modern",
    "Gender": "Unisex",
    "Dimensions": "Standard size",
    "Features": "Durable, comfortable everyday use",
    "Care Instructions": "Follow the instructions on the care label",
}

SYSTEM_PROMPT = (
    "You are a professional e-commerce description writer. "
    "Write an engaging, accurate product description using only the facts provided. "
    "Do not invent materials, sizes or certifications. "
    'Respond with JSON: {"name": str, "description": str, "brand": str, "score": number 0-5}.'
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_MAX_SCORE = 5.0


class RewriteResult(BaseModel):
    """Rewrite output; the envelope fields are all optional except a description."""

    name: str | None = None
    description: str | None = None
    brand: str | None = None
    score: float | None = None


class DescriptionEnhancer:
    def __init__(
        self,
        rewrite: Rewriter | None = None,
        timeout: float = config.LLM_TIMEOUT_SECONDS,
        model: str = config.LLM_MODEL,
    ):
        self.model = model
        self.timeout = timeout
        if rewrite is None and ai.is_configured():
            rewrite = self._llm_rewrite
        self.rewrite = rewrite

    async def enhance(self, product: Product) -> Product:
        """Fill product.description in place and return the product. Never raises on rewrite failure."""
        backfill_attributes(product)
        product.description = build_template_description(product)

        if self.rewrite is None:
            logger.info(f"  No rewriter configured, using template description for {product.sku}")
        else:
            try:
                result = await self._attempt_rewrite(product)
                _apply_rewrite(product, result)
                logger.info(f"  Rewrite applied to {product.sku}")
            except EnhancementFailure as e:
                logger.warning(f"  Rewrite failed for {product.sku}, keeping template: {e}")

        apply_common_updates(product)
        return product

    async def _attempt_rewrite(self, product: Product) -> RewriteResult:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_rewrite_context(product)},
        ]
        try:
            raw = await asyncio.wait_for(self.rewrite(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise EnhancementFailure(f"rewrite timed out after {self.timeout}s") from e
        except Exception as e:
            raise EnhancementFailure(f"rewrite call failed: {e}") from e
        return parse_rewrite(raw)

    async def _llm_rewrite(self, messages: list[dict[str, Any]]) -> RewriteResult:
        return await ai.responses(model=self.model, input=messages, text_format=RewriteResult)


# =====================================================================
# Stage A: attribute backfill
# =====================================================================


def backfill_attributes(product: Product) -> None:
    for name, default in STANDARD_ATTRIBUTES.items():
        current = product.get_attribute(name)
        if not current or not current.strip():
            product.set_attribute(name, default)


# =====================================================================
# Stage B: template description
# =====================================================================


def build_template_description(product: Product) -> str:
    """Deterministic description from brand, color, category and attributes."""
    attr = product.get_attribute
    parts = [f"{product.name} by {product.brand}."]
    if product.color:
        parts.append(f"Available in {product.color}.")
    if product.size:
        parts.append(f"Size: {product.size}.")
    if product.category:
        leaf = product.category.rsplit(">", 1)[-1].strip()
        parts.append(f"Part of the {leaf} collection.")
    parts.append(f"Made of {attr('Material') or STANDARD_ATTRIBUTES['Material']} with a {attr('Style') or 'modern'} style.")
    parts.append(f"Designed for: {attr('Gender') or STANDARD_ATTRIBUTES['Gender']}.")
    parts.append(f"Dimensions: {attr('Dimensions') or STANDARD_ATTRIBUTES['Dimensions']}.")
    parts.append(f"Features: {attr('Features') or STANDARD_ATTRIBUTES['Features']}.")
    if product.features:
        parts.append("Highlights: " + "; ".join(product.features[:5]) + ".")
    parts.append(f"Care: {attr('Care Instructions') or STANDARD_ATTRIBUTES['Care Instructions']}.")
    return " ".join(parts)


# =====================================================================
# Stage C: LLM rewrite
# =====================================================================


def build_rewrite_context(product: Product) -> str:
    """Structured facts for the rewrite, one per line."""
    lines = [
        f"Product Name: {product.name}",
        f"Brand: {product.brand}",
    ]
    if product.category:
        lines.append(f"Category: {product.category}")
    if product.color:
        lines.append(f"Color: {product.color}")
    if product.size:
        lines.append(f"Size: {product.size}")
    lines.append(f"Price: {product.discounted_price:.2f}")
    if product.original_price > product.discounted_price:
        lines.append(f"Original Price: {product.original_price:.2f}")
    if product.attributes:
        lines.append("Attributes:")
        lines.extend(f"- {a.name}: {a.value}" for a in product.attributes)
    if product.features:
        lines.append(f"Features: {'; '.join(product.features[:8])}")
    return "\n".join(lines)


def parse_rewrite(raw: Any) -> RewriteResult:
    """Accept a RewriteResult, free text, or a (possibly fenced) JSON envelope.

    Raises EnhancementFailure for empty or malformed output.
    """
    if isinstance(raw, RewriteResult):
        result = raw
    elif isinstance(raw, BaseModel):
        result = RewriteResult.model_validate(raw.model_dump())
    elif isinstance(raw, str):
        text = raw.strip()
        fenced = _CODE_FENCE_RE.match(text)
        if fenced:
            text = fenced.group(1).strip()
        if text.startswith("{"):
            try:
                result = RewriteResult.model_validate(orjson.loads(text))
            except (orjson.JSONDecodeError, ValidationError) as e:
                raise EnhancementFailure(f"malformed JSON envelope: {e}") from e
        elif fenced or text.startswith("["):
            raise EnhancementFailure("unexpected structured output")
        else:
            result = RewriteResult(description=text)
    else:
        raise EnhancementFailure(f"unexpected rewrite output type {type(raw).__name__}")

    if not result.description or not result.description.strip():
        raise EnhancementFailure("empty description")
    return result


def _apply_rewrite(product: Product, result: RewriteResult) -> None:
    product.description = result.description.strip()
    if result.name and result.name.strip():
        product.name = result.name.strip()
    # Scraped rating wins over a model-provided score
    if product.score is None and result.score is not None and 0 <= result.score <= _MAX_SCORE:
        product.score = round(result.score, 2)


# =====================================================================
# Common updates
# =====================================================================


def apply_common_updates(product: Product) -> None:
    if not product.shipping_info:
        product.shipping_info = config.DEFAULT_SHIPPING_INFO
    if not product.payment_options:
        product.payment_options = list(config.DEFAULT_PAYMENT_OPTIONS)
    if not product.stock_status:
        product.stock_status = config.DEFAULT_STOCK_STATUS
    if not product.seller_name:
        product.seller_name = config.DEFAULT_SELLER_NAME

    product.rating_count = max(product.rating_count, config.RATING_COUNT_FLOOR)
    product.favorite_count = max(product.favorite_count, config.FAVORITE_COUNT_FLOOR)
    product.set_attribute("Rating Count", str(product.rating_count))
    product.set_attribute("Favorite Count", str(product.favorite_count))

    if product.score is None:
        product.score = config.DEFAULT_SCORE
