"""Error types raised across the crawl / transform / save pipeline."""


class ProductPipelineError(Exception):
    """Base class for all pipeline errors."""


class MissingRequiredField(ProductPipelineError):
    """A required field (name or brand) could not be extracted from a page."""

    def __init__(self, field: str, url: str | None = None):
        self.field = field
        self.url = url
        where = f" on {url}" if url else ""
        super().__init__(f"Required field '{field}' not found{where}")


class VariantFetchFailure(ProductPipelineError):
    """A single variant page could not be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Variant page {url} failed: {reason}")


class EnhancementFailure(ProductPipelineError):
    """The description rewrite returned nothing usable."""


class NotFound(ProductPipelineError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product with SKU {sku} not found")


class StoreWriteFailure(ProductPipelineError):
    """Persisting the store failed; nothing was written."""
