from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Canonical names for attribute keys the site labels in several ways.
# Maps raw key (lowercased, trailing ":" stripped) -> canonical attribute name.
_ATTR_NAME_ALIASES = {
    # -> Color
    "renk": "Color",
    "colour": "Color",
    "color": "Color",
    "web color": "Color",
    # -> Size
    "beden": "Size",
    "size": "Size",
    "numara": "Size",
    # -> Material
    "materyal": "Material",
    "kumaş tipi": "Material",
    "material": "Material",
    # -> Style
    "stil": "Style",
    "style": "Style",
    # -> Gender
    "cinsiyet": "Gender",
    "gender": "Gender",
    # -> Dimensions
    "boyut/ebat": "Dimensions",
    "ebat": "Dimensions",
    "boyut": "Dimensions",
    "dimensions": "Dimensions",
}


def canonical_attribute_name(name: str) -> str:
    key = name.strip().rstrip(":").strip()
    return _ATTR_NAME_ALIASES.get(key.lower(), key)


class _CamelModel(BaseModel):
    # JSON uses camelCase (sku, parentSku, originalPrice, ...) for the frontend
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductAttribute(_CamelModel):
    """A single {name, value} pair. Names need not be unique within a product."""

    name: str
    value: str

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return canonical_attribute_name(v)


class Product(_CamelModel):
    """A sellable product or one of its color/size variants."""

    sku: str
    parent_sku: str | None = None
    name: str
    description: str | None = None
    brand: str
    category: str | None = None
    # Major currency units (TRY for the reference site)
    original_price: float = 0.0
    discounted_price: float = 0.0
    images: list[str] = []
    attributes: list[ProductAttribute] = []
    features: list[str] = []
    color: str | None = None
    size: str | None = None
    variants: list["Product"] = []
    is_main_variant: bool = False
    # Quality signal on a 0-5 scale
    score: float | None = None
    rating_count: int = 0
    favorite_count: int = 0
    shipping_info: str | None = None
    payment_options: list[str] = []
    stock_status: str | None = None
    seller_name: str | None = None
    url: str | None = None
    is_saved: bool = False

    @model_validator(mode="after")
    def reconcile_prices(self) -> "Product":
        original = max(self.original_price or 0.0, 0.0)
        discounted = max(self.discounted_price or 0.0, 0.0)
        if not original:
            original = discounted
        if not discounted:
            discounted = original
        if discounted > original:
            original, discounted = discounted, original
        self.original_price = round(original, 2)
        self.discounted_price = round(discounted, 2)
        return self

    def copy_product(self) -> "Product":
        """Deep copy: the clone shares no lists or nested models with self."""
        return self.model_copy(deep=True)

    def get_attribute(self, name: str) -> str | None:
        name = canonical_attribute_name(name).lower()
        for attr in self.attributes:
            if attr.name.lower() == name:
                return attr.value
        return None

    def set_attribute(self, name: str, value: str) -> None:
        """Overwrite the first attribute with this name, or append a new one."""
        canonical = canonical_attribute_name(name)
        for attr in self.attributes:
            if attr.name.lower() == canonical.lower():
                attr.value = value
                return
        self.attributes.append(ProductAttribute(name=canonical, value=value))


class ProductVariants(_CamelModel):
    colors: list[str] = []
    sizes: list[str] = []
    variants: list[Product] = []

    @classmethod
    def from_product(cls, product: Product) -> "ProductVariants":
        colors: list[str] = []
        sizes: list[str] = []
        for v in product.variants:
            if v.color and v.color not in colors:
                colors.append(v.color)
            if v.size and v.size not in sizes:
                sizes.append(v.size)
        return cls(colors=colors, sizes=sizes, variants=[v.copy_product() for v in product.variants])


class CrawlRequest(BaseModel):
    url: str = Field(default="")
