"""
products.py — The closed catalog of mockup product types.

Display metadata (label used in prompts and captions, icon used on buttons)
lives in a lookup table keyed by ProductType, so adding UI affordances never
means branching on the enum.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List


class ProductType(str, Enum):
    TSHIRT = "tshirt"
    HOODIE = "hoodie"
    MUG = "mug"
    TOTE_BAG = "tote_bag"
    CAP = "cap"
    NOTEBOOK = "notebook"

    @property
    def label(self) -> str:
        return PRODUCT_CATALOG[self].label

    @property
    def icon(self) -> str:
        return PRODUCT_CATALOG[self].icon


@dataclass(frozen=True)
class ProductInfo:
    label: str
    icon: str


PRODUCT_CATALOG: Dict[ProductType, ProductInfo] = {
    ProductType.TSHIRT:   ProductInfo("T-Shirt", "👕"),
    ProductType.HOODIE:   ProductInfo("Hoodie", "🧥"),
    ProductType.MUG:      ProductInfo("Coffee Mug", "☕"),
    ProductType.TOTE_BAG: ProductInfo("Tote Bag", "👜"),
    ProductType.CAP:      ProductInfo("Baseball Cap", "🧢"),
    ProductType.NOTEBOOK: ProductInfo("Notebook", "📓"),
}


def catalog_order(product_types: Iterable[ProductType]) -> List[ProductType]:
    """Return the given product types de-duplicated, in catalog declaration order."""
    wanted = set(product_types)
    return [p for p in ProductType if p in wanted]


def parse_product(value: str) -> ProductType:
    """Resolve a slug ("tote_bag"), enum name ("TOTE_BAG") or label ("Tote Bag")."""
    needle = value.strip().lower().replace("-", "_").replace(" ", "_")
    for product in ProductType:
        label = product.label.lower().replace("-", "_").replace(" ", "_")
        if needle in (product.value, product.name.lower(), label):
            return product
    raise ValueError(
        f"Unknown product type {value!r}. Choose from: "
        + ", ".join(p.value for p in ProductType)
    )
