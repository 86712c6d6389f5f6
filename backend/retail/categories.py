"""
Product Categories — SKU-pattern grouping and low-stock thresholds.

Categories are matched by SKU prefix, except MultiCharger which is only
recognisable by its product title. Unmatched SKUs use the default threshold.
"""

import re
from dataclasses import dataclass

DEFAULT_LOW_STOCK_THRESHOLD = 10


@dataclass(frozen=True)
class ProductCategory:
    name: str
    threshold: int
    sku_pattern: re.Pattern | None = None
    title_pattern: re.Pattern | None = None

    def matches(self, sku: str, product_name: str | None = None) -> bool:
        # Title-matched categories ignore the SKU entirely
        if self.title_pattern is not None:
            return bool(product_name and self.title_pattern.search(product_name))
        return bool(sku and self.sku_pattern and self.sku_pattern.match(sku))


PRODUCT_CATEGORIES: tuple[ProductCategory, ...] = (
    ProductCategory("iPhone", 20, re.compile(r"MBC1\d+|EC\d+|MBCX\d+")),
    ProductCategory("Samsung", 15, re.compile(r"MBS\d+|ES\d+")),
    ProductCategory("Pixel", 10, re.compile(r"MBP\d+|EP\d+")),
    ProductCategory("Wallets", 25, re.compile(r"MBWLT-|LSR-WLT-|FMWLT-")),
    ProductCategory("Tesla Charger", 5, re.compile(r"MBT")),
    ProductCategory("MultiCharger", 10, title_pattern=re.compile(r"multicharger", re.IGNORECASE)),
    ProductCategory("Car Charger", 10, re.compile(r"MBQI-")),
    ProductCategory("RimCase", 15, re.compile(r"RPTM")),
    ProductCategory("Accessories", 30, re.compile(r"ACC|LP|ACS|ACP|ACU|BTN|WRT|APD|MBST|SP|MBKH")),
)


def find_category(sku: str, product_name: str | None = None) -> ProductCategory | None:
    """First category (in declaration order) that claims this SKU."""
    for category in PRODUCT_CATEGORIES:
        if category.matches(sku, product_name):
            return category
    return None


def stock_threshold(sku: str, product_name: str | None = None) -> int:
    category = find_category(sku, product_name)
    return category.threshold if category else DEFAULT_LOW_STOCK_THRESHOLD
