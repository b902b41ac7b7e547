"""In-memory lookup tables for candidate retrieval."""

from typing import Dict, List, Sequence

from storefront_search.models import Product


class ProductIndexes:
    """
    Lookup tables keyed exactly as values are stored.

    Built wholesale from one catalog load; never updated incrementally.
    """

    def __init__(self):
        self.by_id: Dict[str, Product] = {}
        self.by_category: Dict[str, List[str]] = {}
        self.by_brand: Dict[str, List[str]] = {}
        self.by_tag: Dict[str, List[str]] = {}

    @classmethod
    def build(cls, products: Sequence[Product]) -> "ProductIndexes":
        indexes = cls()
        for product in products:
            product_id = product.id
            indexes.by_id[product_id] = product
            indexes.by_category.setdefault(product.category, []).append(product_id)
            indexes.by_brand.setdefault(product.brand, []).append(product_id)
            for tag in product.tags:
                indexes.by_tag.setdefault(tag, []).append(product_id)
        return indexes

    def __len__(self) -> int:
        return len(self.by_id)

    def candidates(self, category: str = '', brand: str = '', per_filter: int = 40, cap: int = 1000) -> List[str]:
        """
        Candidate ids for a query.

        The category index wins over the brand index; each is sliced to
        per_filter ids. Without a usable filter the first cap ids are used.
        """
        narrowed = self.filter_ids(category, brand, per_filter)
        if narrowed:
            return narrowed
        return list(self.by_id)[:cap]

    def filter_ids(self, category: str = '', brand: str = '', per_filter: int = 40) -> List[str]:
        """Index-narrowed ids for the fallback path; empty when no filter applies."""
        if category and category in self.by_category:
            return self.by_category[category][:per_filter]
        if brand and brand in self.by_brand:
            return self.by_brand[brand][:per_filter]
        return []

    def with_tag(self, tag: str) -> List[str]:
        return list(self.by_tag.get(tag.lower(), []))
