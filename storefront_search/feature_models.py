"""Numeric product features and the category/brand models built on them."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from storefront_search.models import BrandRelation, Product
from storefront_search.utils import preprocess_text, product_text, simple_hash

TEXT_FEATURES = 20
HASH_SCALE = 1000000

CATEGORY_OVERLAP_WEIGHT = 0.4
PRICE_PROXIMITY_WEIGHT = 0.3
FEATURE_SIMILARITY_WEIGHT = 0.3


def extract_ml_features(product: Product) -> List[float]:
    """
    Hashed token features followed by normalized numeric features.

    The first TEXT_FEATURES slots hold hash(token) / 1e6 for the leading
    tokens (zero padded), then price/10000, rating/5, popularity/100,
    numReviews/100 and stock/100.
    """
    words = preprocess_text(product_text(product))
    features = [
        simple_hash(words[i]) / HASH_SCALE if i < len(words) else 0.0
        for i in range(TEXT_FEATURES)
    ]
    features.extend([
        (product.price or 0) / 10000,
        (product.rating or 0) / 5,
        (product.popularity or 0) / 100,
        (product.num_reviews or 0) / 100,
        (product.stock or 0) / 100,
    ])
    return features


def feature_similarity(features1: Optional[Sequence[float]], features2: Optional[Sequence[float]]) -> float:
    """Mean per-dimension similarity 1 - |a - b| / max(|a|, |b|, 1)."""
    if not features1 or not features2:
        return 0.0

    min_length = min(len(features1), len(features2))
    total = 0.0
    for a, b in zip(features1[:min_length], features2[:min_length]):
        total += 1 - abs(a - b) / max(abs(a), abs(b), 1)
    return total / min_length


class CategoryModel:
    """Nearest-category classifier over averaged feature similarity."""

    def __init__(self, category_data: Dict[str, List[List[float]]], training_limit: int = 50):
        self.category_data = category_data
        self.training_limit = training_limit

    @classmethod
    def fit(cls, products: Sequence[Product], sample_size: int = 200, training_limit: int = 50) -> "CategoryModel":
        category_data: Dict[str, List[List[float]]] = {}
        for product in products[:sample_size]:
            category = (product.category or '').lower()
            category_data.setdefault(category, []).append(extract_ml_features(product))
        return cls(category_data, training_limit=training_limit)

    @property
    def categories(self) -> List[str]:
        return list(self.category_data)

    def score(self, features: Sequence[float], category: str) -> float:
        """Average similarity of features to the category's leading training vectors."""
        training = self.category_data.get(category, [])[:self.training_limit]
        if not training:
            return 0.0
        return sum(feature_similarity(features, row) for row in training) / len(training)

    def classify(self, features: Sequence[float]) -> Tuple[Optional[str], float]:
        """
        Return the best matching category and its confidence.

        With no trained categories the result is (None, 0.0).
        """
        best_category = None
        best_score = float('-inf')
        for category in self.category_data:
            score = self.score(features, category)
            if score > best_score:
                best_score = score
                best_category = category

        if best_category is None:
            return None, 0.0
        return best_category, best_score


@dataclass
class BrandProfile:
    """Aggregated catalog data for one brand."""
    categories: Set[str] = field(default_factory=set)
    prices: List[float] = field(default_factory=list)
    features: List[List[float]] = field(default_factory=list)

    @property
    def average_price(self) -> float:
        return sum(self.prices) / len(self.prices) if self.prices else 0.0


class BrandModel:
    """Brand relatedness from shared categories, price level and features."""

    def __init__(self, brand_data: Dict[str, BrandProfile], feature_limit: int = 50):
        self.brand_data = brand_data
        self.feature_limit = feature_limit

    @classmethod
    def fit(cls, products: Sequence[Product], sample_size: int = 200, feature_limit: int = 50) -> "BrandModel":
        brand_data: Dict[str, BrandProfile] = {}
        for product in products[:sample_size]:
            profile = brand_data.setdefault((product.brand or '').lower(), BrandProfile())
            profile.categories.add((product.category or '').lower())
            profile.prices.append(product.price or 0)
            profile.features.append(extract_ml_features(product))
        return cls(brand_data, feature_limit=feature_limit)

    @property
    def brands(self) -> List[str]:
        return list(self.brand_data)

    def average_feature_similarity(self, features1: List[List[float]], features2: List[List[float]]) -> float:
        """Mean pairwise feature similarity over the leading vectors of both brands."""
        left = features1[:self.feature_limit]
        right = features2[:self.feature_limit]
        if not left or not right:
            return 0.0

        total = sum(feature_similarity(f1, f2) for f1 in left for f2 in right)
        return total / (len(left) * len(right))

    def relatedness(self, target: BrandProfile, other: BrandProfile) -> float:
        overlap = len(target.categories & other.categories)
        similarity = overlap * CATEGORY_OVERLAP_WEIGHT

        price1 = target.average_price
        price2 = other.average_price
        price_diff = abs(price1 - price2) / max(price1, price2, 1)
        similarity += (1 - price_diff) * PRICE_PROXIMITY_WEIGHT

        similarity += self.average_feature_similarity(target.features, other.features) * FEATURE_SIMILARITY_WEIGHT
        return similarity

    def find_related_brands(self, brand: str, limit: int = 5) -> List[BrandRelation]:
        """
        Rank the other brands by relatedness to brand.

        Args:
            brand: Brand name (case-insensitive)
            limit: Maximum number of related brands

        Returns:
            BrandRelation list sorted by descending similarity
        """
        key = (brand or '').lower()
        target = self.brand_data.get(key)
        if target is None:
            return []

        relations = [
            BrandRelation(brand=other_brand, similarity=self.relatedness(target, profile))
            for other_brand, profile in self.brand_data.items()
            if other_brand != key
        ]
        relations.sort(key=lambda relation: relation.similarity, reverse=True)
        return relations[:limit]
