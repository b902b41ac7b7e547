"""Similarity measures and the rule-based ranking layer."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from storefront_search.feature_models import CategoryModel, extract_ml_features
from storefront_search.logger import get_logger
from storefront_search.models import Product, RankedProduct

logger = get_logger()

WORD2VEC_WEIGHT = 0.4
TFIDF_WEIGHT = 0.3
EMBEDDING_WEIGHT = 0.3

BASE_SCORE = 1.0
MIN_SCORE = 0.0
SIMILARITY_MULTIPLIER = 2.0
CATEGORY_CONFIDENCE_WEIGHT = 0.3
RATING_WEIGHT = 0.02
POPULARITY_DIVISOR = 200
POPULARITY_CAP = 0.1

INDEXED_NAME_MATCH = 4.0
FALLBACK_NAME_MATCH = 6.0
FALLBACK_CATEGORY_MATCH = 1.0
FALLBACK_BRAND_MATCH = 0.8

MAX_SCORE = 15.0
LEGACY_MAX_SCORE = 3.0


class ScoringPath(str, Enum):
    """Search path a score is computed for; rule magnitudes differ per path."""
    INDEXED = "indexed"
    FALLBACK = "fallback"


@dataclass
class ProductVector:
    """Composite vector of a product or query."""
    word2vec: Optional[np.ndarray] = None
    tfidf: Optional[np.ndarray] = None
    embedding: Optional[np.ndarray] = None
    name: str = ''
    category: str = ''
    brand: str = ''


def cosine_similarity(vector1: Optional[Sequence[float]], vector2: Optional[Sequence[float]]) -> float:
    """
    Cosine similarity over the common prefix of two vectors.

    Returns 0.0 when either vector is missing, empty or has zero magnitude.
    """
    if vector1 is None or vector2 is None:
        return 0.0

    a = np.asarray(vector1, dtype=np.float64)
    b = np.asarray(vector2, dtype=np.float64)
    length = min(a.size, b.size)
    if length == 0:
        return 0.0

    a = a[:length]
    b = b[:length]
    magnitude1 = float(np.sqrt(np.dot(a, a)))
    magnitude2 = float(np.sqrt(np.dot(b, b)))
    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0
    return float(np.dot(a, b) / (magnitude1 * magnitude2))


def ml_similarity(vector1: ProductVector, vector2: ProductVector) -> float:
    """Weighted blend of the word2vec, TF-IDF and embedding similarities present on both sides."""
    similarity = 0.0
    if vector1.word2vec is not None and vector2.word2vec is not None:
        similarity += cosine_similarity(vector1.word2vec, vector2.word2vec) * WORD2VEC_WEIGHT
    if vector1.tfidf is not None and vector2.tfidf is not None:
        similarity += cosine_similarity(vector1.tfidf, vector2.tfidf) * TFIDF_WEIGHT
    if vector1.embedding is not None and vector2.embedding is not None:
        similarity += cosine_similarity(vector1.embedding, vector2.embedding) * EMBEDDING_WEIGHT
    return similarity


@dataclass(frozen=True)
class FieldMatch:
    """True when any of the fields contains (or equals) any of the values."""
    fields: Tuple[str, ...]
    values: Tuple[str, ...]
    exact: bool = False

    def matches(self, attributes: Dict[str, str]) -> bool:
        for name in self.fields:
            text = attributes.get(name, '')
            for value in self.values:
                if (text == value) if self.exact else (value in text):
                    return True
        return False


@dataclass(frozen=True)
class Adjustment:
    """Score change applied when every condition matches."""
    conditions: Tuple[FieldMatch, ...]
    indexed: float
    fallback: float

    def amount(self, path: ScoringPath) -> float:
        return self.indexed if path == ScoringPath.INDEXED else self.fallback


@dataclass(frozen=True)
class IntentRule:
    """Query-intent rule: triggered by a substring of the lower-cased query."""
    name: str
    triggers: Tuple[str, ...]
    adjustments: Tuple[Adjustment, ...]

    def triggered_by(self, query_lower: str) -> bool:
        return any(trigger in query_lower for trigger in self.triggers)

    def apply(self, attributes: Dict[str, str], path: ScoringPath) -> float:
        delta = 0.0
        for adjustment in self.adjustments:
            if all(condition.matches(attributes) for condition in adjustment.conditions):
                delta += adjustment.amount(path)
        return delta


PHONE_INTENT = IntentRule(
    name="phone",
    triggers=("iphone", "phone", "apple"),
    adjustments=(
        Adjustment((FieldMatch(("name",), ("iphone", "apple")),), indexed=8.0, fallback=10.0),
        Adjustment((FieldMatch(("brand",), ("apple",), exact=True),), indexed=5.0, fallback=6.0),
        Adjustment((FieldMatch(("category",), ("phone", "smartphone", "mobile")),), indexed=3.0, fallback=4.0),
        Adjustment((FieldMatch(("category", "name"), ("tv", "television")),), indexed=-15.0, fallback=-20.0),
        Adjustment(
            (
                FieldMatch(("brand",), ("lg", "samsung"), exact=True),
                FieldMatch(("category",), ("tv", "electronics")),
            ),
            indexed=-10.0,
            fallback=-15.0,
        ),
    ),
)

TV_INTENT = IntentRule(
    name="tv",
    triggers=("tv", "television"),
    adjustments=(
        Adjustment((FieldMatch(("category",), ("tv", "television")),), indexed=3.0, fallback=4.0),
        Adjustment((FieldMatch(("category",), ("phone", "smartphone")),), indexed=-5.0, fallback=-8.0),
    ),
)

DEFAULT_INTENT_RULES: Tuple[IntentRule, ...] = (PHONE_INTENT, TV_INTENT)


def _attributes(product: Product) -> Dict[str, str]:
    return {
        "name": (product.name or '').lower(),
        "brand": (product.brand or '').lower(),
        "category": (product.category or '').lower(),
    }


def intent_adjustment(
    product: Product,
    query_lower: str,
    path: ScoringPath,
    rules: Iterable[IntentRule] = DEFAULT_INTENT_RULES
) -> float:
    """Sum of the adjustments of every rule the query triggers."""
    attributes = _attributes(product)
    return sum(
        rule.apply(attributes, path)
        for rule in rules
        if rule.triggered_by(query_lower)
    )


def quality_bonus(product: Product) -> float:
    """Small rating and popularity bonus."""
    return (product.rating or 0) * RATING_WEIGHT + min((product.popularity or 0) / POPULARITY_DIVISOR, POPULARITY_CAP)


def score_indexed(
    product: Product,
    query: str,
    similarity: Optional[float] = None,
    category_model: Optional[CategoryModel] = None,
    rules: Iterable[IntentRule] = DEFAULT_INTENT_RULES
) -> RankedProduct:
    """
    Final score of a product found through the indexed path.

    Args:
        product: Full product record
        query: Raw query text
        similarity: ML similarity to the query vector, if one was computed
        category_model: Model providing the category confidence bonus
        rules: Query-intent rules

    Returns:
        RankedProduct with ai_score capped at MAX_SCORE
    """
    query_lower = query.lower()
    score = BASE_SCORE

    if similarity is not None:
        score += similarity * SIMILARITY_MULTIPLIER

    if query_lower in (product.name or '').lower():
        score += INDEXED_NAME_MATCH

    score += intent_adjustment(product, query_lower, ScoringPath.INDEXED, rules)

    if category_model is not None:
        _, confidence = category_model.classify(extract_ml_features(product))
        score += confidence * CATEGORY_CONFIDENCE_WEIGHT

    score += quality_bonus(product)

    return RankedProduct(
        **product.model_dump(),
        ai_score=min(score, MAX_SCORE),
        ml_similarity=similarity or 0.0,
    )


def score_fallback(
    product: Product,
    query: str,
    category: str = '',
    brand: str = '',
    rules: Iterable[IntentRule] = DEFAULT_INTENT_RULES
) -> RankedProduct:
    """Final score of a product found by the fallback database search."""
    query_lower = query.lower()
    score = BASE_SCORE

    if query and query_lower in (product.name or '').lower():
        score += FALLBACK_NAME_MATCH

    score += intent_adjustment(product, query_lower, ScoringPath.FALLBACK, rules)

    if category and product.category == category:
        score += FALLBACK_CATEGORY_MATCH
    if brand and product.brand == brand:
        score += FALLBACK_BRAND_MATCH

    score += quality_bonus(product)

    return RankedProduct(**product.model_dump(), ai_score=min(score, MAX_SCORE))


def score_legacy(product: Product, query: str, category: str = '', brand: str = '') -> RankedProduct:
    """Plain scoring of the legacy search path (capped at LEGACY_MAX_SCORE)."""
    score = BASE_SCORE

    if query.lower() in (product.name or '').lower():
        score += 2.0
    if category and product.category == category:
        score += 0.5
    if brand and product.brand == brand:
        score += 0.3

    score += ((product.rating or 0) / 5) * 0.2
    score += ((product.popularity or 0) / 100) * 0.1

    return RankedProduct(**product.model_dump(), ai_score=min(score, LEGACY_MAX_SCORE))


def rank_products(products: Iterable[Product], scorer: Callable[[Product], RankedProduct]) -> List[RankedProduct]:
    """
    Score every product and sort by descending ai_score.

    A product whose scoring raises keeps MIN_SCORE instead of aborting the
    whole ranking pass.
    """
    ranked = []
    for product in products:
        try:
            ranked.append(scorer(product))
        except Exception as e:
            logger.error(f"Error scoring product {product.id}: {str(e)}", exc_info=True)
            ranked.append(RankedProduct(**product.model_dump(), ai_score=MIN_SCORE))
    ranked.sort(key=lambda item: item.ai_score, reverse=True)
    return ranked
