"""Local vector search over stored product embeddings, alone or merged with text search."""

import asyncio
from typing import List, Optional, Tuple

import numpy as np

from storefront_search.database import ProductRepository
from storefront_search.embeddings import EMBEDDING_DIMENSIONS, embedding_text, generate_embedding
from storefront_search.logger import get_logger
from storefront_search.models import INDEX_FIELDS, SEARCH_FIELDS, HybridMatch, Product, TextFilter, VectorMatch
from storefront_search.scoring import cosine_similarity

logger = get_logger()

VECTOR_SAMPLE_SIZE = 500
DEFAULT_MAX_PRICE = 100000.0

VECTOR_WEIGHT = 0.6
TEXT_WEIGHT = 0.4
POPULARITY_BOOST = 0.00001

NAME_WEIGHT = 0.3
DESCRIPTION_WEIGHT = 0.2
TAG_WEIGHT = 0.15
FEATURE_WEIGHT = 0.1
ANYWHERE_WEIGHT = 0.05

HYBRID_NAME_BOOST = 0.2
HYBRID_VECTOR_WEIGHT = 0.7
HYBRID_TEXT_WEIGHT = 0.3


def text_similarity(product: Product, query: str) -> float:
    """
    Per-word text match score.

    Each query word longer than two characters counts once, for the first
    field it is found in: name, description, tags, features, then anywhere
    in the product document.
    """
    name = (product.name or '').lower()
    description = (product.description or '').lower()
    document = embedding_text(product).lower()

    score = 0.0
    for word in query.lower().split():
        if len(word) <= 2:
            continue
        if word in name:
            score += NAME_WEIGHT
        elif word in description:
            score += DESCRIPTION_WEIGHT
        elif any(word in tag for tag in product.tags):
            score += TAG_WEIGHT
        elif any(word in feature for feature in product.features):
            score += FEATURE_WEIGHT
        elif word in document:
            score += ANYWHERE_WEIGHT
    return score


def vector_score(product: Product, query: str, query_embedding: np.ndarray) -> float:
    """Blend of embedding and text similarity plus a popularity boost, capped at 1.0."""
    text_score = text_similarity(product, query)
    stored = product.vector_embedding
    if stored:
        # A stored vector of the wrong length still takes the blended weights.
        cosine = cosine_similarity(query_embedding, stored) if len(stored) == EMBEDDING_DIMENSIONS else 0.0
        similarity = cosine * VECTOR_WEIGHT + text_score * TEXT_WEIGHT
    else:
        similarity = text_score
    return min(similarity + (product.popularity or 0) * POPULARITY_BOOST, 1.0)


def _price_filter(
    text_filter: TextFilter,
    price_range: Optional[Tuple[Optional[float], Optional[float]]]
) -> TextFilter:
    if price_range is not None:
        min_price, max_price = price_range
        text_filter.min_price = min_price if min_price is not None else 0.0
        text_filter.max_price = max_price if max_price is not None else DEFAULT_MAX_PRICE
    return text_filter


async def vector_search(
    repository: ProductRepository,
    query: str,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    price_range: Optional[Tuple[Optional[float], Optional[float]]] = None,
    limit: int = 20
) -> List[VectorMatch]:
    """
    Score filtered products against the query embedding.

    Args:
        repository: Product store
        query: Free-text query
        category: Exact category filter
        brand: Exact brand filter
        price_range: (min, max) price bounds; missing bounds default to 0 and 100000
        limit: Maximum number of matches

    Returns:
        VectorMatch list sorted by descending vector_score

    Raises:
        RepositoryError: If the product store cannot be read
    """
    text_filter = _price_filter(TextFilter(category=category or None, brand=brand or None), price_range)

    try:
        products = await repository.find_by_text_filter(text_filter, VECTOR_SAMPLE_SIZE, INDEX_FIELDS)
    except Exception as e:
        logger.error(f"Vector search error: {str(e)}", exc_info=True)
        raise

    query_embedding = generate_embedding(query)
    matches = [
        VectorMatch(product=product, vector_score=vector_score(product, query, query_embedding))
        for product in products
    ]
    matches.sort(key=lambda match: match.vector_score, reverse=True)
    logger.info(f"Vector search for {query!r} scored {len(matches)} products")
    return matches[:limit]


async def hybrid_search(
    repository: ProductRepository,
    query: str,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    price_range: Optional[Tuple[Optional[float], Optional[float]]] = None,
    limit: int = 20
) -> List[HybridMatch]:
    """
    Merge the vector search with a plain text search.

    Both searches read twice the limit. A product found by both keeps its
    vector-derived score: the vector score, plus 0.2 when the name contains
    the whole query, times 0.7 and capped at 1.0. Text-only products score
    0.3 times their per-word text similarity.

    Raises:
        RepositoryError: If the product store cannot be read
    """
    text_filter = _price_filter(
        TextFilter(text=query or None, category=category or None, brand=brand or None),
        price_range,
    )

    try:
        vector_matches, text_products = await asyncio.gather(
            vector_search(repository, query, category, brand, price_range, limit * 2),
            repository.find_by_text_filter(text_filter, limit * 2, SEARCH_FIELDS),
        )
    except Exception as e:
        logger.error(f"Hybrid search error: {str(e)}", exc_info=True)
        raise

    query_lower = query.lower()
    seen_ids = set()
    combined = []
    for match in vector_matches:
        if match.product.id in seen_ids:
            continue
        score = match.vector_score
        if query_lower in (match.product.name or '').lower():
            score += HYBRID_NAME_BOOST
        combined.append(HybridMatch(product=match.product, hybrid_score=min(score * HYBRID_VECTOR_WEIGHT, 1.0)))
        seen_ids.add(match.product.id)

    for product in text_products:
        if product.id in seen_ids:
            continue
        combined.append(HybridMatch(
            product=product,
            hybrid_score=text_similarity(product, query) * HYBRID_TEXT_WEIGHT,
        ))
        seen_ids.add(product.id)

    combined.sort(key=lambda match: match.hybrid_score, reverse=True)
    logger.info(f"Hybrid search for {query!r} merged {len(combined)} products")
    return combined[:limit]
