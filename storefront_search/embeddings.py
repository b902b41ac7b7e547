"""Deterministic hash-based pseudo-embeddings for products and queries."""

from typing import Dict, Optional

import numpy as np

from storefront_search.logger import get_logger
from storefront_search.utils import preprocess_text, simple_hash

logger = get_logger()

EMBEDDING_DIMENSIONS = 1536

SEMANTIC_WEIGHT = 0.3
SEMANTIC_SPREAD = 3
HASH_WEIGHT = 0.15
HASH_SPREAD = 15

# Related terms share an anchor so they land on the same dimensions.
SEMANTIC_GROUPS = {
    0: ['iphone', 'phone', 'phones', 'smartphone', 'smartphones', 'mobile', 'cellphone', 'android'],
    64: ['apple', 'ios', 'macbook', 'ipad', 'airpods'],
    128: ['samsung', 'galaxy'],
    192: ['pixel', 'google', 'oneplus', 'xiaomi', 'motorola'],
    256: ['television', 'tvs', 'oled', 'qled', 'led', 'hdr', 'uhd'],
    320: ['sony', 'bravia', 'panasonic', 'hisense', 'tcl', 'vizio'],
    384: ['laptop', 'laptops', 'notebook', 'computer', 'desktop', 'ultrabook', 'chromebook'],
    448: ['dell', 'lenovo', 'asus', 'acer', 'msi', 'thinkpad'],
    512: ['tablet', 'tablets', 'kindle', 'surface'],
    576: ['headphones', 'headphone', 'earbuds', 'earphones', 'headset', 'speaker', 'speakers', 'audio', 'bluetooth', 'wireless'],
    640: ['bose', 'jbl', 'beats', 'sennheiser'],
    704: ['camera', 'cameras', 'dslr', 'mirrorless', 'lens', 'canon', 'nikon', 'gopro'],
    768: ['watch', 'smartwatch', 'fitness', 'tracker', 'wearable', 'garmin', 'fitbit'],
    832: ['console', 'gaming', 'playstation', 'xbox', 'nintendo', 'controller'],
    896: ['shirt', 'shirts', 'jeans', 'jacket', 'dress', 'hoodie', 'sweater', 'clothing', 'apparel'],
    960: ['shoes', 'sneakers', 'boots', 'running', 'nike', 'adidas', 'puma'],
    1024: ['book', 'books', 'novel', 'paperback', 'hardcover', 'ebook'],
    1088: ['kitchen', 'home', 'furniture', 'sofa', 'chair', 'table', 'lamp', 'vacuum', 'coffee'],
    1152: ['sports', 'yoga', 'gym', 'bike', 'football', 'basketball', 'tennis'],
    1216: ['beauty', 'skincare', 'makeup', 'perfume', 'shampoo', 'cosmetics'],
    1280: ['toy', 'toys', 'lego', 'puzzle', 'doll', 'kids'],
    1344: ['electronics', 'electronic', 'gadget', 'smart', 'charger', 'cable'],
    1408: ['display', 'screen', 'monitor', 'inch', 'resolution'],
    1472: ['battery', 'processor', 'storage', 'memory', 'ram', 'ssd', 'chip'],
}

SEMANTIC_KEYWORDS: Dict[str, int] = {
    term: anchor
    for anchor, terms in SEMANTIC_GROUPS.items()
    for term in terms
}


def _bump(vector: np.ndarray, start: int, count: int, weight: float) -> None:
    """Add weight to count consecutive positions, wrapping values past 1.0."""
    for i in range(count):
        position = (start + i) % EMBEDDING_DIMENSIONS
        vector[position] = (vector[position] + weight) % 1.0


def normalize(vector: np.ndarray) -> np.ndarray:
    """L2-normalize a vector; zero or non-finite magnitudes are returned unchanged."""
    magnitude = float(np.linalg.norm(vector))
    if magnitude == 0 or not np.isfinite(magnitude):
        return vector
    return vector / magnitude


def generate_embedding(text: Optional[str]) -> np.ndarray:
    """
    Build the pseudo-embedding of a text.

    Every token adds 0.15 to the 15 positions starting at its hash; tokens in
    the semantic keyword table also add 0.3 to the 3 positions starting at
    their group anchor. Additions wrap modulo 1.0 instead of saturating.

    Args:
        text: Input text; None and empty strings give the zero vector

    Returns:
        numpy array of EMBEDDING_DIMENSIONS floats, unit length unless zero
    """
    vector = np.zeros(EMBEDDING_DIMENSIONS, dtype=np.float64)
    try:
        for token in preprocess_text(text):
            try:
                anchor = SEMANTIC_KEYWORDS.get(token)
                if anchor is not None:
                    _bump(vector, anchor, SEMANTIC_SPREAD, SEMANTIC_WEIGHT)
                _bump(vector, simple_hash(token), HASH_SPREAD, HASH_WEIGHT)
            except Exception as e:
                logger.warning(f"Skipping token {token!r} in embedding: {e}")
        return normalize(vector)
    except Exception as e:
        logger.error(f"Error generating embedding: {str(e)}", exc_info=True)
        return np.zeros(EMBEDDING_DIMENSIONS, dtype=np.float64)


def embedding_text(product) -> str:
    """Document string used for a product's stored embedding."""
    return ' '.join([
        product.name or '',
        product.description or '',
        product.brand or '',
        product.category or '',
        ' '.join(product.tags or []),
        ' '.join(product.features or []),
    ])


def product_embedding(product) -> np.ndarray:
    """Stored embedding of a product when usable, otherwise a freshly generated one."""
    stored = product.vector_embedding
    if stored and len(stored) == EMBEDDING_DIMENSIONS:
        return np.asarray(stored, dtype=np.float64)
    return generate_embedding(embedding_text(product))
