"""Text helpers shared by every search model."""

import re
from typing import List, Optional

STOP_WORDS = frozenset([
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'have',
    'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should',
])

_NON_WORD = re.compile(r'[^\w\s]')
_INT32 = 1 << 32


def preprocess_text(text: Optional[str]) -> List[str]:
    """
    Tokenize free text for the search models.

    Lowercases, replaces punctuation with spaces, splits on whitespace and
    drops tokens of two characters or less as well as stop words. No stemming.

    Args:
        text: Input text (None is treated as empty)

    Returns:
        List of tokens in text order
    """
    if not text:
        return []

    cleaned = _NON_WORD.sub(' ', text.lower())
    return [
        token for token in cleaned.split()
        if len(token) > 2 and token not in STOP_WORDS
    ]


def simple_hash(text: str) -> int:
    """
    Polynomial rolling hash with 32-bit signed wraparound.

    Iterates over UTF-16 code units so stored embeddings stay reproducible
    across implementations; the result is the absolute value of the final
    signed 32-bit hash.
    """
    value = 0
    data = text.encode('utf-16-le')
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        value = (value * 31 + code_unit) % _INT32
        if value >= 1 << 31:
            value -= _INT32
    return abs(value)


def product_text(product, include_features: bool = True) -> str:
    """Join name, description, tags and optionally features into one document."""
    parts = [
        product.name or '',
        product.description or '',
        ' '.join(product.tags or []),
    ]
    if include_features:
        parts.append(' '.join(product.features or []))
    return ' '.join(parts)
