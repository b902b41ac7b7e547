"""Lexical vector models built once from a sample of the catalog."""

import math
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np

from storefront_search.models import Product
from storefront_search.utils import preprocess_text, product_text


class TfidfModel:
    """
    TF-IDF table over a bounded catalog sample.

    The vocabulary and IDF table are fixed after fitting. Weights are
    (tf / max tf in document) * ln(total docs / (doc freq + 1)), so terms
    present in most documents may carry negative weights.
    """

    def __init__(self, vocabulary: List[str], idf: Dict[str, float], document_vectors: List[np.ndarray]):
        self.vocabulary = vocabulary
        self.idf = idf
        self.document_vectors = document_vectors
        self._positions = {term: i for i, term in enumerate(vocabulary)}
        self._idf_array = np.array([idf[term] for term in vocabulary], dtype=np.float64)

    @classmethod
    def fit(cls, products: Sequence[Product], sample_size: int = 200) -> "TfidfModel":
        """Build the vocabulary and IDF table from the first sample_size products."""
        documents = [
            preprocess_text(product_text(product, include_features=False))
            for product in products[:sample_size]
        ]

        vocabulary: List[str] = []
        seen = set()
        for tokens in documents:
            for token in tokens:
                if token not in seen:
                    seen.add(token)
                    vocabulary.append(token)

        doc_freq: Counter = Counter()
        for tokens in documents:
            doc_freq.update(set(tokens))

        total_docs = len(documents)
        idf = {
            term: math.log(total_docs / (doc_freq[term] + 1))
            for term in vocabulary
        }

        model = cls(vocabulary, idf, [])
        model.document_vectors = [model.transform(tokens) for tokens in documents]
        return model

    @property
    def size(self) -> int:
        return len(self.vocabulary)

    def transform(self, tokens: Sequence[str]) -> np.ndarray:
        """Dense TF-IDF vector of a token sequence over the fixed vocabulary."""
        vector = np.zeros(len(self.vocabulary), dtype=np.float64)
        if not tokens:
            return vector

        counts = Counter(tokens)
        max_tf = max(counts.values())
        for term, tf in counts.items():
            position = self._positions.get(term)
            if position is not None:
                vector[position] = (tf / max_tf) * self._idf_array[position]
        return vector

    def transform_text(self, text: Optional[str]) -> np.ndarray:
        return self.transform(preprocess_text(text))


class Word2VecModel:
    """
    Co-occurrence word vectors.

    Not a real skip-gram: each training step moves the target word vector a
    fraction of the way toward a context word vector.
    """

    def __init__(self, dimensions: int = 50, learning_rate: float = 0.01):
        self.dimensions = dimensions
        self.learning_rate = learning_rate
        self.word_vectors: Dict[str, np.ndarray] = {}

    @property
    def vocabulary(self) -> List[str]:
        return list(self.word_vectors)

    @classmethod
    def fit(
        cls,
        products: Sequence[Product],
        dimensions: int = 50,
        learning_rate: float = 0.01,
        epochs: int = 10,
        train_size: int = 100,
        max_tokens: int = 20,
        window: int = 2,
        max_context: int = 2,
        seed: Optional[int] = None
    ) -> "Word2VecModel":
        """
        Build the vocabulary from every product and train on a bounded slice.

        Args:
            products: Catalog products
            dimensions: Word vector size
            learning_rate: Fraction of the distance moved per update
            epochs: Training passes
            train_size: Products visited per pass
            max_tokens: Target tokens visited per product
            window: Context window on each side of the target
            max_context: Context words used per target
            seed: Seed for the random initialization

        Returns:
            Trained model
        """
        model = cls(dimensions=dimensions, learning_rate=learning_rate)
        rng = np.random.default_rng(seed)

        for product in products:
            for word in preprocess_text(product_text(product)):
                if word not in model.word_vectors:
                    model.word_vectors[word] = (rng.random(dimensions) - 0.5) * 0.1

        training_docs = [
            preprocess_text(product_text(product, include_features=False))
            for product in products[:train_size]
        ]
        for _ in range(epochs):
            for words in training_docs:
                for i in range(min(len(words), max_tokens)):
                    for context_word in context_words(words, i, window)[:max_context]:
                        model.update(words[i], context_word)

        return model

    def update(self, target_word: str, context_word: str) -> None:
        """Move the target vector toward the context vector."""
        target = self.word_vectors.get(target_word)
        context = self.word_vectors.get(context_word)
        if target is None or context is None:
            return
        target += self.learning_rate * (context - target)

    def document_vector(self, tokens: Sequence[str]) -> np.ndarray:
        """Normalized mean of the known word vectors; zero vector if none are known."""
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in tokens:
            word_vector = self.word_vectors.get(token)
            if word_vector is not None:
                vector += word_vector

        magnitude = float(np.linalg.norm(vector))
        if magnitude > 0:
            return vector / magnitude
        return vector


def context_words(words: Sequence[str], index: int, window_size: int) -> List[str]:
    """Words within window_size positions of index, excluding the word itself."""
    start = max(0, index - window_size)
    end = min(len(words), index + window_size + 1)
    return [words[i] for i in range(start, end) if i != index]
