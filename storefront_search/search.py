"""Product search engine: lazy model build, indexed ranking and fallback search."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from storefront_search.cache import LRUCache, search_cache_key
from storefront_search.config import SearchSettings
from storefront_search.database import ProductRepository
from storefront_search.embeddings import generate_embedding, product_embedding
from storefront_search.feature_models import BrandModel, CategoryModel
from storefront_search.indexes import ProductIndexes
from storefront_search.logger import get_logger, request_logger
from storefront_search.models import (
    INDEX_FIELDS,
    SEARCH_FIELDS,
    BrandRelation,
    Product,
    RankedProduct,
    TextFilter,
)
from storefront_search.scoring import (
    DEFAULT_INTENT_RULES,
    IntentRule,
    ProductVector,
    ml_similarity,
    rank_products,
    score_fallback,
    score_indexed,
    score_legacy,
)
from storefront_search.utils import preprocess_text, product_text
from storefront_search.vectorizers import TfidfModel, Word2VecModel

logger = get_logger()

LEGACY_FETCH_MULTIPLIER = 2


class SearchEngineError(Exception):
    """Raised when the search models are unavailable or cannot be built."""


class EngineState(str, Enum):
    """Lifecycle of the engine's models. A failed build returns to UNINITIALIZED."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass
class CandidateMatch:
    """Candidate whose composite vector is close enough to the query."""
    product_id: str
    similarity: float
    category: str
    brand: str


@dataclass
class SearchModels:
    """Everything built from one catalog load; read-only once built."""
    indexes: ProductIndexes
    tfidf: TfidfModel
    word2vec: Word2VecModel
    category_model: CategoryModel
    brand_model: BrandModel
    product_vectors: Dict[str, ProductVector] = field(default_factory=dict)

    @classmethod
    def build(cls, products: Sequence[Product], settings: SearchSettings) -> "SearchModels":
        """
        Build indexes, lexical models, feature models and composite vectors.

        Args:
            products: Catalog products loaded with INDEX_FIELDS
            settings: Sample sizes and model parameters

        Returns:
            SearchModels instance
        """
        indexes = ProductIndexes.build(products)
        logger.info(
            f"Built indexes: {len(indexes.by_category)} categories, "
            f"{len(indexes.by_brand)} brands, {len(indexes.by_tag)} tags"
        )

        word2vec = Word2VecModel.fit(
            products,
            dimensions=settings.word2vec_dimensions,
            learning_rate=settings.word2vec_learning_rate,
            epochs=settings.word2vec_epochs,
            train_size=settings.word2vec_train_size,
            max_tokens=settings.word2vec_max_tokens,
            window=settings.word2vec_window,
            max_context=settings.word2vec_max_context,
            seed=settings.random_seed,
        )
        tfidf = TfidfModel.fit(products, sample_size=settings.tfidf_sample_size)
        category_model = CategoryModel.fit(
            products,
            sample_size=settings.model_sample_size,
            training_limit=settings.category_training_limit,
        )
        brand_model = BrandModel.fit(
            products,
            sample_size=settings.model_sample_size,
            feature_limit=settings.brand_feature_limit,
        )

        models = cls(indexes, tfidf, word2vec, category_model, brand_model)
        for product in products[:settings.vector_sample_size]:
            models.product_vectors[product.id] = models.product_vector(product)
        logger.info(
            f"Built models: {len(word2vec.word_vectors)} words, {tfidf.size} TF-IDF terms, "
            f"{len(models.product_vectors)} product vectors"
        )
        return models

    def product_vector(self, product: Product) -> ProductVector:
        tokens = preprocess_text(product_text(product))
        return ProductVector(
            word2vec=self.word2vec.document_vector(tokens),
            tfidf=self.tfidf.transform(tokens),
            embedding=product_embedding(product),
            name=product.name or '',
            category=product.category or '',
            brand=product.brand or '',
        )

    def query_vector(self, query: str) -> ProductVector:
        tokens = preprocess_text(query)
        return ProductVector(
            word2vec=self.word2vec.document_vector(tokens),
            tfidf=self.tfidf.transform(tokens),
            embedding=generate_embedding(query),
            name=query,
        )


class ProductSearchEngine:
    """
    Ranked product search over a ProductRepository.

    Features:
    - Lazy, single-flight model initialization with retry after failure
    - Index-narrowed candidate selection and ML similarity ranking
    - Rule-based query-intent boosts and penalties
    - LRU cache of results keyed by (query, category, brand, limit)
    - Fallback database search whenever the models are unavailable

    Construct one engine per process and pass it to its callers.
    """

    def __init__(
        self,
        repository: ProductRepository,
        settings: Optional[SearchSettings] = None,
        intent_rules: Iterable[IntentRule] = DEFAULT_INTENT_RULES
    ):
        self.repository = repository
        self.settings = settings or SearchSettings()
        self.intent_rules = tuple(intent_rules)
        self.search_cache = LRUCache(self.settings.cache_capacity)
        self._models: Optional[SearchModels] = None
        self._init_task: Optional[asyncio.Future] = None

    @property
    def state(self) -> EngineState:
        if self._models is not None:
            return EngineState.READY
        if self._init_task is not None and not self._init_task.done():
            return EngineState.INITIALIZING
        return EngineState.UNINITIALIZED

    @property
    def is_ready(self) -> bool:
        return self._models is not None

    @property
    def models(self) -> Optional[SearchModels]:
        return self._models

    async def initialize(self) -> bool:
        """
        Build the search models once.

        Concurrent callers share the same in-flight build and observe the
        same outcome. A failed build leaves the engine uninitialized so the
        next call retries.

        Returns:
            True when the engine is ready
        """
        if self._models is not None:
            return True
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._do_initialize())
        return await asyncio.shield(self._init_task)

    async def _do_initialize(self) -> bool:
        try:
            logger.info("Initializing search engine...")
            start_time = time.time()

            products = await self.repository.find_all(INDEX_FIELDS, limit=self.settings.catalog_limit)
            logger.info(f"Loaded {len(products)} products for search models")

            self._models = SearchModels.build(products, self.settings)
            self.search_cache.clear()

            elapsed_ms = (time.time() - start_time) * 1000
            logger.info(f"Search engine initialized in {elapsed_ms:.0f}ms with {len(products)} products")
            return True
        except Exception as e:
            logger.error(f"Error initializing search engine: {str(e)}", exc_info=True)
            self._models = None
            return False
        finally:
            self._init_task = None

    async def reinitialize(self) -> bool:
        """Drop the models and cached results and rebuild from the repository."""
        if self._init_task is not None:
            await asyncio.shield(self._init_task)
        self._models = None
        self.search_cache.clear()
        return await self.initialize()

    def _resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None or limit < 1:
            return self.settings.default_limit
        return limit

    async def search(
        self,
        query: Optional[str],
        category: Optional[str] = None,
        brand: Optional[str] = None,
        limit: Optional[int] = None,
        request_id: Optional[str] = None
    ) -> List[RankedProduct]:
        """
        Search products ranked by ai_score.

        Never raises: model or repository failures degrade to the fallback
        search, and a failing fallback gives an empty list.

        Args:
            query: Free-text query
            category: Exact category filter
            brand: Exact brand filter
            limit: Maximum number of results (default from settings)
            request_id: ID stamped on this search's log records (generated when omitted)

        Returns:
            At most limit products sorted by descending ai_score
        """
        log = request_logger(request_id)
        query = query or ''
        category = category or ''
        brand = brand or ''
        limit = self._resolve_limit(limit)

        cache_key = search_cache_key(query, category, brand, limit)
        cached = self.search_cache.get(cache_key)
        if cached is not None:
            log.debug(f"Cache hit for query: {query!r}")
            return cached

        start_time = time.time()
        try:
            if await self.initialize():
                try:
                    results = await self._indexed_search(query, category, brand, limit)
                except Exception as e:
                    log.error(f"Error in indexed search, using fallback: {str(e)}", exc_info=True)
                    results = await self._fallback(query, category, brand, limit)
            else:
                log.info("Search engine not initialized, using fallback search")
                results = await self._fallback(query, category, brand, limit)
        except Exception as e:
            log.error(f"Fallback search failed for {query!r}: {str(e)}", exc_info=True)
            return []

        elapsed_ms = (time.time() - start_time) * 1000
        log.info(f"Search for {query!r} returned {len(results)} results in {elapsed_ms:.0f}ms")
        self.search_cache.set(cache_key, results)
        return results

    async def _indexed_search(self, query: str, category: str, brand: str, limit: int) -> List[RankedProduct]:
        models = self._models
        if models is None:
            raise SearchEngineError("Search models are not built")

        # An all-zero query vector matches nothing.
        if not preprocess_text(query):
            return await self._fallback(query, category, brand, limit)

        candidate_ids = models.indexes.candidates(
            category,
            brand,
            per_filter=limit * self.settings.candidate_multiplier,
            cap=self.settings.candidate_cap,
        )
        query_vector = models.query_vector(query)
        matches = [
            match for match in self._similarities(models, candidate_ids, query_vector)
            if (not category or match.category == category) and (not brand or match.brand == brand)
        ]
        matches.sort(key=lambda match: match.similarity, reverse=True)
        matches = matches[:limit]
        if not matches:
            return []

        products = await self.repository.find_by_ids([match.product_id for match in matches], SEARCH_FIELDS)
        similarity_by_id = {match.product_id: match.similarity for match in matches}

        ranked = rank_products(
            products,
            lambda product: score_indexed(
                product,
                query,
                similarity=similarity_by_id.get(product.id),
                category_model=models.category_model,
                rules=self.intent_rules,
            ),
        )
        return ranked[:limit]

    def _similarities(
        self,
        models: SearchModels,
        candidate_ids: Sequence[str],
        query_vector: ProductVector
    ) -> List[CandidateMatch]:
        matches = []
        for product_id in candidate_ids:
            vector = models.product_vectors.get(product_id)
            if vector is None:
                continue
            try:
                similarity = ml_similarity(query_vector, vector)
            except Exception as e:
                logger.warning(f"Similarity failed for product {product_id}: {e}")
                continue
            if similarity > self.settings.similarity_threshold:
                product = models.indexes.by_id[product_id]
                matches.append(CandidateMatch(product_id, similarity, product.category, product.brand))
        return matches

    def _fallback_filter(self, query: str, category: str, brand: str, limit: int) -> TextFilter:
        ids = None
        if self._models is not None:
            ids = self._models.indexes.filter_ids(
                category, brand, per_filter=limit * self.settings.candidate_multiplier
            ) or None
        return TextFilter(
            ids=ids,
            text=query if ids is None and query else None,
            category=category or None,
            brand=brand or None,
        )

    async def _fallback(self, query: str, category: str, brand: str, limit: int) -> List[RankedProduct]:
        text_filter = self._fallback_filter(query, category, brand, limit)
        products = await self.repository.find_by_text_filter(
            text_filter, limit * self.settings.fallback_multiplier, SEARCH_FIELDS
        )
        ranked = rank_products(
            products,
            lambda product: score_fallback(product, query, category, brand, rules=self.intent_rules),
        )
        return ranked[:limit]

    async def fallback_search(
        self,
        query: Optional[str],
        category: Optional[str] = None,
        brand: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[RankedProduct]:
        """Database search with the fallback scoring rules; empty list on failure."""
        try:
            return await self._fallback(query or '', category or '', brand or '', self._resolve_limit(limit))
        except Exception as e:
            logger.error(f"Error in fallback search: {str(e)}", exc_info=True)
            return []

    async def legacy_search(
        self,
        query: Optional[str],
        category: Optional[str] = None,
        brand: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[RankedProduct]:
        """
        Plain database search with the legacy scoring (scores capped at 3.0).

        Reads twice the limit, best rated and most popular first, so the cut
        to limit keeps the strongest products. Empty list on failure.
        """
        query = query or ''
        category = category or ''
        brand = brand or ''
        limit = self._resolve_limit(limit)
        try:
            text_filter = TextFilter(
                text=query or None,
                category=category or None,
                brand=brand or None,
                order_by_quality=True,
            )
            products = await self.repository.find_by_text_filter(
                text_filter, limit * LEGACY_FETCH_MULTIPLIER, SEARCH_FIELDS
            )
            ranked = rank_products(products, lambda product: score_legacy(product, query, category, brand))
            return ranked[:limit]
        except Exception as e:
            logger.error(f"Error in legacy search: {str(e)}", exc_info=True)
            return []

    def find_similar(self, product_id: str, limit: int = 10) -> List[RankedProduct]:
        """
        Products whose composite vectors are closest to the given product's.

        Returns an empty list until the engine is ready or when the product
        has no composite vector. ai_score holds the similarity.
        """
        models = self._models
        if models is None:
            return []
        target = models.product_vectors.get(product_id)
        if target is None:
            return []

        similar = []
        for other_id, vector in models.product_vectors.items():
            if other_id == product_id:
                continue
            similarity = ml_similarity(target, vector)
            if similarity > self.settings.similarity_threshold:
                product = models.indexes.by_id[other_id]
                similar.append(RankedProduct(**product.model_dump(), ai_score=similarity, ml_similarity=similarity))

        similar.sort(key=lambda item: item.ai_score, reverse=True)
        return similar[:limit]

    def related_brands(self, brand: str, limit: int = 5) -> List[BrandRelation]:
        """Brands related to brand by the brand model; empty until ready."""
        if self._models is None:
            return []
        return self._models.brand_model.find_related_brands(brand, limit=limit)
