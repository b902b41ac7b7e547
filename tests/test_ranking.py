"""Tests for indexes, similarity, intent scoring and the search cache."""

import unittest

import numpy as np

from storefront_search.cache import LRUCache, search_cache_key
from storefront_search.feature_models import CategoryModel
from storefront_search.indexes import ProductIndexes
from storefront_search.models import Product
from storefront_search.scoring import (
    LEGACY_MAX_SCORE,
    MAX_SCORE,
    MIN_SCORE,
    Adjustment,
    FieldMatch,
    IntentRule,
    ProductVector,
    ScoringPath,
    cosine_similarity,
    intent_adjustment,
    ml_similarity,
    rank_products,
    score_fallback,
    score_indexed,
    score_legacy,
)

IPHONE = Product(id="1", name="Apple iPhone 15", category="smartphone", brand="apple", rating=4.8, popularity=90)
GALAXY = Product(id="2", name="Samsung Galaxy S24", category="smartphone", brand="samsung", rating=4.6)
SAMSUNG_TV = Product(id="3", name="Samsung QLED TV", category="tv", brand="samsung", rating=4.5)
LG_TV = Product(id="4", name="LG OLED TV", category="tv", brand="lg", rating=4.7)
HEADPHONES = Product(id="5", name="Sony Headphones", category="headphones", brand="sony", tags=["Wireless"])


class TestProductIndexes(unittest.TestCase):
    """Test the in-memory lookup tables."""

    def setUp(self):
        self.indexes = ProductIndexes.build([IPHONE, GALAXY, SAMSUNG_TV, LG_TV, HEADPHONES])

    def test_build(self):
        """Test products are keyed exactly as stored."""
        self.assertEqual(len(self.indexes), 5)
        self.assertEqual(self.indexes.by_category["smartphone"], ["1", "2"])
        self.assertEqual(self.indexes.by_brand["samsung"], ["2", "3"])
        self.assertEqual(self.indexes.with_tag("wireless"), ["5"])
        self.assertNotIn("Smartphone", self.indexes.by_category)

    def test_candidates_prefer_category(self):
        """Test the category index wins over the brand index."""
        self.assertEqual(self.indexes.candidates(category="tv", brand="apple"), ["3", "4"])
        self.assertEqual(self.indexes.candidates(category="smartphone", per_filter=1), ["1"])

    def test_candidates_brand_then_all(self):
        self.assertEqual(self.indexes.candidates(brand="samsung"), ["2", "3"])
        self.assertEqual(self.indexes.candidates(category="unknown", brand="unknown"), ["1", "2", "3", "4", "5"])
        self.assertEqual(self.indexes.candidates(cap=2), ["1", "2"])

    def test_filter_ids_empty_without_match(self):
        self.assertEqual(self.indexes.filter_ids(), [])
        self.assertEqual(self.indexes.filter_ids(category="Smartphone"), [])


class TestSimilarity(unittest.TestCase):
    """Test cosine and blended ML similarity."""

    def test_cosine_similarity(self):
        self.assertAlmostEqual(cosine_similarity([1, 0], [1, 0]), 1.0)
        self.assertAlmostEqual(cosine_similarity([1, 0], [0, 1]), 0.0)
        self.assertAlmostEqual(cosine_similarity([1, 0], [-1, 0]), -1.0)

    def test_cosine_similarity_degenerate(self):
        """Test missing, empty and zero vectors give 0.0."""
        self.assertEqual(cosine_similarity(None, [1, 0]), 0.0)
        self.assertEqual(cosine_similarity([], [1, 0]), 0.0)
        self.assertEqual(cosine_similarity([0, 0], [1, 0]), 0.0)

    def test_cosine_similarity_common_prefix(self):
        self.assertAlmostEqual(cosine_similarity([1, 0, 5], [1, 0]), 1.0)

    def test_ml_similarity_weights(self):
        """Test the 0.4/0.3/0.3 blend over components present on both sides."""
        vector = ProductVector(
            word2vec=np.array([1.0, 0.0]),
            tfidf=np.array([0.0, 1.0]),
            embedding=np.array([1.0, 1.0]),
        )
        self.assertAlmostEqual(ml_similarity(vector, vector), 1.0)

        word2vec_only = ProductVector(word2vec=np.array([1.0, 0.0]))
        self.assertAlmostEqual(ml_similarity(vector, word2vec_only), 0.4)


class TestIntentScoring(unittest.TestCase):
    """Test intent rules and the per-path scoring formulas."""

    def test_phone_query_penalizes_televisions(self):
        """Test an iPhone query ranks phones above TVs on both paths."""
        for scorer in (score_indexed, score_fallback):
            iphone = scorer(IPHONE, "iphone")
            tv = scorer(SAMSUNG_TV, "iphone")
            self.assertGreater(iphone.ai_score, tv.ai_score)
            self.assertLess(tv.ai_score, 0)

    def test_phone_rule_magnitudes(self):
        """Test the fallback path applies the larger adjustments."""
        self.assertEqual(intent_adjustment(LG_TV, "iphone", ScoringPath.INDEXED), -25.0)
        self.assertEqual(intent_adjustment(LG_TV, "iphone", ScoringPath.FALLBACK), -35.0)
        self.assertEqual(intent_adjustment(IPHONE, "iphone", ScoringPath.INDEXED), 16.0)
        self.assertEqual(intent_adjustment(IPHONE, "iphone", ScoringPath.FALLBACK), 20.0)

    def test_tv_query_boosts_televisions(self):
        """Test a TV query ranks TVs above phones."""
        tv = score_fallback(SAMSUNG_TV, "tv")
        phone = score_fallback(GALAXY, "tv")
        self.assertGreater(tv.ai_score, phone.ai_score)
        self.assertEqual(intent_adjustment(GALAXY, "television", ScoringPath.INDEXED), -5.0)

    def test_no_intent_for_unrelated_query(self):
        self.assertEqual(intent_adjustment(IPHONE, "laptop", ScoringPath.INDEXED), 0.0)

    def test_custom_rules(self):
        """Test intent rules are plain data."""
        rule = IntentRule(
            name="audio",
            triggers=("headphones",),
            adjustments=(Adjustment((FieldMatch(("brand",), ("sony",), exact=True),), indexed=2.0, fallback=3.0),),
        )
        self.assertEqual(intent_adjustment(HEADPHONES, "headphones", ScoringPath.FALLBACK, rules=[rule]), 3.0)
        self.assertEqual(intent_adjustment(IPHONE, "iphone", ScoringPath.FALLBACK, rules=[rule]), 0.0)

    def test_scores_are_capped(self):
        """Test the upper caps of the ranking paths."""
        self.assertEqual(score_indexed(IPHONE, "iphone", similarity=1.0).ai_score, MAX_SCORE)
        self.assertEqual(score_fallback(IPHONE, "iphone").ai_score, MAX_SCORE)
        legacy = score_legacy(IPHONE, "iphone", category="smartphone", brand="apple")
        self.assertEqual(legacy.ai_score, LEGACY_MAX_SCORE)

    def test_indexed_score_components(self):
        """Test base, similarity, rating and popularity terms."""
        product = Product(id="9", name="Desk Lamp", rating=5, popularity=100)
        ranked = score_indexed(product, "lamp", similarity=0.5)
        self.assertAlmostEqual(ranked.ai_score, 1.0 + 1.0 + 4.0 + 0.1 + 0.1)
        self.assertEqual(ranked.ml_similarity, 0.5)

    def test_indexed_category_confidence(self):
        model = CategoryModel.fit([HEADPHONES])
        without = score_indexed(HEADPHONES, "headphones")
        with_model = score_indexed(HEADPHONES, "headphones", category_model=model)
        self.assertAlmostEqual(with_model.ai_score - without.ai_score, 0.3)

    def test_fallback_filter_bonuses(self):
        base = score_fallback(HEADPHONES, "speaker").ai_score
        boosted = score_fallback(HEADPHONES, "speaker", category="headphones", brand="sony").ai_score
        self.assertAlmostEqual(boosted - base, 1.8)

    def test_legacy_score(self):
        product = Product(id="9", name="Desk Lamp", category="home", rating=5, popularity=100)
        self.assertEqual(score_legacy(product, "lamp", category="home").ai_score, LEGACY_MAX_SCORE)
        self.assertAlmostEqual(score_legacy(product, "sofa").ai_score, 1.3)


class TestRankProducts(unittest.TestCase):
    """Test the ranking pass."""

    def test_sorted_descending(self):
        ranked = rank_products([SAMSUNG_TV, IPHONE, GALAXY], lambda p: score_fallback(p, "iphone"))
        scores = [item.ai_score for item in ranked]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual(ranked[0].id, IPHONE.id)

    def test_scoring_error_gives_minimal_score(self):
        """Test one failing product does not abort the pass."""
        def scorer(product):
            if product.id == GALAXY.id:
                raise ValueError("bad product")
            return score_fallback(product, "phone")

        ranked = rank_products([GALAXY, IPHONE], scorer)
        self.assertEqual(len(ranked), 2)
        self.assertEqual(ranked[-1].id, GALAXY.id)
        self.assertEqual(ranked[-1].ai_score, MIN_SCORE)


class TestLRUCache(unittest.TestCase):
    """Test the search result cache."""

    def test_get_and_set(self):
        cache = LRUCache(capacity=2)
        cache.set("a", [1])
        self.assertEqual(cache.get("a"), [1])
        self.assertIsNone(cache.get("missing"))
        self.assertIn("a", cache)

    def test_evicts_least_recently_used(self):
        """Test get() promotes and set() evicts exactly one entry."""
        cache = LRUCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        self.assertIsNone(cache.get("b"))
        self.assertEqual(cache.get("a"), 1)
        self.assertEqual(cache.get("c"), 3)
        self.assertEqual(cache.size(), 2)

    def test_overwrite_does_not_evict(self):
        cache = LRUCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        self.assertEqual(cache.size(), 2)
        self.assertEqual(cache.get("b"), 2)
        self.assertEqual(cache.get("a"), 10)

    def test_clear(self):
        cache = LRUCache()
        cache.set("a", 1)
        cache.clear()
        self.assertEqual(cache.size(), 0)

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            LRUCache(capacity=0)

    def test_search_cache_key(self):
        """Test missing filters and empty filters share a key."""
        self.assertEqual(search_cache_key("tv", None, None, 20), search_cache_key("tv", "", "", 20))
        self.assertNotEqual(search_cache_key("tv", "tv", "", 20), search_cache_key("tv", "", "tv", 20))


if __name__ == '__main__':
    unittest.main()
