"""Tests for tokenization, hashing, embeddings and the catalog models."""

import unittest

import numpy as np

from storefront_search.embeddings import (
    EMBEDDING_DIMENSIONS,
    _bump,
    embedding_text,
    generate_embedding,
    product_embedding,
)
from storefront_search.feature_models import (
    BrandModel,
    CategoryModel,
    extract_ml_features,
    feature_similarity,
)
from storefront_search.models import Product
from storefront_search.utils import preprocess_text, product_text, simple_hash
from storefront_search.vectorizers import TfidfModel, Word2VecModel, context_words


def make_product(product_id, name, category="", brand="", price=0.0, **kwargs):
    return Product(id=product_id, name=name, category=category, brand=brand, price=price, **kwargs)


class TestPreprocessText(unittest.TestCase):
    """Test the tokenizer shared by every model."""

    def test_lowercases_and_strips_punctuation(self):
        """Test punctuation becomes a separator."""
        self.assertEqual(preprocess_text("The iPhone-15 Pro, and TV!"), ["iphone", "pro"])

    def test_drops_short_tokens_and_stop_words(self):
        """Test tokens of two characters or less and stop words are removed."""
        self.assertEqual(preprocess_text("tv is on the table"), ["table"])

    def test_empty_and_none(self):
        """Test empty input gives no tokens."""
        self.assertEqual(preprocess_text(""), [])
        self.assertEqual(preprocess_text(None), [])

    def test_keeps_duplicates_in_order(self):
        self.assertEqual(preprocess_text("phone case phone"), ["phone", "case", "phone"])


class TestSimpleHash(unittest.TestCase):
    """Test the 32-bit rolling hash."""

    def test_known_values(self):
        """Test values of the 31-multiplier polynomial hash."""
        self.assertEqual(simple_hash(""), 0)
        self.assertEqual(simple_hash("a"), 97)
        self.assertEqual(simple_hash("ab"), 97 * 31 + 98)
        self.assertEqual(simple_hash("hello"), 99162322)

    def test_wraps_at_32_bits(self):
        """Test the signed wraparound and absolute value."""
        self.assertEqual(simple_hash("polygenelubricants"), 2 ** 31)

    def test_non_negative_and_deterministic(self):
        for text in ["iphone", "television", "ünïcödé", "a" * 200]:
            self.assertGreaterEqual(simple_hash(text), 0)
            self.assertEqual(simple_hash(text), simple_hash(text))


class TestEmbeddings(unittest.TestCase):
    """Test the hash-based pseudo-embedding."""

    def test_dimensions_and_unit_length(self):
        """Test the vector has 1536 entries and unit magnitude."""
        embedding = generate_embedding("apple iphone smartphone")
        self.assertEqual(len(embedding), EMBEDDING_DIMENSIONS)
        self.assertAlmostEqual(float(np.linalg.norm(embedding)), 1.0, places=6)

    def test_empty_text_gives_zero_vector(self):
        """Test texts without tokens give the zero vector."""
        for text in ["", None, "a an the"]:
            embedding = generate_embedding(text)
            self.assertEqual(len(embedding), EMBEDDING_DIMENSIONS)
            self.assertFalse(embedding.any())

    def test_deterministic(self):
        np.testing.assert_array_equal(generate_embedding("wireless headphones"), generate_embedding("wireless headphones"))

    def test_related_terms_share_dimensions(self):
        """Test terms of the same semantic group are similar."""
        phone = generate_embedding("iphone")
        smartphone = generate_embedding("smartphone")
        self.assertGreater(float(np.dot(phone, smartphone)), 0.3)

    def test_bump_wraps_past_one(self):
        """Test additions wrap modulo 1.0 and positions wrap around the vector."""
        vector = np.zeros(EMBEDDING_DIMENSIONS)
        for _ in range(4):
            _bump(vector, EMBEDDING_DIMENSIONS - 1, 3, 0.3)
        self.assertAlmostEqual(vector[EMBEDDING_DIMENSIONS - 1], 0.2, places=6)
        self.assertAlmostEqual(vector[0], 0.2, places=6)
        self.assertAlmostEqual(vector[1], 0.2, places=6)
        self.assertEqual(vector[2], 0.0)

    def test_product_embedding_prefers_stored_vector(self):
        """Test a stored vector of the right size is used as is."""
        stored = [0.0] * EMBEDDING_DIMENSIONS
        stored[5] = 1.0
        product = make_product("1", "Apple iPhone", vector_embedding=stored)
        self.assertEqual(product_embedding(product)[5], 1.0)

    def test_product_embedding_regenerates_bad_vector(self):
        """Test a stored vector of the wrong size is ignored."""
        product = make_product("1", "Apple iPhone", category="smartphone", vector_embedding=[1.0, 2.0])
        expected = generate_embedding(embedding_text(product))
        np.testing.assert_array_equal(product_embedding(product), expected)


class TestTfidfModel(unittest.TestCase):
    """Test the TF-IDF table."""

    def setUp(self):
        self.products = [
            make_product("1", "apple iphone", description="smartphone camera"),
            make_product("2", "samsung galaxy", description="smartphone display"),
            make_product("3", "sony headphones", description="wireless audio smartphone"),
        ]
        self.model = TfidfModel.fit(self.products)

    def test_vocabulary_in_first_seen_order(self):
        self.assertEqual(self.model.vocabulary[:4], ["apple", "iphone", "smartphone", "camera"])
        self.assertEqual(self.model.size, len(self.model.vocabulary))

    def test_idf_formula(self):
        """Test idf = ln(total docs / (doc freq + 1))."""
        self.assertAlmostEqual(self.model.idf["apple"], np.log(3 / 2))
        self.assertAlmostEqual(self.model.idf["smartphone"], np.log(3 / 4))
        self.assertLess(self.model.idf["smartphone"], 0)

    def test_transform(self):
        """Test term frequency is scaled by the document's max frequency."""
        vector = self.model.transform(["apple", "apple", "camera", "unknown"])
        self.assertEqual(len(vector), self.model.size)
        apple = self.model.vocabulary.index("apple")
        camera = self.model.vocabulary.index("camera")
        self.assertAlmostEqual(vector[apple], self.model.idf["apple"])
        self.assertAlmostEqual(vector[camera], 0.5 * self.model.idf["camera"])

    def test_transform_empty(self):
        self.assertFalse(self.model.transform([]).any())
        self.assertFalse(self.model.transform_text("zzz").any())

    def test_sample_size_bounds_vocabulary(self):
        model = TfidfModel.fit(self.products, sample_size=1)
        self.assertNotIn("samsung", model.vocabulary)
        self.assertEqual(len(model.document_vectors), 1)


class TestWord2VecModel(unittest.TestCase):
    """Test the co-occurrence word vectors."""

    def test_context_words(self):
        """Test the window excludes the word itself."""
        words = ["a", "b", "c", "d", "e"]
        self.assertEqual(context_words(words, 2, 2), ["a", "b", "d", "e"])
        self.assertEqual(context_words(words, 0, 2), ["b", "c"])
        self.assertEqual(context_words(words, 4, 1), ["d"])

    def test_vocabulary_includes_features(self):
        products = [make_product("1", "apple iphone", features=["Titanium frame"])]
        model = Word2VecModel.fit(products, seed=1)
        self.assertIn("titanium", model.vocabulary)
        self.assertEqual(len(model.word_vectors["iphone"]), 50)

    def test_seed_is_reproducible(self):
        products = [make_product("1", "apple iphone smartphone")]
        first = Word2VecModel.fit(products, seed=3)
        second = Word2VecModel.fit(products, seed=3)
        np.testing.assert_array_equal(first.word_vectors["iphone"], second.word_vectors["iphone"])

    def test_training_pulls_neighbours_together(self):
        """Test co-occurring words become more similar."""
        products = [make_product("1", "apple iphone")]
        untrained = Word2VecModel.fit(products, epochs=0, seed=5)
        trained = Word2VecModel.fit(products, epochs=10, seed=5)

        def cosine(model):
            a = model.word_vectors["apple"]
            b = model.word_vectors["iphone"]
            return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b)))

        self.assertGreater(cosine(trained), cosine(untrained))

    def test_document_vector(self):
        """Test document vectors are unit length, or zero without known words."""
        model = Word2VecModel.fit([make_product("1", "apple iphone")], seed=2)
        vector = model.document_vector(["apple", "iphone", "unknown"])
        self.assertAlmostEqual(float(np.linalg.norm(vector)), 1.0, places=6)
        self.assertFalse(model.document_vector(["unknown"]).any())
        self.assertFalse(model.document_vector([]).any())


class TestFeatureModels(unittest.TestCase):
    """Test numeric features and the category/brand models."""

    def setUp(self):
        self.products = [
            make_product("1", "Apple iPhone 15", category="Smartphone", brand="Apple", price=999, rating=4.8),
            make_product("2", "Samsung Galaxy S24", category="Smartphone", brand="Samsung", price=899, rating=4.6),
            make_product("3", "Samsung QLED TV", category="TV", brand="Samsung", price=1299, rating=4.5),
            make_product("4", "Bose QuietComfort", category="Headphones", brand="Bose", price=299, rating=4.4),
        ]

    def test_extract_ml_features(self):
        """Test 20 hashed token slots followed by 5 numeric features."""
        product = make_product("1", "apple iphone", price=500, rating=4, popularity=50, numReviews=10, stock=20)
        features = extract_ml_features(product)
        self.assertEqual(len(features), 25)
        self.assertEqual(features[0], simple_hash("apple") / 1000000)
        self.assertEqual(features[2], 0.0)
        self.assertEqual(features[20:], [0.05, 0.8, 0.5, 0.1, 0.2])

    def test_feature_similarity(self):
        features = extract_ml_features(self.products[0])
        self.assertAlmostEqual(feature_similarity(features, features), 1.0)
        self.assertEqual(feature_similarity([], features), 0.0)
        self.assertEqual(feature_similarity(None, features), 0.0)
        self.assertAlmostEqual(feature_similarity([-1.0], [1.0]), -1.0)

    def test_category_model_classifies_lowercased(self):
        """Test categories are keyed lower-case and identical features win."""
        model = CategoryModel.fit(self.products)
        self.assertEqual(set(model.categories), {"smartphone", "tv", "headphones"})
        category, confidence = model.classify(extract_ml_features(self.products[3]))
        self.assertEqual(category, "headphones")
        self.assertAlmostEqual(confidence, 1.0)

    def test_category_model_empty(self):
        """Test an untrained model returns no category."""
        model = CategoryModel.fit([])
        self.assertEqual(model.classify(extract_ml_features(self.products[0])), (None, 0.0))

    def test_brand_model_related_brands(self):
        """Test shared categories and similar prices rank first."""
        model = BrandModel.fit(self.products)
        related = model.find_related_brands("Apple")
        self.assertEqual([relation.brand for relation in related], ["samsung", "bose"])
        self.assertGreater(related[0].similarity, related[1].similarity)

    def test_brand_model_unknown_brand(self):
        model = BrandModel.fit(self.products)
        self.assertEqual(model.find_related_brands("nokia"), [])
        self.assertEqual(len(model.find_related_brands("samsung", limit=1)), 1)

    def test_product_text_includes_features_optionally(self):
        product = make_product("1", "apple iphone", tags=["ios"], features=["USB-C"])
        self.assertIn("usb-c", product_text(product))
        self.assertNotIn("usb-c", product_text(product, include_features=False))


if __name__ == '__main__':
    unittest.main()
