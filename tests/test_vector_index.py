import sys
import json
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock
from pathlib import Path

APIHELPERS_SRC = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(APIHELPERS_SRC))

from dropship_lister.models import Category
from dropship_lister.vector_index import (
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    VectorCategoryIndex,
    VectorIndexError,
)

KEYWORDS = ['mug', 'lamp', 'leash']


class KeywordEmbedder(EmbeddingProvider):
    """One dimension per keyword so similarity is predictable"""
    model_name = 'keyword-test'

    def __init__(self):
        self.calls = []

    def embed(self, texts):
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            lowered = text.lower()
            vectors.append([1.0 if word in lowered else 0.0 for word in KEYWORDS] + [0.1])
        return vectors


class FakeCache:
    def __init__(self):
        self.categories = {
            '100': Category('100', 'Coffee Mugs', '10', 3, True),
            '200': Category('200', 'Desk Lamps', '20', 2, True),
            '300': Category('300', 'Dog Leashes', '30', 2, True),
        }

    def get_leaf_categories(self, min_level=2, max_level=4):
        return [c for c in self.categories.values() if min_level <= c.level <= max_level]

    def get_category_path(self, category_id):
        return f"Parent > {self.categories[category_id].name}"


class VectorCategoryIndexTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.index_file = Path(self.tmp) / 'category_vectors.json'
        self.embedder = KeywordEmbedder()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def test_build_and_search(self):
        index = VectorCategoryIndex(self.index_file, self.embedder)

        self.assertEqual(index.build(FakeCache()), 3)
        self.assertEqual(self.embedder.calls[0][0], "Coffee Mugs - Parent > Coffee Mugs")

        matches = index.search("Ceramic coffee mug", "holds 12 oz", top_k=2)
        self.assertEqual(len(matches), 2)
        self.assertEqual(matches[0].category_id, '100')
        self.assertEqual(matches[0].path, 'Parent > Coffee Mugs')
        self.assertGreater(matches[0].score, matches[1].score)
        self.assertEqual(matches[0].score, round(matches[0].score, 3))

    def test_search_empty_index_raises(self):
        index = VectorCategoryIndex(self.index_file, self.embedder)

        self.assertFalse(index.has_data)
        with self.assertRaises(VectorIndexError):
            index.search("anything")

    def test_snapshot_reloaded(self):
        VectorCategoryIndex(self.index_file, self.embedder).build(FakeCache())

        data = json.loads(self.index_file.read_text())
        self.assertEqual(data['modelName'], 'keyword-test')
        self.assertEqual(data['embeddingDim'], 4)

        reloaded = VectorCategoryIndex(self.index_file, KeywordEmbedder())
        self.assertEqual(reloaded.category_count, 3)
        self.assertEqual(reloaded.build(FakeCache()), 3)

    def test_snapshot_from_other_model_ignored(self):
        VectorCategoryIndex(self.index_file, self.embedder).build(FakeCache())

        other = KeywordEmbedder()
        other.model_name = 'another-model'
        index = VectorCategoryIndex(self.index_file, other)

        self.assertFalse(index.has_data)

    def test_force_rebuild_reembeds(self):
        index = VectorCategoryIndex(self.index_file, self.embedder)
        index.build(FakeCache())
        index.build(FakeCache(), force_rebuild=True)

        self.assertEqual(len(self.embedder.calls), 2)

    def test_build_without_leaves_raises(self):
        cache = FakeCache()
        cache.categories = {}

        with self.assertRaises(VectorIndexError):
            VectorCategoryIndex(self.index_file, self.embedder).build(cache)

    def test_embedding_failure_wrapped(self):
        index = VectorCategoryIndex(self.index_file, self.embedder)
        index.build(FakeCache())
        self.embedder.embed = MagicMock(side_effect=RuntimeError("quota"))

        with self.assertRaises(VectorIndexError):
            index.search("mug")

    def test_best_category_threshold(self):
        index = VectorCategoryIndex(self.index_file, self.embedder)
        index.build(FakeCache())

        self.assertEqual(index.best_category("dog leash").category_id, '300')
        self.assertIsNone(index.best_category("garden hose", min_similarity=0.5))


class OpenAIEmbeddingProviderTests(unittest.TestCase):
    def test_embeddings_ordered_by_index(self):
        client = MagicMock()
        client.embeddings.create.return_value = MagicMock(data=[
            MagicMock(index=1, embedding=[0.0, 1.0]),
            MagicMock(index=0, embedding=[1.0, 0.0]),
        ])
        provider = OpenAIEmbeddingProvider("key", client=client)

        vectors = provider.embed(["a", "b"])

        self.assertEqual(vectors, [[1.0, 0.0], [0.0, 1.0]])
        client.embeddings.create.assert_called_once_with(model='text-embedding-3-small', input=["a", "b"])


if __name__ == '__main__':
    unittest.main()
