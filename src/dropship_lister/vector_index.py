"""
Embedding index over leaf categories for semantic category lookup
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from openai import OpenAI

from .models import CategoryMatch

logger = logging.getLogger(__name__)

INDEX_VERSION = '1.0'
BATCH_SIZE = 32


class VectorIndexError(Exception):
    """Index is empty or embeddings could not be computed"""
    pass


class EmbeddingProvider:
    """Interface: a model name plus embed(texts) -> one vector per text"""
    model_name: str

    def embed(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(self, api_key: str, model_name: str = 'text-embedding-3-small',
                 client: Optional[OpenAI] = None):
        self.model_name = model_name
        self.client = client or OpenAI(api_key=api_key)

    def embed(self, texts: List[str]) -> List[List[float]]:
        response = self.client.embeddings.create(model=self.model_name, input=texts)
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


class VectorCategoryIndex:
    def __init__(self, index_file, embedder: EmbeddingProvider):
        self.index_file = Path(index_file)
        self.embedder = embedder
        self.embeddings: Optional[np.ndarray] = None
        self.metadata: List[Dict[str, Any]] = []
        self._load()

    @property
    def has_data(self) -> bool:
        return self.embeddings is not None and len(self.metadata) > 0

    @property
    def category_count(self) -> int:
        return len(self.metadata)

    def _load(self) -> None:
        if not self.index_file.exists():
            return
        try:
            with open(self.index_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable vector index {self.index_file}: {e}")
            return

        if data.get('modelName') != self.embedder.model_name:
            logger.warning(
                f"Vector index was built with {data.get('modelName')}, "
                f"not {self.embedder.model_name}; it will be rebuilt"
            )
            return

        embeddings = data.get('embeddings') or []
        metadata = data.get('metadata') or []
        if not embeddings or len(embeddings) != len(metadata):
            logger.warning("Vector index snapshot is empty or inconsistent, ignoring it")
            return

        self.embeddings = np.asarray(embeddings, dtype=np.float32)
        self.metadata = metadata
        logger.info(f"Loaded vector index with {len(metadata)} categories")

    def _save(self) -> None:
        self.index_file.parent.mkdir(parents=True, exist_ok=True)
        data = {
            'embeddings': self.embeddings.tolist(),
            'metadata': self.metadata,
            'modelName': self.embedder.model_name,
            'embeddingDim': int(self.embeddings.shape[1]),
            'version': INDEX_VERSION,
        }
        with open(self.index_file, 'w', encoding='utf-8') as f:
            json.dump(data, f)

    def _embed(self, texts: List[str]) -> np.ndarray:
        try:
            vectors = self.embedder.embed(texts)
        except Exception as e:
            raise VectorIndexError(f"Embedding failed: {e}")
        if len(vectors) != len(texts):
            raise VectorIndexError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return _normalize(np.asarray(vectors, dtype=np.float32))

    def build(self, category_cache, force_rebuild: bool = False) -> int:
        """Embed every leaf category at levels 2-4; a loaded index is reused unless forced"""
        if self.has_data and not force_rebuild:
            logger.info(f"Vector index already built ({self.category_count} categories)")
            return self.category_count

        leaves = category_cache.get_leaf_categories(min_level=2, max_level=4)
        if not leaves:
            raise VectorIndexError("No leaf categories to index")

        metadata = []
        texts = []
        for category in leaves:
            path = category_cache.get_category_path(category.id)
            metadata.append({
                'categoryId': category.id,
                'name': category.name,
                'path': path,
                'level': category.level,
            })
            texts.append(f"{category.name} - {path}")

        logger.info(f"Embedding {len(texts)} categories with {self.embedder.model_name}...")
        batches = []
        for start in range(0, len(texts), BATCH_SIZE):
            batches.append(self._embed(texts[start:start + BATCH_SIZE]))
            logger.debug(f"Embedded {min(start + BATCH_SIZE, len(texts))}/{len(texts)}")

        self.embeddings = np.vstack(batches)
        self.metadata = metadata
        self._save()
        logger.info(f"Vector index built with {len(metadata)} categories")
        return len(metadata)

    def search(self, title: str, description: str = '', top_k: int = 5) -> List[CategoryMatch]:
        if not self.has_data:
            raise VectorIndexError("Vector index is empty; build it first")

        query = f"{title} {description}".strip()
        query_vector = self._embed([query])[0]
        scores = self.embeddings @ query_vector

        top = np.argsort(-scores)[:top_k]
        return [
            CategoryMatch(
                category_id=str(self.metadata[i]['categoryId']),
                name=self.metadata[i]['name'],
                path=self.metadata[i]['path'],
                level=int(self.metadata[i]['level']),
                score=round(float(scores[i]), 3),
            )
            for i in top
        ]

    def best_category(self, title: str, description: str = '',
                      min_similarity: float = 0.5) -> Optional[CategoryMatch]:
        matches = self.search(title, description, top_k=1)
        if matches and matches[0].score >= min_similarity:
            return matches[0]
        return None
