"""
Vector Store Module

In-memory FAISS index over document chunk embeddings.

Design Rationale:
- IndexFlatIP over L2-normalized vectors gives exact cosine similarity
- FAISS only stores vectors, so chunk data is kept alongside, keyed by row
- Re-adding a chunk id replaces the earlier chunk (re-indexing is idempotent)
"""

import logging
from typing import Any, Dict, List

import faiss
import numpy as np

from src.chunker import Chunk

logger = logging.getLogger(__name__)


class SearchResult:
    """
    A single vector search hit.

    Attributes:
        chunk: The retrieved Chunk object
        score: Cosine similarity (higher is better)
        rank: Position in results (1-indexed)
    """

    def __init__(self, chunk: Chunk, score: float, rank: int = 0):
        self.chunk = chunk
        self.score = score
        self.rank = rank

    def __repr__(self) -> str:
        return (
            f"SearchResult(source='{self.chunk.source}', "
            f"score={self.score:.4f}, rank={self.rank})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the document shape returned by the retrieval API."""
        return {
            "id": self.chunk.chunk_id,
            "content": self.chunk.text,
            "source": self.chunk.source,
            "score": self.score,
        }


class FAISSVectorStore:
    """
    FAISS-based vector store.

    Example:
        store = FAISSVectorStore(dimension=384)
        store.add_chunks(chunks_with_embeddings)
        results = store.search(query_embedding, top_k=3)
    """

    def __init__(self, dimension: int):
        """
        Args:
            dimension: Embedding dimension (must match the embedding model)
        """
        self.dimension = dimension
        self._index = faiss.IndexFlatIP(dimension)
        self._chunks: Dict[int, Chunk] = {}
        self._id_to_index: Dict[str, int] = {}

        logger.info(f"FAISSVectorStore initialized: dimension={dimension}")

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1
        return vectors / norms

    def add_chunks(self, chunks: List[Chunk]) -> int:
        """
        Add chunks that carry embeddings.

        Returns:
            Number of chunks added
        """
        valid_chunks = [c for c in chunks if c.embedding is not None]
        if not valid_chunks:
            if chunks:
                logger.warning("No chunks with embeddings to add")
            return 0

        # Last chunk wins when a batch repeats an id
        valid_chunks = list({c.chunk_id: c for c in valid_chunks}.values())

        replaced = [c.chunk_id for c in valid_chunks if c.chunk_id in self._id_to_index]
        if replaced:
            self.delete(replaced)

        vectors = np.array([c.embedding for c in valid_chunks], dtype=np.float32)
        if vectors.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension {vectors.shape[1]} does not match index dimension {self.dimension}"
            )

        start = self._index.ntotal
        self._index.add(self._normalize(vectors))
        for offset, chunk in enumerate(valid_chunks):
            self._chunks[start + offset] = chunk
            self._id_to_index[chunk.chunk_id] = start + offset

        logger.info(f"Added {len(valid_chunks)} chunks to FAISS index")
        return len(valid_chunks)

    def search(self, query_embedding: List[float], top_k: int = 5, threshold: float = 0.0) -> List[SearchResult]:
        """
        Find the chunks most similar to a query vector.

        Returns:
            SearchResult objects sorted by score descending
        """
        if self.count() == 0:
            logger.debug("Search on empty index")
            return []

        query_vector = self._normalize(np.array([query_embedding], dtype=np.float32))
        k = min(top_k, self._index.ntotal)
        scores, indices = self._index.search(query_vector, k)

        results = []
        for score, idx in zip(scores[0], indices[0]):
            # -1 means no result; missing rows were deleted
            chunk = self._chunks.get(int(idx))
            if idx < 0 or chunk is None or float(score) < threshold:
                continue
            results.append(SearchResult(chunk=chunk, score=float(score), rank=len(results) + 1))
        return results

    def delete(self, chunk_ids: List[str]) -> int:
        """Delete chunks by id and rebuild the index."""
        deleted = 0
        for chunk_id in chunk_ids:
            idx = self._id_to_index.pop(chunk_id, None)
            if idx is not None and self._chunks.pop(idx, None) is not None:
                deleted += 1
        if deleted:
            self._rebuild_index()
        return deleted

    def _rebuild_index(self):
        # IndexFlatIP has no cheap removal
        remaining = list(self._chunks.values())
        self.clear()
        if remaining:
            self.add_chunks(remaining)

    def clear(self) -> None:
        """Remove all data from the store."""
        self._index = faiss.IndexFlatIP(self.dimension)
        self._chunks = {}
        self._id_to_index = {}

    def count(self) -> int:
        return len(self._chunks)

    def sources(self) -> List[str]:
        """Distinct source files in the index."""
        return sorted({c.source for c in self._chunks.values()})
