"""
Embedding Service Module

Turns document chunks and queries into vectors for the retrieval index:
- Local: Sentence Transformers (all-MiniLM-L6-v2, 384 dims) - Free, no API key
- Cloud: OpenAI embeddings (text-embedding-3-small, 1536 dims) - Requires API key

Models are loaded lazily, on the first embedding call, so a gateway running
with retrieval disabled never pays for them.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from openai import OpenAI

from config.settings import get_settings, EmbeddingConfig

logger = logging.getLogger(__name__)


class BaseEmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts, preserving order."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """Sentence Transformers embeddings computed in-process."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self._model_name = model_name
        self._model = None
        self._dimension = None

        logger.info(f"Initializing LocalEmbeddingProvider with model: {model_name}")

    def _load_model(self):
        """Lazy load the model (only when first needed)."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading sentence-transformers model: {self._model_name}")
            self._model = SentenceTransformer(self._model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
            logger.info(f"Model loaded. Embedding dimension: {self._dimension}")
        return self._model

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        model = self._load_model()
        embeddings = model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=len(texts) > 10,
            batch_size=32,
        )
        return embeddings.tolist()

    @property
    def dimension(self) -> int:
        self._load_model()
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """OpenAI embeddings API."""

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    # Inputs per request
    BATCH_SIZE = 100

    def __init__(self, model_name: str = "text-embedding-3-small", api_key: Optional[str] = None):
        self._model_name = model_name
        self._api_key = api_key
        self._client = None

        if model_name not in self.MODEL_DIMENSIONS:
            logger.warning(f"Unknown model {model_name}, assuming 1536 dimensions")

        logger.info(f"Initializing OpenAIEmbeddingProvider with model: {model_name}")

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
                )
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        client = self._get_client()

        all_embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.BATCH_SIZE):
            response = client.embeddings.create(
                input=texts[i:i + self.BATCH_SIZE],
                model=self._model_name,
            )
            ordered = sorted(response.data, key=lambda item: item.index)
            all_embeddings.extend(item.embedding for item in ordered)
        return all_embeddings

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        return self._model_name


class EmbeddingService:
    """
    Unified embedding interface used by the retrieval augmenter.

    Example:
        service = EmbeddingService()
        vectors = service.embed_batch(["text1", "text2"])
        query_vector = service.embed_query("What is RAG?")
    """

    def __init__(self, provider: Optional[str] = None, config: Optional[EmbeddingConfig] = None):
        """
        Initialize the embedding service.

        Args:
            provider: "local" or "openai" (default from config)
            config: Optional EmbeddingConfig instance
        """
        self.config = config or get_settings().embedding
        self.provider_name = provider or self.config.provider

        if self.provider_name == "local":
            self._provider = LocalEmbeddingProvider(model_name=self.config.local_model)
        elif self.provider_name == "openai":
            self._provider = OpenAIEmbeddingProvider(
                model_name=self.config.openai_model,
                api_key=self.config.openai_api_key,
            )
        else:
            raise ValueError(f"Unknown embedding provider: {self.provider_name}")

        logger.info(f"EmbeddingService initialized with {self.provider_name} provider")

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed document texts.

        Raises:
            ValueError: If any text is empty, since results must line up with inputs
        """
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Cannot embed empty text")
        return self._provider.embed_batch(texts)

    def embed_query(self, query: str) -> List[float]:
        """Embed a user query for retrieval."""
        if not query or not query.strip():
            raise ValueError("Cannot embed empty text")
        return self._provider.embed_batch([query])[0]

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return self._provider.model_name
