"""
Retrieval Module

Document retrieval plus recent Discord channel context.

Components:
- ChannelMessageBuffer: newest-first ring buffer of recent messages per channel
- RetrievalAugmenter: indexes the data folder (chunk -> embed -> FAISS) and
  answers similarity queries, optionally with the channel's recent messages

Usage:
    augmenter = RetrievalAugmenter()
    augmenter.index_documents("./data")
    result = augmenter.query("How do I reset my password?", scope_key="1234", limit=3)
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from config.settings import get_settings, RetrievalConfig
from src.chunker import DocumentChunker
from src.embeddings import EmbeddingService
from src.exceptions import RetrievalError
from src.models import DiscordMessage
from src.rwlock import ReadWriteLock
from src.vector_store import FAISSVectorStore

logger = logging.getLogger(__name__)

EXAMPLE_FILE_NAME = "example.txt"
EXAMPLE_CONTENT = (
    "This is an example document for the RAG system. "
    "Add your documents to the data folder to make them searchable."
)

# Messages this short are chatter, not context
MIN_CONTEXT_CHARS = 10


class ChannelMessageBuffer:
    """
    Per-channel ring buffer of recent messages.

    Newest message first; once a channel holds `capacity` messages the
    oldest is evicted. Safe to share between request workers.
    """

    def __init__(self, capacity: int = 10):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._channels: Dict[str, Deque[DiscordMessage]] = {}
        self._lock = ReadWriteLock()

    def add(self, message: DiscordMessage) -> None:
        """Record a message at the front of its channel's buffer."""
        with self._lock.write_lock():
            buffer = self._channels.get(message.channel_id)
            if buffer is None:
                buffer = deque(maxlen=self.capacity)
                self._channels[message.channel_id] = buffer
            buffer.appendleft(message)

    def recent(self, channel_id: str, limit: Optional[int] = None) -> List[DiscordMessage]:
        """Up to `limit` messages for a channel, newest first."""
        with self._lock.read_lock():
            messages = list(self._channels.get(channel_id, ()))
        if limit is not None:
            messages = messages[:max(limit, 0)]
        return messages

    def context_snippets(self, channel_id: str, limit: Optional[int] = None) -> List[str]:
        """
        Channel messages usable as prompt context.

        Bot messages and short chatter are skipped. Snippets are formatted
        "author: content" and returned oldest first.
        """
        snippets = [
            f"{m.author}: {m.content}"
            for m in self.recent(channel_id, limit)
            if not m.is_bot and len(m.content) > MIN_CONTEXT_CHARS
        ]
        snippets.reverse()
        return snippets

    def stats(self) -> Dict[str, int]:
        with self._lock.read_lock():
            return {
                "channels_tracked": len(self._channels),
                "total_messages": sum(len(b) for b in self._channels.values()),
            }


@dataclass
class RetrievalResult:
    """
    Result of one retrieval query.

    Attributes:
        documents: Matching chunks as {id, content, source, score}, best first
        channel_context: Recent channel snippets, oldest first
        query: The query text
    """
    documents: List[Dict[str, Any]] = field(default_factory=list)
    channel_context: List[str] = field(default_factory=list)
    query: str = ""

    @property
    def total(self) -> int:
        return len(self.documents)


class RetrievalAugmenter:
    """
    Document index and channel context provider.

    The embedding model and FAISS index are created on first use.
    """

    def __init__(
        self,
        config: Optional[RetrievalConfig] = None,
        embedding_service: Optional[EmbeddingService] = None,
        chunker: Optional[DocumentChunker] = None,
        message_buffer: Optional[ChannelMessageBuffer] = None,
    ):
        self.config = config or get_settings().retrieval
        self._embeddings = embedding_service
        self._chunker = chunker
        self._store: Optional[FAISSVectorStore] = None
        self._lock = ReadWriteLock()
        self.messages = message_buffer or ChannelMessageBuffer(self.config.channel_history_size)

        logger.info(
            f"RetrievalAugmenter created: collection={self.config.collection_name}, "
            f"data_path={self.config.data_path}"
        )

    def _get_embeddings(self) -> EmbeddingService:
        if self._embeddings is None:
            self._embeddings = EmbeddingService()
        return self._embeddings

    def _get_chunker(self) -> DocumentChunker:
        if self._chunker is None:
            self._chunker = DocumentChunker()
        return self._chunker

    @property
    def is_indexed(self) -> bool:
        return self._store is not None

    def index_documents(self, path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """
        Index every supported file under the data folder.

        A missing folder is created together with an example document.

        Returns:
            Indexing stats (files, chunks, data_path)

        Raises:
            RetrievalError: If the folder cannot be created or embedding fails
        """
        data_path = Path(path or self.config.data_path)

        if not data_path.exists():
            logger.info(f"Data path {data_path} does not exist, creating it")
            try:
                data_path.mkdir(parents=True, exist_ok=True)
                (data_path / EXAMPLE_FILE_NAME).write_text(EXAMPLE_CONTENT, encoding="utf-8")
            except OSError as e:
                raise RetrievalError(f"Failed to create data path {data_path}: {e}") from e

        try:
            chunks = self._get_chunker().process_directory(data_path)
        except (OSError, ValueError) as e:
            raise RetrievalError(f"Failed to read {data_path}: {e}") from e

        if not chunks:
            logger.info(f"No documents found to index in {data_path}")
            return {"files": 0, "chunks": 0, "data_path": str(data_path)}

        try:
            embeddings = self._get_embeddings()
            vectors = embeddings.embed_batch([c.text for c in chunks])
            for chunk, vector in zip(chunks, vectors):
                chunk.embedding = vector

            with self._lock.write_lock():
                if self._store is None:
                    self._store = FAISSVectorStore(dimension=len(vectors[0]))
                added = self._store.add_chunks(chunks)
        except Exception as e:
            raise RetrievalError(f"Failed to index documents: {e}") from e

        files = len({c.source for c in chunks})
        logger.info(f"Indexed {added} document chunks from {files} files in {data_path}")
        return {"files": files, "chunks": added, "data_path": str(data_path)}

    def query(self, text: str, scope_key: str = "", limit: Optional[int] = None) -> RetrievalResult:
        """
        Find the chunks most similar to `text`.

        Args:
            text: Query text
            scope_key: Channel id whose recent messages are returned too
            limit: Maximum documents (non-positive means 5)

        Raises:
            RetrievalError: If embedding or the index lookup fails
        """
        if limit is None:
            limit = self.config.top_k
        if limit <= 0:
            limit = 5

        result = RetrievalResult(query=text)
        if scope_key:
            result.channel_context = self.messages.context_snippets(scope_key)

        if self._store is None or not (text or "").strip():
            return result

        try:
            vector = self._get_embeddings().embed_query(text)
            with self._lock.read_lock():
                hits = self._store.search(vector, top_k=limit)
        except Exception as e:
            raise RetrievalError(f"Failed to query collection: {e}") from e

        result.documents = sorted(
            (hit.to_dict() for hit in hits), key=lambda d: d["score"], reverse=True
        )
        return result

    def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "enabled": self.config.enabled,
            "collection_name": self.config.collection_name,
            "data_path": self.config.data_path,
            "discord_context": self.messages.stats(),
        }
        with self._lock.read_lock():
            if self._store is not None:
                status["status"] = "active"
                status["documents"] = self._store.count()
                status["sources"] = self._store.sources()
            else:
                status["status"] = "inactive"
                status["documents"] = 0
        return status
