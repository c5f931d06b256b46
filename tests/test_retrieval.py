"""
Tests for Retrieval Module

Covers the channel ring buffer and the document augmenter. Embeddings are
mocked with a tiny bag-of-words model so the real FAISS index can be used.
"""

import threading
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from config.settings import ChunkingConfig, RetrievalConfig
from src.chunker import DocumentChunker
from src.exceptions import RetrievalError
from src.models import DiscordMessage
from src.retrieval import (
    EXAMPLE_CONTENT,
    ChannelMessageBuffer,
    RetrievalAugmenter,
)

VOCABULARY = ["refund", "shipping", "password", "example"]


def keyword_vector(text):
    lowered = text.lower()
    return [1.0 if word in lowered else 0.0 for word in VOCABULARY] + [0.1]


@pytest.fixture
def embeddings():
    """Keyword-count embedding service."""
    service = Mock()
    service.embed_batch.side_effect = lambda texts: [keyword_vector(t) for t in texts]
    service.embed_query.side_effect = keyword_vector
    return service


@pytest.fixture
def augmenter(embeddings, tmp_path):
    config = RetrievalConfig(enabled=True, data_path=str(tmp_path / "data"), top_k=3)
    return RetrievalAugmenter(
        config=config,
        embedding_service=embeddings,
        chunker=DocumentChunker(config=ChunkingConfig()),
    )


def discord_message(i, channel="100", content=None, author="alice", is_bot=False):
    return DiscordMessage(
        id=str(i),
        channel_id=channel,
        content=content or f"Message number {i} in the channel",
        author=author,
        timestamp=datetime(2024, 1, 1) + timedelta(minutes=i),
        is_bot=is_bot,
    )


class TestChannelMessageBuffer:
    """Tests for the per-channel ring buffer."""

    def test_newest_first(self):
        """recent() returns the newest message first."""
        buffer = ChannelMessageBuffer(capacity=10)
        for i in range(3):
            buffer.add(discord_message(i))

        assert [m.id for m in buffer.recent("100")] == ["2", "1", "0"]

    def test_capacity_evicts_oldest(self):
        """A channel never holds more than `capacity` messages."""
        buffer = ChannelMessageBuffer(capacity=10)
        for i in range(25):
            buffer.add(discord_message(i))

        recent = buffer.recent("100")
        assert len(recent) == 10
        assert recent[0].id == "24"
        assert recent[-1].id == "15"

    def test_channels_are_separate(self):
        """Each channel has its own buffer."""
        buffer = ChannelMessageBuffer(capacity=2)
        buffer.add(discord_message(1, channel="a"))
        buffer.add(discord_message(2, channel="b"))

        assert [m.id for m in buffer.recent("a")] == ["1"]
        assert buffer.recent("unknown") == []
        assert buffer.stats() == {"channels_tracked": 2, "total_messages": 2}

    def test_recent_limit(self):
        """limit trims the newest-first list."""
        buffer = ChannelMessageBuffer()
        for i in range(5):
            buffer.add(discord_message(i))

        assert [m.id for m in buffer.recent("100", limit=2)] == ["4", "3"]

    def test_context_snippets(self):
        """Snippets skip bots and chatter, and read oldest first."""
        buffer = ChannelMessageBuffer()
        buffer.add(discord_message(1, content="How do refunds work here?", author="alice"))
        buffer.add(discord_message(2, content="ok", author="bob"))
        buffer.add(discord_message(3, content="I am a bot with a long reply", author="bot", is_bot=True))
        buffer.add(discord_message(4, content="They take fourteen days.", author="carol"))

        assert buffer.context_snippets("100") == [
            "alice: How do refunds work here?",
            "carol: They take fourteen days.",
        ]

    def test_invalid_capacity(self):
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            ChannelMessageBuffer(capacity=0)

    def test_concurrent_adds(self):
        """Concurrent writers keep the bound."""
        buffer = ChannelMessageBuffer(capacity=10)

        def writer(start):
            for i in range(start, start + 50):
                buffer.add(discord_message(i))

        threads = [threading.Thread(target=writer, args=(n * 100,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(buffer.recent("100")) == 10
        assert buffer.stats()["total_messages"] == 10


class TestRetrievalAugmenter:
    """Tests for RetrievalAugmenter."""

    def test_missing_folder_created_with_example(self, augmenter, tmp_path):
        """Indexing a missing folder creates it with an example document."""
        stats = augmenter.index_documents()

        example = tmp_path / "data" / "example.txt"
        assert example.read_text(encoding="utf-8") == EXAMPLE_CONTENT
        assert stats["files"] == 1
        assert stats["chunks"] >= 1
        assert augmenter.is_indexed

    def test_query_returns_best_first(self, augmenter, tmp_path):
        """Documents come back sorted by score, best first."""
        data = tmp_path / "docs"
        data.mkdir()
        (data / "refunds.md").write_text("Refund requests are handled within 14 days.", encoding="utf-8")
        (data / "shipping.txt").write_text("Shipping takes three to five business days.", encoding="utf-8")
        augmenter.index_documents(data)

        result = augmenter.query("How does a refund work?", limit=2)

        assert result.total == 2
        assert result.documents[0]["source"] == "refunds.md"
        assert result.documents[0]["score"] >= result.documents[1]["score"]
        assert set(result.documents[0]) == {"id", "content", "source", "score"}

    def test_query_before_indexing(self, augmenter):
        """Querying an empty augmenter returns no documents."""
        result = augmenter.query("anything")
        assert result.documents == []
        assert result.query == "anything"

    def test_query_includes_channel_context(self, augmenter):
        """A scope key adds that channel's recent messages."""
        augmenter.messages.add(discord_message(1, channel="555", content="Where is my package?"))

        result = augmenter.query("package", scope_key="555")

        assert result.channel_context == ["alice: Where is my package?"]

    def test_non_positive_limit_defaults_to_five(self, augmenter, tmp_path):
        """limit <= 0 means five results."""
        data = tmp_path / "many"
        data.mkdir()
        for i in range(7):
            (data / f"doc{i}.txt").write_text(f"Password reset guide number {i}.", encoding="utf-8")
        augmenter.index_documents(data)

        assert augmenter.query("password", limit=0).total == 5

    def test_embedding_failure_raises_retrieval_error(self, augmenter, embeddings):
        """Indexing failures surface as RetrievalError."""
        embeddings.embed_batch.side_effect = RuntimeError("model missing")

        with pytest.raises(RetrievalError, match="model missing"):
            augmenter.index_documents()

    def test_query_failure_raises_retrieval_error(self, augmenter, embeddings):
        """Query failures surface as RetrievalError."""
        augmenter.index_documents()
        embeddings.embed_query.side_effect = RuntimeError("boom")

        with pytest.raises(RetrievalError):
            augmenter.query("example")

    def test_get_status(self, augmenter):
        """Status reports indexed documents and channel stats."""
        assert augmenter.get_status()["status"] == "inactive"

        augmenter.index_documents()
        status = augmenter.get_status()

        assert status["status"] == "active"
        assert status["sources"] == ["example.txt"]
        assert status["discord_context"]["channels_tracked"] == 0
