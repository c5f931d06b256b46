"""
Chatbot Gateway - Core Source Module

This module contains the gateway components:
- Chatbot: Provider orchestrator with fallback policy
- OllamaProvider / OpenAIProvider / DummyProvider: Generation backends
- ResponseSynthesizer: Context assembly and prompt formatting
- RetrievalAugmenter: Document index and channel message context
- SearchService: Brave web search for time-sensitive questions
- DocumentChunker, EmbeddingService, FAISSVectorStore: Retrieval building blocks
"""

from .models import (
    ChatResponse,
    ContextItem,
    DiscordMessage,
    GenerationResult,
    HistoryEntry,
    Message,
    Provider,
    ProviderState,
)
from .exceptions import (
    BackendAPIError,
    BackendUnavailableError,
    BadResponseError,
    GenerationError,
    NotConfiguredError,
    RetrievalError,
    SearchError,
)
from .llm_service import (
    BaseLLMProvider,
    DummyProvider,
    OllamaProvider,
    OpenAIProvider,
    clean_response,
    create_provider,
)
from .search import SearchService, needs_fresh_information
from .chunker import Chunk, DocumentChunker
from .embeddings import EmbeddingService
from .vector_store import FAISSVectorStore
from .retrieval import ChannelMessageBuffer, RetrievalAugmenter, RetrievalResult
from .synthesizer import ResponseSynthesizer
from .chatbot import Chatbot

__all__ = [
    # Data model
    "ChatResponse",
    "ContextItem",
    "DiscordMessage",
    "GenerationResult",
    "HistoryEntry",
    "Message",
    "Provider",
    "ProviderState",
    # Errors
    "BackendAPIError",
    "BackendUnavailableError",
    "BadResponseError",
    "GenerationError",
    "NotConfiguredError",
    "RetrievalError",
    "SearchError",
    # Backends
    "BaseLLMProvider",
    "DummyProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "clean_response",
    "create_provider",
    # Augmenters
    "SearchService",
    "needs_fresh_information",
    "Chunk",
    "DocumentChunker",
    "EmbeddingService",
    "FAISSVectorStore",
    "ChannelMessageBuffer",
    "RetrievalAugmenter",
    "RetrievalResult",
    "ResponseSynthesizer",
    # Orchestrator
    "Chatbot",
]
