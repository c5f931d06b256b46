"""tests/conftest.py

Shared fixtures for the chatbot gateway test suite.
"""

from unittest.mock import Mock

import pytest

from config.settings import Settings
from src.llm_service import BaseLLMProvider
from src.models import ContextItem, HistoryEntry, Provider


@pytest.fixture
def settings() -> Settings:
    """Default settings: auto mode, retrieval and search disabled."""
    return Settings()


@pytest.fixture
def make_provider():
    """Factory for mock backend adapters.

    Returns:
        Callable building a Mock that behaves like a BaseLLMProvider.
    """

    def _make(provider: Provider, reply="Backend reply.", available=True, configured=True, error=None):
        adapter = Mock(spec=BaseLLMProvider)
        adapter.provider = provider
        adapter.model_name = f"{provider.value}-model"
        adapter.is_available.return_value = available
        adapter.is_configured.return_value = configured
        adapter.get_status.return_value = {"provider": provider.value, "status": "available"}
        if error is not None:
            adapter.generate.side_effect = error
        else:
            adapter.generate.return_value = reply
        return adapter

    return _make


@pytest.fixture
def sample_history() -> list:
    """A short user/assistant exchange, oldest first."""
    return [
        HistoryEntry(role="user", content="Hello!"),
        HistoryEntry(role="assistant", content="Hi there! How can I help you?"),
        HistoryEntry(role="user", content="What's the weather like?"),
        HistoryEntry(role="assistant", content="I don't have live weather data."),
    ]


@pytest.fixture
def document_context() -> list:
    """Two retrieved document snippets."""
    return [
        ContextItem(text="Refunds are issued within 14 days.", source_kind=ContextItem.DOCUMENT, source_label="policy.md"),
        ContextItem(text="Contact support by email.", source_kind=ContextItem.DOCUMENT, source_label="faq.txt"),
    ]
