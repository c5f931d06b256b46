"""
Tests for Web Search Module
"""

import pytest
import requests
from unittest.mock import Mock

from config.settings import SearchConfig
from src.exceptions import SearchError
from src.models import ContextItem
from src.search import SearchService, needs_fresh_information


BRAVE_PAYLOAD = {
    "web": {
        "results": [
            {"title": "Election results", "url": "https://news.example/a", "description": "Final tally", "age": "2 hours ago"},
            {"title": "Turnout", "url": "https://news.example/b", "description": "Record turnout"},
        ]
    }
}


@pytest.fixture
def service():
    """Enabled service with a mocked HTTP session."""
    svc = SearchService(SearchConfig(enabled=True, brave_api_key="brave-test-key-1234"))
    svc._session = Mock()
    response = Mock(status_code=200, text="")
    response.json.return_value = BRAVE_PAYLOAD
    svc._session.get.return_value = response
    return svc


class TestNeedsFreshInformation:
    """Tests for the recency heuristic."""

    @pytest.mark.parametrize("message", [
        "What's the latest news?",
        "Who won the election",
        "weather in Paris today",
        "What happened in 2024?",
        "How much is a ticket",
        "Any updates on bitcoin prices?",
        "What are the upcoming events in Paris?",
        "Are interest rates going up?",
        "Tell me about tech stocks",
    ])
    def test_time_sensitive(self, message):
        """Recency words, years and factual openings trigger search."""
        assert needs_fresh_information(message) is True

    @pytest.mark.parametrize("message", ["", "   ", "Tell me a joke", "Summarize this paragraph"])
    def test_not_time_sensitive(self, message):
        """Ordinary requests do not trigger search."""
        assert needs_fresh_information(message) is False

    def test_keywords_must_start_a_word(self):
        """Keywords inside other words do not count."""
        assert needs_fresh_information("I like snow") is False
        assert needs_fresh_information("Keep them separate") is False
        assert needs_fresh_information("I know that") is False


class TestSearchService:
    """Tests for SearchService."""

    def test_disabled_without_key(self):
        """Search needs both the flag and a key."""
        assert SearchService(SearchConfig(enabled=True)).is_enabled() is False
        assert SearchService(SearchConfig(enabled=False, brave_api_key="k")).is_enabled() is False

    def test_should_search(self, service):
        """should_search combines enablement with the heuristic."""
        assert service.should_search("latest news") is True
        assert service.should_search("tell me a joke") is False

    def test_search_sends_brave_request(self, service):
        """The request carries the token header and query parameters."""
        results = service.search("election", limit=2)

        assert [r.title for r in results] == ["Election results", "Turnout"]
        assert results[0].published == "2 hours ago"
        kwargs = service._session.get.call_args.kwargs
        assert kwargs["headers"]["X-Subscription-Token"] == "brave-test-key-1234"
        assert kwargs["params"]["q"] == "election"
        assert kwargs["params"]["count"] == 2
        assert kwargs["params"]["freshness"] == "pw"

    @pytest.mark.parametrize("limit", [0, -3, 11, 50])
    def test_out_of_range_limit_defaults(self, service, limit):
        """Limits outside 1..10 fall back to 5."""
        service.search("election", limit=limit)
        assert service._session.get.call_args.kwargs["params"]["count"] == 5

    def test_empty_query_raises(self, service):
        """Blank queries are rejected before any request."""
        with pytest.raises(SearchError, match="empty"):
            service.search("   ")
        service._session.get.assert_not_called()

    def test_disabled_raises(self):
        """Searching while disabled is an error."""
        with pytest.raises(SearchError, match="not enabled"):
            SearchService(SearchConfig()).search("news")

    def test_http_error_status_raises(self, service):
        """Non-200 responses raise SearchError."""
        service._session.get.return_value = Mock(status_code=429, text="rate limited")
        with pytest.raises(SearchError, match="429"):
            service.search("news")

    def test_transport_error_raises(self, service):
        """Network failures raise SearchError."""
        service._session.get.side_effect = requests.ConnectionError("offline")
        with pytest.raises(SearchError, match="request failed"):
            service.search("news")

    def test_bad_json_raises(self, service):
        """Undecodable bodies raise SearchError."""
        service._session.get.return_value.json.side_effect = ValueError("not json")
        with pytest.raises(SearchError, match="parse"):
            service.search("news")

    def test_search_for_context(self, service):
        """Results become numbered search context items."""
        items = service.search_for_context("election", limit=3)

        assert len(items) == 2
        assert items[0].source_kind == ContextItem.SEARCH
        assert items[0].source_label == "Search Result 1"
        assert items[0].text == "[Search Result 1] Election results - Final tally (Source: https://news.example/a)"

    def test_status_masks_key(self, service):
        """Status shows a masked key."""
        status = service.get_status()
        assert status["enabled"] is True
        assert status["api_key"] == "brav...1234"

    def test_search_for_context_default_limit(self, service):
        """Without a limit, SEARCH_MAX_RESULTS is requested."""
        service.config.max_results = 4
        service.search_for_context("election")
        assert service._session.get.call_args.kwargs["params"]["count"] == 4
