"""
Web Search Module

Live web search through the Brave Search API, used to add current
information to prompts for messages that ask about recent events.

Usage:
    search = SearchService()
    if search.should_search("What's the latest news on the election?"):
        items = search.search_for_context("latest news on the election", limit=3)
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from config.settings import get_settings, SearchConfig
from src.exceptions import SearchError
from src.models import ContextItem

logger = logging.getLogger(__name__)

USER_AGENT = "RAG-Chatbot/1.0"
DEFAULT_LIMIT = 5
MAX_LIMIT = 10

RECENCY_KEYWORDS = [
    "latest", "recent", "current", "today", "news", "update",
    "what's happening", "breaking", "trending", "now", "currently",
    "this week", "this month", "this year", "status", "price",
    "weather", "stock", "rate", "election", "event",
]

QUESTION_PATTERNS = [
    "what is the", "how much", "where is", "when did", "who won",
    "what happened", "how to", "why is", "is there",
]

_RECENCY_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in RECENCY_KEYWORDS) + r")|\b20\d{2}\b"
)
_QUESTION_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in QUESTION_PATTERNS) + r")"
)


def needs_fresh_information(message: str) -> bool:
    """
    Decide whether a message likely asks about current events.

    Pure keyword heuristic over the lower-cased message: recency words,
    any 20xx year, or a factual question opening. Keywords must start a
    word but may carry a suffix, so "prices" and "updates" count while
    "snow" does not match "now".
    """
    lowered = (message or "").lower()
    if not lowered.strip():
        return False
    return bool(_RECENCY_RE.search(lowered) or _QUESTION_RE.search(lowered))


@dataclass
class SearchResult:
    """A single web search hit."""
    title: str
    url: str
    description: str
    published: Optional[str] = None


class SearchService:
    """
    Brave Search client.

    Disabled unless search is switched on and an API key is configured.
    """

    def __init__(self, config: Optional[SearchConfig] = None):
        self.config = config or get_settings().search
        self._session = requests.Session()
        logger.info(f"SearchService initialized (enabled={self.is_enabled()})")

    def is_enabled(self) -> bool:
        return bool(self.config.enabled and self.config.brave_api_key)

    def should_search(self, message: str) -> bool:
        """True when search is enabled and the message looks time-sensitive."""
        return self.is_enabled() and needs_fresh_information(message)

    def search(self, query: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        """
        Run a web search.

        Args:
            query: Search terms
            limit: Number of results (out-of-range values fall back to 5)

        Returns:
            Search results in ranking order

        Raises:
            SearchError: If search is disabled, the query is empty, or the
                request fails
        """
        if not self.is_enabled():
            raise SearchError("Search service not enabled - missing BRAVE_SEARCH_API_KEY")

        clean_query = (query or "").strip()
        if not clean_query:
            raise SearchError("Search query cannot be empty")

        if limit <= 0 or limit > MAX_LIMIT:
            limit = DEFAULT_LIMIT

        params = {
            "q": clean_query,
            "count": limit,
            "offset": 0,
            "freshness": "pw",  # past week
            "text_decorations": "false",
        }
        headers = {
            "X-Subscription-Token": self.config.brave_api_key,
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

        try:
            response = self._session.get(
                self.config.base_url,
                params=params,
                headers=headers,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise SearchError(f"Search request failed: {e}") from e

        if response.status_code != 200:
            raise SearchError(f"Search API error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SearchError(f"Failed to parse search response: {e}") from e

        raw_results = ((data or {}).get("web") or {}).get("results") or []
        results = [
            SearchResult(
                title=r.get("title", ""),
                url=r.get("url", ""),
                description=r.get("description", ""),
                published=r.get("published") or r.get("age"),
            )
            for r in raw_results
        ]
        logger.info(f"Search for '{clean_query}' returned {len(results)} results")
        return results

    def search_for_context(self, query: str, limit: Optional[int] = None) -> List[ContextItem]:
        """Search and format the results as context items (default limit: SEARCH_MAX_RESULTS)."""
        results = self.search(query, limit or self.config.max_results)
        return [
            ContextItem(
                text=f"[Search Result {i}] {r.title} - {r.description} (Source: {r.url})",
                source_kind=ContextItem.SEARCH,
                source_label=f"Search Result {i}",
            )
            for i, r in enumerate(results, 1)
        ]

    def get_status(self) -> Dict[str, Any]:
        key = self.config.brave_api_key or ""
        status: Dict[str, Any] = {
            "enabled": self.is_enabled(),
            "provider": "brave",
            "base_url": self.config.base_url,
            "timeout": f"{self.config.timeout:g}s",
        }
        if key:
            status["api_key"] = f"{key[:4]}...{key[-4:]}" if len(key) > 8 else "***"
            status["status"] = "available" if self.config.enabled else "disabled"
        else:
            status["status"] = "unavailable"
            status["error"] = "BRAVE_SEARCH_API_KEY not set"
        return status
