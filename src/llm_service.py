"""
LLM Service Module

Provides an abstraction layer over the text-generation backends:
- Local: Ollama (tinyllama, llama2, mistral, ...) - Free, runs locally
- Hosted: OpenAI-compatible chat completions - Requires API key
- Dummy: Canned, deterministic replies - Always available

Design Rationale:
- One capability interface so the orchestrator can walk a fallback table
- Each adapter maps its transport failures onto the GenerationError taxonomy
- Output of every real backend goes through clean_response()

Usage:
    provider = OllamaProvider(model="tinyllama:latest")
    if provider.is_available():
        text = provider.generate("What is RAG?", context=[], history=[])
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx
import ollama
import openai
from openai import OpenAI

from config.settings import get_settings, LLMConfig
from src.exceptions import (
    BackendAPIError,
    BackendUnavailableError,
    BadResponseError,
    NotConfiguredError,
)
from src.models import ContextItem, HistoryEntry, Provider
from src.search import SearchService
from src.synthesizer import build_chat_messages, build_completion_prompt

# Configure logging
logger = logging.getLogger(__name__)

MAX_RESPONSE_CHARS = 1000

OLLAMA_OPTIONS = {
    "temperature": 0.7,
    "max_tokens": 300,
    "num_predict": 300,
    "top_p": 0.9,
    "repeat_penalty": 1.1,
    "num_ctx": 1024,
    "stop": ["\nHuman:", "\nUser:"],
}

OPENAI_MAX_TOKENS = 150
OPENAI_TEMPERATURE = 0.7
OPENAI_STOP = ["\n\nHuman:", "\nHuman:", "User:"]

_LEADING_LABEL = re.compile(r"^(?:\s*assistant\s*:\s*)+", re.IGNORECASE)
_TURN_MARKER = re.compile(r"^[ \t]*(?:human|user)\s*:", re.IGNORECASE | re.MULTILINE)
_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


def clean_response(raw: Optional[str], max_chars: int = MAX_RESPONSE_CHARS) -> str:
    """
    Normalize raw backend output.

    Steps:
    1. Trim surrounding whitespace
    2. Drop leading "Assistant:" labels (repeated ones too)
    3. Cut at the first line that opens a new Human:/User: turn
    4. Bound the length, preferring a sentence boundary

    Applying it twice gives the same result as applying it once.

    Args:
        raw: Text as returned by the backend
        max_chars: Length budget

    Returns:
        Cleaned text (possibly empty)
    """
    text = (raw or "").strip()
    text = _LEADING_LABEL.sub("", text).strip()

    for match in _TURN_MARKER.finditer(text):
        # A marker at position 0 is the whole reply, not a continuation
        if match.start() > 0:
            text = text[:match.start()].strip()
            break

    if len(text) > max_chars:
        text = _truncate(text, max_chars)
    return text


def _truncate(text: str, max_chars: int) -> str:
    window = text[:max_chars]
    boundary = 0
    for match in _SENTENCE_END.finditer(window):
        boundary = match.end()

    if boundary >= max_chars // 2:
        return window[:boundary].strip()
    return window[:max_chars - 3].rstrip() + "..."


def mask_key(api_key: Optional[str]) -> str:
    """Mask a credential for status output (first4...last4)."""
    if not api_key:
        return ""
    if len(api_key) > 8:
        return f"{api_key[:4]}...{api_key[-4:]}"
    return "***"


class BaseLLMProvider(ABC):
    """
    Abstract base class for generation backends.

    All providers must implement:
    - generate: Produce reply text for one turn
    - is_available: Cheap health probe
    - get_status: Diagnostic snapshot
    """

    provider: Provider

    @abstractmethod
    def generate(
        self,
        text: str,
        context: Sequence[ContextItem],
        history: Sequence[HistoryEntry],
    ) -> str:
        """
        Generate a reply for the current message.

        Args:
            text: The user's message
            context: Ordered augmentation snippets
            history: Earlier turns, oldest first

        Returns:
            Non-empty, cleaned reply text

        Raises:
            GenerationError: If the backend cannot answer this turn
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the backend looks reachable right now."""
        pass

    def is_configured(self) -> bool:
        """Return True if all credentials this backend needs are present."""
        return True

    @abstractmethod
    def get_status(self) -> Dict[str, Any]:
        """Return a diagnostic snapshot of the backend."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name."""
        pass


class OllamaProvider(BaseLLMProvider):
    """
    Ollama provider for local LLM inference.

    Benefits:
    - Free to use (runs locally)
    - No API key required
    - Privacy (data stays local)

    Requirements:
    - Ollama installed: https://ollama.ai
    - Model pulled: ollama pull tinyllama
    """

    provider = Provider.LOCAL

    def __init__(
        self,
        model: str = "tinyllama:latest",
        base_url: str = "http://localhost:11434",
        timeout: float = 120.0,
        probe_timeout: float = 5.0,
    ):
        """
        Initialize Ollama provider.

        Args:
            model: Ollama model name
            base_url: Ollama server URL
            timeout: Seconds allowed for one generation
            probe_timeout: Seconds allowed for the health probe
        """
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._probe_timeout = probe_timeout
        self._client = None
        self._probe_client = None

        logger.info(f"Initializing OllamaProvider: model={model}, url={base_url}")

    def _get_client(self):
        """Get or create the Ollama client used for generation."""
        if self._client is None:
            self._client = ollama.Client(host=self._base_url, timeout=self._timeout)
            logger.info("Ollama client initialized")
        return self._client

    def _get_probe_client(self):
        """Get or create the short-timeout client used for health probes."""
        if self._probe_client is None:
            self._probe_client = ollama.Client(host=self._base_url, timeout=self._probe_timeout)
        return self._probe_client

    def generate(
        self,
        text: str,
        context: Sequence[ContextItem],
        history: Sequence[HistoryEntry],
    ) -> str:
        """Generate a reply through POST /api/generate."""
        client = self._get_client()
        prompt = build_completion_prompt(text, context, history)

        try:
            response = client.generate(
                model=self._model,
                prompt=prompt,
                stream=False,
                options=dict(OLLAMA_OPTIONS),
            )
        except ollama.ResponseError as e:
            raise BadResponseError(
                f"Ollama returned status {e.status_code}: {e.error}", provider="local"
            ) from e
        except (ConnectionError, httpx.HTTPError) as e:
            raise BackendUnavailableError(
                f"Cannot reach Ollama at {self._base_url}: {e}", provider="local"
            ) from e
        except (ValueError, KeyError, TypeError) as e:
            raise BadResponseError(f"Undecodable Ollama payload: {e}", provider="local") from e

        error = response.get("error")
        if error:
            raise BackendAPIError(f"Ollama error: {error}", provider="local")

        reply = clean_response(response.get("response"))
        if not reply:
            raise BadResponseError("Ollama returned no usable text", provider="local")
        return reply

    def is_available(self) -> bool:
        """Probe GET /api/tags."""
        try:
            self._get_probe_client().list()
            return True
        except Exception as e:
            logger.debug(f"Ollama probe failed: {e}")
            return False

    def list_models(self) -> List[str]:
        """Return the names of the models pulled on the server."""
        response = self._get_probe_client().list()
        models = response.get("models") or []
        names = []
        for model in models:
            name = model.get("model") or model.get("name")
            if name:
                names.append(name)
        return names

    def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "provider": self.provider.value,
            "base_url": self._base_url,
            "model": self._model,
            "timeout": f"{self._timeout:g}s",
        }
        try:
            status["available_models"] = self.list_models()
            status["status"] = "available"
        except Exception as e:
            logger.debug(f"Ollama status probe failed: {e}")
            status["status"] = "unavailable"
            status["error"] = "Cannot connect to LLM service"
        return status

    @property
    def model_name(self) -> str:
        return self._model


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider for GPT chat-completion models.

    Uses live web search for messages that ask about recent events when a
    SearchService is attached and enabled.
    """

    provider = Provider.HOSTED

    def __init__(
        self,
        model: str = "gpt-3.5-turbo",
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        search_service: Optional[SearchService] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: OpenAI model name
            api_key: API key; the provider is not configured without one
            base_url: API base URL (any OpenAI-compatible server)
            timeout: Seconds allowed for one completion
            search_service: Optional live-search augmenter
        """
        self._model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._search = search_service
        self._client = None

        logger.info(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self):
        """Get or create OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise NotConfiguredError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable.",
                    provider="hosted",
                )
            self._client = OpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )
            logger.info("OpenAI client initialized")
        return self._client

    def _search_context(self, text: str) -> List[ContextItem]:
        if self._search is None or not self._search.should_search(text):
            return []
        try:
            items = self._search.search_for_context(text, self._search.config.max_results)
        except Exception as e:
            logger.warning(f"Search failed: {e}")
            return []
        if items:
            logger.info(f"Added {len(items)} search results to context")
        return items

    def generate(
        self,
        text: str,
        context: Sequence[ContextItem],
        history: Sequence[HistoryEntry],
    ) -> str:
        """Generate a reply through chat.completions."""
        client = self._get_client()

        all_context = list(context) + self._search_context(text)
        messages = build_chat_messages(text, all_context, history)

        try:
            response = client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=OPENAI_MAX_TOKENS,
                temperature=OPENAI_TEMPERATURE,
                stop=OPENAI_STOP,
            )
        except openai.APIConnectionError as e:
            # APITimeoutError is a subclass
            raise BackendUnavailableError(f"Cannot reach OpenAI: {e}", provider="hosted") from e
        except openai.APIStatusError as e:
            if isinstance(e.body, dict) and (e.body.get("message") or e.body.get("error")):
                raise BackendAPIError(
                    f"OpenAI API error ({e.status_code}): {e.message}", provider="hosted"
                ) from e
            raise BadResponseError(
                f"OpenAI returned status {e.status_code}", provider="hosted"
            ) from e
        except openai.APIError as e:
            raise BadResponseError(f"Undecodable OpenAI payload: {e}", provider="hosted") from e

        error = getattr(response, "error", None)
        if error:
            raise BackendAPIError(f"OpenAI API error: {error}", provider="hosted")

        if not response.choices:
            raise BadResponseError("No response choices from OpenAI", provider="hosted")

        reply = clean_response(response.choices[0].message.content)
        if not reply:
            raise BadResponseError("OpenAI returned no usable text", provider="hosted")
        return reply

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def is_available(self) -> bool:
        # No network probe; a key is all the hosted API needs up front
        return self.is_configured()

    def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "provider": self.provider.value,
            "base_url": self._base_url,
            "model": self._model,
            "timeout": f"{self._timeout:g}s",
        }
        if self.is_configured():
            status["status"] = "available"
            status["api_key"] = mask_key(self._api_key)
        else:
            status["status"] = "unavailable"
            status["error"] = "OPENAI_API_KEY not set"

        if self._search is not None:
            status["search"] = self._search.get_status()
            status["search_enabled"] = self._search.is_enabled()
        else:
            status["search"] = {"status": "disabled", "note": "Search not enabled for this instance"}
            status["search_enabled"] = False
        return status

    @property
    def model_name(self) -> str:
        return self._model


GREETING_TEMPLATES = [
    "Hello! I'm your RAG chatbot. I can use local or hosted LLM models when they're available.",
    "Hi there! I answer with local AI when possible, with smart fallbacks when it isn't.",
    "Hey! Ask me anything, or ask about the documents I can search.",
]

MODEL_TEMPLATES = [
    "I can use a local model through Ollama or a hosted chat API, but neither is answering right now, so you're getting my built-in replies.",
    "No language model is reachable at the moment. Start Ollama or set OPENAI_API_KEY to enable AI responses.",
]

DOCUMENT_TEMPLATES = [
    "I'm designed for document search! Drop files into the data folder and I'll use them as context for my answers.",
    "I can search indexed documents and, for questions about recent events, the web.",
]

RAG_TEMPLATES = [
    "RAG (Retrieval-Augmented Generation) is my specialty! I combine document search with AI generation.",
    "Retrieval-Augmented Generation means I look up relevant passages first and then answer using them.",
]

DEFAULT_TEMPLATES = [
    'I received your message: "{message}". No language model is available right now, so this is a canned reply.',
    'Got it: "{message}". This is message {position} of our conversation; AI responses will resume once a model is reachable.',
]

_DUMMY_CATEGORIES = [
    (re.compile(r"\b(?:hello|hi|hey)\b"), GREETING_TEMPLATES),
    (re.compile(r"\b(?:llm|models?)\b"), MODEL_TEMPLATES),
    (re.compile(r"\b(?:documents?|files?|search)\b"), DOCUMENT_TEMPLATES),
    (re.compile(r"\b(?:rag|retrieval)\b"), RAG_TEMPLATES),
]


class DummyProvider(BaseLLMProvider):
    """
    Canned-response generator.

    The reply depends only on the message's keyword category and the
    message's position in the conversation, and is never empty.
    """

    provider = Provider.DUMMY

    def generate(
        self,
        text: str,
        context: Sequence[ContextItem] = (),
        history: Sequence[HistoryEntry] = (),
    ) -> str:
        message = (text or "").strip()
        lowered = message.lower()
        position = len(history)

        templates = DEFAULT_TEMPLATES
        for pattern, category in _DUMMY_CATEGORIES:
            if pattern.search(lowered):
                templates = category
                break

        template = templates[position % len(templates)]
        return template.format(message=message, position=position + 1)

    def is_available(self) -> bool:
        return True

    def get_status(self) -> Dict[str, Any]:
        return {"provider": self.provider.value, "status": "available", "model": self.model_name}

    @property
    def model_name(self) -> str:
        return "canned-responses"


def create_provider(
    provider: Provider,
    config: Optional[LLMConfig] = None,
    search_service: Optional[SearchService] = None,
) -> BaseLLMProvider:
    """
    Build the adapter for a provider from configuration.

    Args:
        provider: Which backend to build
        config: Optional LLMConfig instance (default from settings)
        search_service: Live-search augmenter handed to the hosted adapter

    Returns:
        A BaseLLMProvider implementation
    """
    config = config or get_settings().llm

    if provider == Provider.LOCAL:
        return OllamaProvider(
            model=config.ollama_model,
            base_url=config.ollama_base_url,
            timeout=config.ollama_timeout,
            probe_timeout=config.probe_timeout,
        )
    if provider == Provider.HOSTED:
        return OpenAIProvider(
            model=config.openai_model,
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            timeout=config.openai_timeout,
            search_service=search_service,
        )
    if provider == Provider.DUMMY:
        return DummyProvider()
    raise ValueError(f"Unknown LLM provider: {provider}")
