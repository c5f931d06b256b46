"""
Chatbot Module

The provider orchestrator: decides which backend answers each message,
falls back along a fixed policy table, and always returns a reply.

API Contract:
    class Chatbot:
        def process_message(self, text, session_id, history) -> ChatResponse
        def get_status(self) -> dict
        def refresh_availability(self) -> Provider

Design Rationale:
- ProviderState is the single source of truth for the active backend
- Fallback order is data (FALLBACK_POLICY), not nested conditionals
- Health probes run outside the lock; the lock only covers the swap
- No backend or augmenter failure ever reaches the caller
"""

import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

from config.settings import get_settings, Settings
from src.exceptions import GenerationError, RetrievalError
from src.llm_service import BaseLLMProvider, DummyProvider, create_provider
from src.models import (
    ChatResponse,
    ContextItem,
    DiscordMessage,
    GenerationResult,
    HistoryEntry,
    Message,
    Provider,
    ProviderState,
    STATUS_ERROR,
    STATUS_SUCCESS,
)
from src.retrieval import ChannelMessageBuffer, RetrievalAugmenter
from src.rwlock import ReadWriteLock
from src.search import SearchService
from src.synthesizer import ResponseSynthesizer, extract_sources

logger = logging.getLogger(__name__)

MODE_FORCED = "forced"
MODE_AUTO = "auto"

# "current" is resolved to ProviderState.current_provider at call time
CURRENT = "current"

FALLBACK_POLICY: Dict[str, List[str]] = {
    MODE_FORCED: [CURRENT, Provider.DUMMY.value],
    MODE_AUTO: [Provider.LOCAL.value, Provider.HOSTED.value, Provider.DUMMY.value],
}

REAL_PROVIDERS = (Provider.LOCAL, Provider.HOSTED)


def _other(provider: Provider) -> Provider:
    return Provider.HOSTED if provider == Provider.LOCAL else Provider.LOCAL


def fallback_chain(mode: str, current: Provider) -> List[Provider]:
    """
    Providers to try for one message, in order.

    Forced mode walks [current, dummy]. Auto mode starts from the current
    provider and continues with the rest of the auto table; when the
    current provider is the Dummy the whole table is walked.
    """
    table = FALLBACK_POLICY[mode]
    chain: List[Provider] = []

    if mode == MODE_AUTO and current != Provider.DUMMY:
        chain.append(current)

    for entry in table:
        provider = current if entry == CURRENT else Provider(entry)
        if provider not in chain:
            chain.append(provider)
    return chain


class Chatbot:
    """
    Provider orchestrator shared by the HTTP and Discord front ends.

    Example:
        bot = Chatbot()                       # mode from LLM_PROVIDER
        bot = Chatbot(preferred_provider="hosted")
        response = bot.process_message("hello", "sess_1", [])
        print(response.message, response.provider)
    """

    def __init__(
        self,
        preferred_provider: Optional[Union[str, Provider]] = None,
        providers: Optional[Dict[Provider, BaseLLMProvider]] = None,
        retrieval: Optional[RetrievalAugmenter] = None,
        search_service: Optional[SearchService] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the orchestrator and pick the starting provider.

        Args:
            preferred_provider: "auto", "local" or "hosted" (default from config)
            providers: Backend adapters keyed by provider (built from config if omitted)
            retrieval: Document retrieval augmenter (built if RAG is enabled)
            search_service: Web search augmenter handed to the hosted adapter
            settings: Optional Settings instance
        """
        self.settings = settings or get_settings()
        self._start_time = time.monotonic()
        self._lock = ReadWriteLock()

        if isinstance(preferred_provider, Provider):
            preferred = preferred_provider
        else:
            preferred = Provider.parse(
                preferred_provider if preferred_provider is not None else self.settings.llm.provider
            )

        self.search_service = search_service or SearchService(self.settings.search)

        if retrieval is None and self.settings.retrieval.enabled:
            retrieval = RetrievalAugmenter(
                config=self.settings.retrieval,
                message_buffer=ChannelMessageBuffer(self.settings.retrieval.channel_history_size),
            )
        self.retrieval = retrieval
        self.message_buffer = (
            retrieval.messages if retrieval is not None
            else ChannelMessageBuffer(self.settings.retrieval.channel_history_size)
        )
        self.synthesizer = ResponseSynthesizer(
            retrieval=retrieval,
            message_buffer=self.message_buffer,
            config=self.settings.retrieval,
        )

        if providers is None:
            providers = {
                p: create_provider(p, self.settings.llm, self.search_service)
                for p in REAL_PROVIDERS
            }
        self._providers: Dict[Provider, BaseLLMProvider] = dict(providers)
        self._dummy = self._providers.setdefault(Provider.DUMMY, DummyProvider())

        availability = self._probe()
        self.state = ProviderState(
            current_provider=self._select_initial(preferred, availability),
            preferred_provider=preferred,
            availability=availability,
        )

        probes = ", ".join(f"{p.value}={up}" for p, up in availability.items())
        logger.info(
            f"Chatbot initialized: mode={self.mode}, "
            f"current_provider={self.state.current_provider.value} ({probes})"
        )

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------

    @property
    def mode(self) -> str:
        return MODE_FORCED if self.state.preferred_provider is not None else MODE_AUTO

    @property
    def current_provider(self) -> Provider:
        with self._lock.read_lock():
            return self.state.current_provider

    def _probe(self) -> Dict[Provider, bool]:
        """Probe every real backend. Runs without holding the lock."""
        availability = {Provider.DUMMY: True}
        for provider in REAL_PROVIDERS:
            adapter = self._providers.get(provider)
            if adapter is None:
                availability[provider] = False
                continue
            try:
                availability[provider] = bool(adapter.is_configured() and adapter.is_available())
            except Exception as e:
                logger.warning(f"Probe for {provider.value} failed: {e}")
                availability[provider] = False
            logger.debug(f"Probe {provider.value}: available={availability[provider]}")
        return availability

    def _select_initial(self, preferred: Optional[Provider], availability: Dict[Provider, bool]) -> Provider:
        if preferred == Provider.DUMMY:
            return Provider.DUMMY

        if preferred is not None:
            if availability.get(preferred):
                return preferred
            other = _other(preferred)
            if availability.get(other):
                logger.warning(
                    f"Preferred provider {preferred.value} unavailable at startup, using {other.value}"
                )
                return other
            logger.warning(f"Preferred provider {preferred.value} unavailable, using canned responses")
            return Provider.DUMMY

        for provider in REAL_PROVIDERS:
            if availability.get(provider):
                return provider
        logger.warning("No LLM backend available at startup, using canned responses")
        return Provider.DUMMY

    def refresh_availability(self) -> Provider:
        """
        Re-probe the backends and maybe switch the active provider.

        Forced mode never switches. Auto mode switches only when the active
        backend is down and the alternate is up, or when running on canned
        responses and a real backend has come up.

        Returns:
            The provider active after the refresh
        """
        if self.mode == MODE_FORCED:
            logger.info("Forced provider mode, skipping availability refresh")
            return self.current_provider

        availability = self._probe()

        with self._lock.write_lock():
            current = self.state.current_provider
            self.state.availability = availability

            if current == Provider.DUMMY:
                for provider in REAL_PROVIDERS:
                    if availability.get(provider):
                        self.state.current_provider = provider
                        break
            else:
                alternate = _other(current)
                if not availability.get(current) and availability.get(alternate):
                    self.state.current_provider = alternate

            selected = self.state.current_provider

        if selected != current:
            logger.info(f"Provider switched: {current.value} -> {selected.value}")
        return selected

    # ------------------------------------------------------------------
    # Message processing
    # ------------------------------------------------------------------

    def generate(
        self,
        text: str,
        context: Sequence[ContextItem],
        history: Sequence[HistoryEntry],
    ) -> GenerationResult:
        """
        Walk the fallback chain until a backend answers.

        The Dummy generator ends every chain, so this always returns text.
        """
        with self._lock.read_lock():
            current = self.state.current_provider
        mode = self.mode

        for provider in fallback_chain(mode, current):
            if provider == Provider.DUMMY:
                break

            adapter = self._providers.get(provider)
            if adapter is None or not adapter.is_configured():
                logger.debug(f"Skipping unconfigured provider {provider.value}")
                continue

            try:
                reply = adapter.generate(text, context, history)
            except GenerationError as e:
                logger.warning(f"Provider {provider.value} failed ({e.kind}): {e}")
                continue
            except Exception:
                logger.exception(f"Provider {provider.value} raised an unexpected error")
                continue

            if reply and reply.strip():
                logger.info(f"Response generated using {provider.value} ({adapter.model_name})")
                return GenerationResult(text=reply, used_provider=provider, succeeded=True)
            logger.warning(f"Provider {provider.value} returned empty text")

        logger.info("Response generated using canned-response fallback")
        return GenerationResult(
            text=self._dummy.generate(text, context, history),
            used_provider=Provider.DUMMY,
            succeeded=False,
        )

    def process_message(
        self,
        text: str,
        session_id: str,
        history: Optional[Sequence[HistoryEntry]] = None,
    ) -> ChatResponse:
        """
        Answer one chat turn.

        Args:
            text: The user's message
            session_id: Caller's session identifier
            history: Earlier turns, oldest first

        Returns:
            ChatResponse with status "success" and a non-empty message
        """
        message = Message(text=(text or "").strip(), session_id=session_id, history=tuple(history or ()))

        try:
            context = self.synthesizer.build_context(message.text, message.session_id, message.history)
        except Exception:
            logger.exception("Context assembly failed, continuing without context")
            context = []

        result = self.generate(message.text, context, message.history)

        return ChatResponse(
            message=result.text,
            session_id=message.session_id,
            context=[item.text for item in context],
            sources=extract_sources(context),
            status=STATUS_SUCCESS,
            provider=result.used_provider.value,
        )

    def record_channel_message(self, message: DiscordMessage) -> None:
        """Store a Discord message in its channel's recent-message buffer."""
        self.message_buffer.add(message)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def index_documents(self, path: Optional[str] = None) -> Dict[str, Any]:
        """Index the data folder. Failures are logged and reported in the stats."""
        if self.retrieval is None:
            logger.info("RAG disabled, skipping document indexing")
            return {"files": 0, "chunks": 0, "enabled": False}
        try:
            return self.retrieval.index_documents(path)
        except RetrievalError as e:
            logger.error(f"Document indexing failed: {e}")
            return {"files": 0, "chunks": 0, "error": str(e)}

    def process_rag_query(self, query: str, channel_id: str = "", limit: int = 5) -> Dict[str, Any]:
        """
        Raw retrieval results for the /rag endpoint.

        Returns:
            {documents, context, query, total, status[, message]}
        """
        response: Dict[str, Any] = {
            "documents": [],
            "context": [],
            "query": query,
            "total": 0,
            "status": STATUS_SUCCESS,
        }
        if self.retrieval is None:
            response["status"] = STATUS_ERROR
            response["message"] = "RAG service not enabled"
            return response

        try:
            result = self.retrieval.query(query, channel_id, limit)
        except RetrievalError as e:
            logger.error(f"RAG query failed: {e}")
            response["status"] = STATUS_ERROR
            response["message"] = str(e)
            return response

        response["documents"] = result.documents
        response["context"] = result.channel_context
        response["total"] = result.total
        return response

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of provider selection, backends and augmenters."""
        with self._lock.read_lock():
            current = self.state.current_provider
            preferred = self.state.preferred_provider
            availability = dict(self.state.availability)

        provider_status: Dict[str, Any] = {}
        for provider, adapter in self._providers.items():
            try:
                details = adapter.get_status()
            except Exception as e:
                details = {"status": "unknown", "error": str(e)}
            provider_status[provider.value] = {
                "available": availability.get(provider, False),
                **details,
            }

        if self.retrieval is not None:
            rag_status = self.retrieval.get_status()
        else:
            rag_status = {
                "enabled": False,
                "status": "disabled",
                "discord_context": self.message_buffer.stats(),
            }

        uptime = timedelta(seconds=int(time.monotonic() - self._start_time))
        return {
            "status": "active",
            "mode": self.mode,
            "current_provider": current.value,
            "preferred_provider": preferred.value if preferred else MODE_AUTO,
            "provider_status": provider_status,
            "rag_status": rag_status,
            "search_status": self.search_service.get_status(),
            "uptime": str(uptime),
        }
