"""
Response Synthesizer Module

Assembles the context for a chat turn and formats prompts for each backend.

Context order is fixed: retrieved documents (best score first), then
history (oldest first), then search results appended by the hosted adapter.

Usage:
    synthesizer = ResponseSynthesizer(retrieval=augmenter)
    context = synthesizer.build_context("How do refunds work?", "discord_42_1001", [])
    prompt = build_completion_prompt("How do refunds work?", context, [])
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from config.settings import get_settings, RetrievalConfig
from src.exceptions import RetrievalError
from src.models import ContextItem, HistoryEntry
from src.retrieval import ChannelMessageBuffer, RetrievalAugmenter

logger = logging.getLogger(__name__)

MAX_HISTORY_TURNS = 6
DISCORD_SESSION_PREFIX = "discord_"

COMPLETION_SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on provided context. "
    "Use the context information to provide accurate and relevant answers. "
    "If the context doesn't contain relevant information, say so and provide a general helpful response."
)

CHAT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide concise, direct answers. "
    "Keep responses under 2-3 sentences unless more detail is specifically requested. "
    "Use provided context when relevant. Do not continue the conversation or ask follow-up questions."
)

SEARCH_NOTE = "Note: Some context includes current web search results for up-to-date information."

PLACEHOLDER_CONTEXT = [
    ContextItem(
        text="[Illustrative Context] This would normally be a relevant snippet from your documents.",
        source_kind=ContextItem.DOCUMENT,
        source_label="placeholder-doc.txt",
    ),
    ContextItem(
        text="[Illustrative Context] Add files to the data folder to get real passages here.",
        source_kind=ContextItem.DOCUMENT,
        source_label="sample-file.md",
    ),
]


def parse_scope_key(session_id: str) -> str:
    """
    Extract the channel id from a Discord session id.

    "discord_<user>_<channel>" -> "<channel>"; anything else -> "".
    """
    if not session_id or not session_id.startswith(DISCORD_SESSION_PREFIX):
        return ""
    parts = session_id[len(DISCORD_SESSION_PREFIX):].split("_")
    if len(parts) < 2 or not parts[-1]:
        return ""
    return parts[-1]


def _one_line(text: str) -> str:
    return " ".join(text.split())


def format_context_block(context: Sequence[ContextItem], numbered: bool = True) -> str:
    """Render context one item per line, numbered or bulleted."""
    lines = []
    for i, item in enumerate(context, 1):
        marker = f"{i}." if numbered else "-"
        lines.append(f"{marker} {_one_line(item.text)}")
    return "\n".join(lines)


def trailing_history(history: Sequence[HistoryEntry], turns: int = MAX_HISTORY_TURNS) -> List[HistoryEntry]:
    """The last `turns` entries of the caller's history."""
    history = list(history or ())
    return history[-turns:] if turns > 0 else []


def build_completion_prompt(
    text: str,
    context: Sequence[ContextItem],
    history: Sequence[HistoryEntry],
) -> str:
    """
    Text-completion prompt for the local model.

    Layout:
        <system instruction>

        Context information:
        1. ...

        Previous conversation:
        Human: ...
        Assistant: ...

        Human: <message>
        Assistant:
    """
    parts = [COMPLETION_SYSTEM_PROMPT + "\n\n"]

    if context:
        parts.append("Context information:\n" + format_context_block(context) + "\n\n")

    turns = trailing_history(history)
    if turns:
        lines = []
        for entry in turns:
            speaker = "Assistant" if entry.role == "assistant" else "Human"
            lines.append(f"{speaker}: {entry.content}")
        parts.append("Previous conversation:\n" + "\n".join(lines) + "\n\n")

    parts.append(f"Human: {text}\nAssistant: ")
    return "".join(parts)


def build_chat_messages(
    text: str,
    context: Sequence[ContextItem],
    history: Sequence[HistoryEntry],
) -> List[Dict[str, str]]:
    """Chat-completion message list for the hosted API."""
    system_prompt = CHAT_SYSTEM_PROMPT
    if context:
        system_prompt += "\n\nContext:\n" + format_context_block(context, numbered=False) + "\n"
        if any(item.source_kind == ContextItem.SEARCH for item in context):
            system_prompt += "\n" + SEARCH_NOTE

    messages = [{"role": "system", "content": system_prompt}]
    for entry in trailing_history(history):
        role = "assistant" if entry.role == "assistant" else "user"
        messages.append({"role": role, "content": entry.content})
    messages.append({"role": "user", "content": text})
    return messages


def extract_sources(context: Sequence[ContextItem]) -> List[str]:
    """Unique document labels, in context order."""
    sources: List[str] = []
    for item in context:
        if item.source_kind == ContextItem.DOCUMENT and item.source_label and item.source_label not in sources:
            sources.append(item.source_label)
    return sources


class ResponseSynthesizer:
    """
    Builds the ordered context for one chat turn.

    Example:
        synthesizer = ResponseSynthesizer(retrieval=augmenter)
        items = synthesizer.build_context(text, session_id, history)
    """

    def __init__(
        self,
        retrieval: Optional[RetrievalAugmenter] = None,
        message_buffer: Optional[ChannelMessageBuffer] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        self.retrieval = retrieval
        if message_buffer is None and retrieval is not None:
            message_buffer = retrieval.messages
        self.message_buffer = message_buffer
        self.config = config or get_settings().retrieval

    @property
    def retrieval_enabled(self) -> bool:
        return self.retrieval is not None and self.config.enabled

    def _document_items(self, text: str, scope_key: str) -> List[ContextItem]:
        if not self.retrieval_enabled:
            return []
        try:
            result = self.retrieval.query(text, scope_key, self.config.top_k)
        except RetrievalError as e:
            logger.warning(f"Retrieval failed, continuing without documents: {e}")
            return []

        documents = sorted(result.documents, key=lambda d: d.get("score", 0.0), reverse=True)
        return [
            ContextItem(
                text=doc.get("content", ""),
                source_kind=ContextItem.DOCUMENT,
                source_label=Path(doc.get("source") or "").name,
            )
            for doc in documents
            if doc.get("content")
        ]

    def _channel_items(self, scope_key: str) -> List[ContextItem]:
        if self.message_buffer is None or not scope_key:
            return []
        items = []
        for snippet in self.message_buffer.context_snippets(scope_key):
            author, _, _ = snippet.partition(": ")
            items.append(ContextItem(text=snippet, source_kind=ContextItem.HISTORY, source_label=author))
        return items

    def build_context(
        self,
        text: str,
        session_id: str,
        history: Sequence[HistoryEntry],
    ) -> List[ContextItem]:
        """
        Assemble context for one turn.

        Args:
            text: The user's message
            session_id: Session identifier (Discord sessions carry the channel id)
            history: Caller-supplied earlier turns, oldest first

        Returns:
            Documents, then history, in a stable order
        """
        scope_key = parse_scope_key(session_id)
        context = self._document_items(text, scope_key)

        if history:
            context.extend(
                ContextItem(text=entry.content, source_kind=ContextItem.HISTORY, source_label=entry.role)
                for entry in history
                if entry.content
            )
        else:
            context.extend(self._channel_items(scope_key))

        if not context and self.config.illustrative_context:
            context = list(PLACEHOLDER_CONTEXT)

        logger.debug(f"Built {len(context)} context items for session {session_id}")
        return context
