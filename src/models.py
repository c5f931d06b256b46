"""
Data Model Module

Value objects shared by the orchestrator, the augmenters, the backend
adapters and both front ends.

Lifecycle:
- Message, HistoryEntry and ContextItem live for a single request
- ProviderState lives for the process lifetime (owned by one Chatbot)
- GenerationResult and ChatResponse are returned up the call chain and discarded
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


class Provider(str, Enum):
    """Text-generation backends the orchestrator can select."""

    LOCAL = "local"
    HOSTED = "hosted"
    DUMMY = "dummy"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Provider"]:
        """
        Parse a configured provider name.

        Returns None for auto mode ("auto", empty or missing value).

        Raises:
            ValueError: If the name is not a known provider
        """
        if value is None:
            return None
        name = value.strip().lower()
        if name in ("", "auto"):
            return None
        aliases = {
            "local": cls.LOCAL,
            "ollama": cls.LOCAL,
            "hosted": cls.HOSTED,
            "openai": cls.HOSTED,
            "chatgpt": cls.HOSTED,
            "dummy": cls.DUMMY,
        }
        if name not in aliases:
            raise ValueError(f"Unknown LLM provider: {value}")
        return aliases[name]


@dataclass(frozen=True)
class HistoryEntry:
    """
    A single earlier turn supplied by the caller.

    Attributes:
        role: "user" or "assistant"
        content: The message text
        timestamp: When the turn happened
    """
    role: str
    content: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        """Create from dictionary; unknown roles are treated as the user."""
        role = data.get("role", "user")
        if role != "assistant":
            role = "user"
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            role=role,
            content=data.get("content", ""),
            timestamp=timestamp or datetime.utcnow(),
        )


@dataclass(frozen=True)
class Message:
    """An inbound chat turn with the caller-supplied history."""
    text: str
    session_id: str
    history: Tuple[HistoryEntry, ...] = ()


@dataclass(frozen=True)
class ContextItem:
    """
    One augmentation snippet inserted into the prompt.

    Attributes:
        text: The snippet text
        source_kind: "document", "search" or "history"
        source_label: File base name, search result marker or speaker
    """
    text: str
    source_kind: str
    source_label: str = ""

    DOCUMENT = "document"
    SEARCH = "search"
    HISTORY = "history"


@dataclass
class ProviderState:
    """
    Process-wide provider selection state.

    Owned by a single Chatbot and only touched under its lock.
    """
    current_provider: Provider = Provider.DUMMY
    preferred_provider: Optional[Provider] = None
    availability: Dict[Provider, bool] = field(default_factory=dict)

    @property
    def forced(self) -> bool:
        return self.preferred_provider is not None


@dataclass(frozen=True)
class GenerationResult:
    """Text produced for one turn and the backend that produced it."""
    text: str
    used_provider: Provider
    succeeded: bool


@dataclass
class ChatResponse:
    """
    Unified response returned to both front ends.

    Attributes:
        message: The reply text (never empty)
        session_id: Session the reply belongs to
        context: Context snippets that went into the prompt
        sources: Document names the context came from
        status: Always "success" for a processed turn
        provider: Backend that produced the reply
        timestamp: When the reply was produced
    """
    message: str
    session_id: str
    context: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    status: str = STATUS_SUCCESS
    provider: str = Provider.DUMMY.value
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "message": self.message,
            "session_id": self.session_id,
            "context": self.context,
            "sources": self.sources,
            "status": self.status,
            "provider": self.provider,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class DiscordMessage:
    """A Discord channel message kept in the recent-message ring buffer."""
    id: str
    channel_id: str
    content: str
    author: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    is_bot: bool = False
