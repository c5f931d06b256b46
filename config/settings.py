"""
Configuration settings for the Chatbot Gateway.

This module handles all configuration management using environment variables.
No hardcoded values - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag from the environment ("1", "true", "yes", "on")."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LLMConfig:
    """Configuration for the generation backends."""

    # "auto" probes both backends, "local"/"hosted" force one of them
    provider: str = "auto"

    # Local model server (Ollama)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "tinyllama:latest"
    ollama_timeout: float = 120.0  # Slow local inference on small hardware
    probe_timeout: float = 5.0

    # Hosted chat-completion API (OpenAI compatible)
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-3.5-turbo"
    openai_timeout: float = 30.0


@dataclass
class SearchConfig:
    """Configuration for live web search (Brave Search API)."""

    enabled: bool = False
    brave_api_key: Optional[str] = None
    base_url: str = "https://api.search.brave.com/res/v1/web/search"
    timeout: float = 10.0
    max_results: int = 3


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    provider: Literal["local", "openai"] = "local"
    local_model: str = "all-MiniLM-L6-v2"
    openai_model: str = "text-embedding-3-small"
    openai_api_key: Optional[str] = None


@dataclass
class ChunkingConfig:
    """Configuration for document chunking."""

    chunk_size: int = 500  # Characters per chunk
    chunk_overlap: int = 50


@dataclass
class RetrievalConfig:
    """Configuration for document retrieval and channel context."""

    enabled: bool = False
    data_path: str = "./data"
    collection_name: str = "documents"
    top_k: int = 3
    illustrative_context: bool = False  # Placeholder context when nothing was retrieved
    channel_history_size: int = 10


@dataclass
class DiscordConfig:
    """Configuration for the Discord front end."""

    token: Optional[str] = None
    command_prefix: str = "!chat "
    history_limit: int = 10


@dataclass
class ServerConfig:
    """Configuration for the HTTP front end."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.llm.provider)
        print(settings.llm.ollama_model)
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Paths
    project_root: Path = field(default_factory=lambda: Path(__file__).parent.parent)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        llm = LLMConfig(
            provider=os.getenv("LLM_PROVIDER", "auto"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", os.getenv("LLM_BASE_URL", "http://localhost:11434")),
            ollama_model=os.getenv("OLLAMA_MODEL", os.getenv("LLM_MODEL", "tinyllama:latest")),
            ollama_timeout=float(os.getenv("OLLAMA_TIMEOUT", "120")),
            probe_timeout=float(os.getenv("PROBE_TIMEOUT", "5")),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_timeout=float(os.getenv("OPENAI_TIMEOUT", "30")),
        )

        search = SearchConfig(
            enabled=_env_bool("ENABLE_SEARCH", False),
            brave_api_key=os.getenv("BRAVE_SEARCH_API_KEY"),
            timeout=float(os.getenv("SEARCH_TIMEOUT", "10")),
            max_results=int(os.getenv("SEARCH_MAX_RESULTS", "3")),
        )

        embedding = EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "local"),  # type: ignore
            local_model=os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            openai_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
        )

        chunking = ChunkingConfig(
            chunk_size=int(os.getenv("CHUNK_SIZE", "500")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "50")),
        )

        retrieval = RetrievalConfig(
            enabled=_env_bool("ENABLE_RAG", False),
            data_path=os.getenv("RAG_DATA_PATH", "./data"),
            collection_name=os.getenv("RAG_COLLECTION", "documents"),
            top_k=int(os.getenv("TOP_K_RESULTS", "3")),
            illustrative_context=_env_bool("RAG_ILLUSTRATIVE_CONTEXT", False),
            channel_history_size=int(os.getenv("CHANNEL_HISTORY_SIZE", "10")),
        )

        discord = DiscordConfig(
            token=os.getenv("DISCORD_BOT_TOKEN"),
            command_prefix=os.getenv("DISCORD_COMMAND_PREFIX", "!chat "),
            history_limit=int(os.getenv("DISCORD_HISTORY_LIMIT", "10")),
        )

        server = ServerConfig(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080").lstrip(":")),
        )

        return cls(
            llm=llm,
            search=search,
            embedding=embedding,
            chunking=chunking,
            retrieval=retrieval,
            discord=discord,
            server=server,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
