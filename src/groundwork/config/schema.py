"""Configuration schema using Pydantic.

Why this exists:
- Type-safe configuration with validation
- Environment variable support (GROUNDWORK_ prefix, __ for nesting)
- Multiple deployment profiles (local, server)
- Clear documentation of all settings

How to extend:
1. Add new fields to existing config classes
2. Create new config classes for new components
3. Document the setting in the example TOML
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    LOCAL = "local"


class LLMProviderType(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"


class PassageStoreType(str, Enum):
    """Supported passage stores."""

    SQLITE = "sqlite"
    MEMORY = "memory"


class SummarizerType(str, Enum):
    """Strategies for condensing older conversation turns."""

    HEURISTIC = "heuristic"
    LLM = "llm"


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: EmbeddingProviderType = EmbeddingProviderType.OPENAI
    model_name: str = "text-embedding-3-small"
    api_key: Optional[str] = None
    batch_size: int = Field(default=100, gt=0)
    timeout: float = Field(default=30.0, gt=0)
    extra_params: dict[str, Any] = Field(default_factory=dict)


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: LLMProviderType = LLMProviderType.OPENAI
    model_name: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    max_tokens: int = Field(default=2000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: float = Field(default=60.0, gt=0)
    extra_params: dict[str, Any] = Field(default_factory=dict)


class PassageStoreConfig(BaseModel):
    """Passage store configuration."""

    store_type: PassageStoreType = PassageStoreType.SQLITE
    connection_string: str = "sqlite:///~/.groundwork/knowledge.db"
    extra_params: dict[str, Any] = Field(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        """Expand ~ in connection string."""
        if self.connection_string and "~" in self.connection_string:
            self.connection_string = self.connection_string.replace(
                "~", str(Path.home())
            )


class RetrievalConfig(BaseModel):
    """Knowledge retrieval defaults."""

    top_k: int = Field(default=5, ge=1, description="Passages injected per prompt")
    min_similarity: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Cosine similarity floor for ranked results"
    )


class ChunkingConfig(BaseModel):
    """Passage chunking for ingestion."""

    chunk_size: int = Field(default=1000, gt=0, description="Target passage size in characters")
    chunk_overlap: int = Field(default=200, ge=0, description="Characters shared by neighbouring passages")
    min_chunk_size: int = Field(default=100, ge=0, description="Shorter passages are dropped")


class ContextWindowConfig(BaseModel):
    """Conversation history budgeting.

    Defaults keep roughly 6000 tokens of history, which leaves room for the
    system prompt, knowledge context and the response in an 8k window.
    """

    max_history_tokens: int = Field(default=6000, gt=0)
    keep_recent_pairs: int = Field(default=3, ge=1, description="User/assistant pairs kept verbatim")
    chars_per_token: int = Field(default=4, gt=0)
    topic_max_chars: int = Field(default=100, gt=0, description="Truncation for digest topics")
    summarizer: SummarizerType = SummarizerType.HEURISTIC


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: LogLevel = LogLevel.INFO
    json_logs: bool = False
    enable_file: bool = False
    log_dir: Path = Field(default=Path.home() / ".groundwork" / "logs")
    max_days: int = Field(default=30, gt=0)

    def model_post_init(self, __context: Any) -> None:
        """Expand ~ in paths."""
        self.log_dir = self.log_dir.expanduser()


class AppConfig(BaseSettings):
    """Main application configuration.

    Loads from:
    1. Config file (TOML)
    2. Environment variables (prefixed with GROUNDWORK_)
    3. .env file
    """

    model_config = SettingsConfigDict(
        env_prefix="GROUNDWORK_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    app_name: str = "groundwork"
    system_prompt: str = (
        "You are a helpful assistant. Ground your answers in the provided "
        "knowledge base when it is relevant."
    )

    # Component configurations
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    passage_store: PassageStoreConfig = Field(default_factory=PassageStoreConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    context_window: ContextWindowConfig = Field(default_factory=ContextWindowConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
