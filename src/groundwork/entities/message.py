"""Conversation entities - chat turns and context window manager output."""

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Conversation roles accepted by completion backends."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationMessage(BaseModel):
    """A single turn of a chat thread."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        """Return the role-tagged shape chat completion APIs expect."""
        return {"role": self.role.value, "content": self.content}


class CompressionStats(BaseModel):
    """Observability counters computed fresh on every manage call."""

    original_messages: int = Field(..., ge=0)
    original_tokens: int = Field(..., ge=0)
    final_messages: int = Field(..., ge=0)
    final_tokens: int = Field(..., ge=0)
    was_compressed: bool = False


class ManagedContext(BaseModel):
    """A token-bounded history plus the stats describing how it was built."""

    managed_history: list[ConversationMessage]
    was_compressed: bool
    stats: CompressionStats
