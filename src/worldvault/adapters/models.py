"""Data models for adapters.

Defines the message and response types used by the summarizer adapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class MessageRole(Enum):
    """Role of a message in LLM conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(slots=True)
class Message:
    """A message in an LLM conversation.

    Attributes:
        role: Who sent the message.
        content: Message text content.
    """

    role: MessageRole
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        """Create a user message."""
        return cls(role=MessageRole.USER, content=content)


class ArtifactSummary(BaseModel):
    """Structured LLM response for a one-line artifact summary."""

    summary: str = Field(
        min_length=1,
        max_length=300,
        description="One sentence describing the artifact, at most 20 words.",
    )
