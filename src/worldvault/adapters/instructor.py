"""Instructor adapter implementing the Summarizer protocol.

Provides structured LLM summaries using the instructor library with support
for OpenAI, Anthropic and LiteLLM (100+ providers).

Usage:
    from worldvault.adapters.instructor import InstructorSummarizer

    # From OpenAI client
    import openai
    summarizer = InstructorSummarizer.from_openai_client(openai.OpenAI())

    # From LiteLLM (100+ providers)
    from worldvault.config import LLMSettings
    summarizer = InstructorSummarizer.from_litellm(
        settings=LLMSettings(model="anthropic/claude-3-5-sonnet-20241022")
    )

    store = ArtifactVersionStore(storage, summarizer=summarizer)
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from worldvault.adapters.models import ArtifactSummary, Message, MessageRole
from worldvault.config import LLMSettings
from worldvault.core.content import SiteContent, display_text
from worldvault.core.types import ArtifactKind

if TYPE_CHECKING:
    import instructor
    from openai import OpenAI

    from worldvault.core.models import Artifact

SYSTEM_PROMPT = (
    "You write very short summaries of documents stored in a content library. "
    "Answer with a single sentence and no preamble."
)

_MAX_CONTENT_CHARS = 8000


def _messages_to_openai(messages: list[Message]) -> list[dict[str, str]]:
    """Convert Message objects to OpenAI message format."""
    role_map = {
        MessageRole.SYSTEM: "system",
        MessageRole.USER: "user",
        MessageRole.ASSISTANT: "assistant",
    }
    return [{"role": role_map[m.role], "content": m.content} for m in messages]


def site_structure(content: SiteContent) -> str:
    """Theme, block types and slot names of a site, without artifact ids."""
    structure = {
        "theme": content.definition.theme,
        "blocks": [
            {"type": block.type, "slots": sorted(block.slots)}
            for block in content.definition.blocks
        ],
    }
    return json.dumps(structure, indent=2)


def summary_prompt(artifact: Artifact) -> str:
    """Kind-specific instruction for one artifact version."""
    content = display_text(artifact.content)[:_MAX_CONTENT_CHARS]
    match artifact.kind:
        case ArtifactKind.IMAGE:
            return f"Describe this image briefly, in at most 15 words. Image URL: {content}"
        case ArtifactKind.CODE:
            return (
                "Summarize this code fragment in at most 15 words, "
                f"explaining its purpose:\n\n{content}"
            )
        case ArtifactKind.SHEET:
            return (
                "Summarize this table in at most 15 words, "
                f"describing what it contains:\n\n{content}"
            )
        case ArtifactKind.SITE if isinstance(artifact.content, SiteContent):
            return (
                "Describe the structure of this site in at most 15 words, "
                f"naming the blocks it includes:\n\n{site_structure(artifact.content)}"
            )
    return f"Summarize this text in at most 20 words:\n\n{content}"


def _require_instructor() -> Any:
    try:
        import instructor
    except ImportError as e:
        raise ImportError(
            "instructor is required for InstructorSummarizer. "
            "Install with: pip install worldvault[llm]"
        ) from e
    return instructor


class InstructorSummarizer:
    """Instructor-based implementation of the Summarizer protocol.

    Attributes:
        client: The instructor-patched client.
        settings: LLM configuration settings.
    """

    def __init__(
        self,
        client: instructor.Instructor,
        settings: LLMSettings | None = None,
    ) -> None:
        """Initialize with an instructor client.

        Use factory methods instead of direct construction.

        Args:
            client: Instructor-patched client for sync operations.
            settings: Optional LLM settings (uses defaults if None).
        """
        self._client = client
        self._settings = settings or LLMSettings()

    @classmethod
    def from_instructor_client(
        cls,
        client: instructor.Instructor,
        settings: LLMSettings | None = None,
    ) -> InstructorSummarizer:
        """Create from an existing instructor client."""
        return cls(client, settings)

    @classmethod
    def from_openai_client(
        cls,
        client: OpenAI,
        settings: LLMSettings | None = None,
        mode: instructor.Mode | None = None,
    ) -> InstructorSummarizer:
        """Create from an OpenAI client.

        Args:
            client: OpenAI client instance.
            settings: Optional LLM settings.
            mode: Instructor mode (default: TOOLS).

        Returns:
            Configured InstructorSummarizer instance.
        """
        instructor = _require_instructor()
        mode = mode or instructor.Mode.TOOLS
        return cls(instructor.from_openai(client, mode=mode), settings)

    @classmethod
    def from_anthropic(
        cls,
        client: Any,
        settings: LLMSettings | None = None,
        mode: Any | None = None,
    ) -> InstructorSummarizer:
        """Create from an ``anthropic.Anthropic`` client (mode default: ANTHROPIC_TOOLS)."""
        instructor = _require_instructor()
        mode = mode or instructor.Mode.ANTHROPIC_TOOLS
        return cls(instructor.from_anthropic(client, mode=mode), settings)

    @classmethod
    def from_litellm(
        cls,
        settings: LLMSettings | None = None,
        mode: Any | None = None,
    ) -> InstructorSummarizer:
        """Create using LiteLLM for multi-provider support.

        Args:
            settings: Optional LLM settings. The model field should use
                LiteLLM's provider/model format (e.g., "anthropic/claude-3-opus").
            mode: Instructor mode (default: TOOLS).

        Returns:
            Configured InstructorSummarizer instance.
        """
        instructor = _require_instructor()
        try:
            import litellm  # type: ignore[import-not-found]
        except ImportError as e:
            raise ImportError(
                "litellm is required. Install with: pip install worldvault[llm] litellm"
            ) from e

        mode = mode or instructor.Mode.TOOLS
        return cls(instructor.from_litellm(litellm.completion, mode=mode), settings)

    @property
    def settings(self) -> LLMSettings:
        """Get the LLM settings."""
        return self._settings

    def summarize(self, artifact: Artifact) -> str:
        """Ask the model for a one-line summary of ``artifact``.

        Returns:
            Stripped summary text.
        """
        messages = [Message.system(SYSTEM_PROMPT), Message.user(summary_prompt(artifact))]
        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": _messages_to_openai(messages),
            "response_model": ArtifactSummary,
            "temperature": self._settings.temperature,
            "max_retries": self._settings.max_retries,
        }
        if self._settings.max_tokens is not None:
            call_kwargs["max_tokens"] = self._settings.max_tokens

        result: ArtifactSummary = self._client.chat.completions.create(**call_kwargs)
        return result.summary.strip()
