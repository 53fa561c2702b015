"""Adapter protocols for external integrations.

Defines the interface the version store uses to derive artifact summaries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from worldvault.core.models import Artifact


@runtime_checkable
class Summarizer(Protocol):
    """Produces a short human-readable summary of one artifact version.

    Usage:
        summarizer: Summarizer = InstructorSummarizer.from_openai_client(openai_client)
        store = ArtifactVersionStore(storage, summarizer=summarizer)
    """

    def summarize(self, artifact: Artifact) -> str:
        """Summary text for an artifact version.

        Args:
            artifact: Saved version whose content is summarized.

        Returns:
            Summary text; an empty string means "nothing to store".
        """
        ...
