"""External integration adapters.

Provides protocols and implementations for:
- Summarizer: derives the ``summary`` column of saved artifacts

Usage:
    from worldvault.adapters import Summarizer

    # Implementation (requires optional dependencies)
    from worldvault.adapters.instructor import InstructorSummarizer  # pip install worldvault[llm]
"""

from worldvault.adapters.models import ArtifactSummary, Message, MessageRole
from worldvault.adapters.protocol import Summarizer

__all__ = [
    "Summarizer",
    "ArtifactSummary",
    "Message",
    "MessageRole",
]
