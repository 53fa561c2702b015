"""Result types returned by the chat store."""

from __future__ import annotations

from dataclasses import dataclass, field

from worldvault.core.models import Chat


@dataclass(frozen=True, slots=True)
class ChatPage:
    """One cursor page of a user's chats.

    Attributes:
        chats: Live chats on this page, newest first.
        has_more: True when rows beyond this page match the same cursor.
    """

    chats: list[Chat] = field(default_factory=list)
    has_more: bool = False
