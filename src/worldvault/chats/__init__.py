"""Conversations: creation, per-user listing, soft delete and restore."""

from worldvault.chats.models import ChatPage
from worldvault.chats.store import ChatStore

__all__ = [
    "ChatPage",
    "ChatStore",
]
