"""ChatStore: conversation rows scoped by world.

Chats are single rows. Deleting one only sets ``deleted_at``; a deleted chat
is invisible to reads and listings until it is restored.

Usage:
    chats = ChatStore(LocalStorage())
    chat = chats.create_chat("u1", "Trip planning", scope=scope)

    page = chats.list_chats("u1", limit=20, scope=scope)
    older = chats.list_chats("u1", limit=20, ending_before=page.chats[-1].created_at, scope=scope)

    chats.soft_delete(chat.id, "u1", scope=scope)
    chats.restore(chat.id, "u1", scope=scope)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from worldvault.chats.models import ChatPage
from worldvault.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from worldvault.core.identity import new_id
from worldvault.core.models import Chat
from worldvault.core.types import Clock, ensure_utc, utc_now

if TYPE_CHECKING:
    from worldvault.storage.protocol import Storage
    from worldvault.world.context import WorldScope

logger = logging.getLogger(__name__)

DEFAULT_CHAT_LIMIT = 20


class ChatStore:
    """Lifecycle of chat rows: create, read, list, rename, delete, restore.

    Args:
        storage: Backend holding chat rows.
        clock: Source of ``created_at`` and ``deleted_at`` instants.
    """

    def __init__(self, storage: Storage, *, clock: Clock = utc_now):
        self._storage = storage
        self._clock = clock

    @property
    def storage(self) -> Storage:
        return self._storage

    def create_chat(
        self,
        user_id: str,
        title: str,
        *,
        chat_id: str | None = None,
        scope: WorldScope,
    ) -> Chat:
        """Insert a new chat owned by ``user_id``.

        Raises:
            ValidationError: If the title is blank.
        """
        if not title or not title.strip():
            raise ValidationError("Chat title is required")
        chat = Chat(
            id=chat_id or new_id(),
            created_at=ensure_utc(self._clock()),
            title=title.strip(),
            user_id=user_id,
        )
        row = self._storage.insert_chat(chat, scope)
        logger.debug("Created chat %s in world %s", row.id, scope)
        return row

    def get_chat(
        self, chat_id: str, *, include_deleted: bool = False, scope: WorldScope
    ) -> Chat:
        """Raises NotFoundError if the chat is absent in scope or deleted."""
        chat = self._storage.get_chat(chat_id, scope, include_deleted)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        return chat

    def list_chats(
        self,
        user_id: str,
        *,
        limit: int = DEFAULT_CHAT_LIMIT,
        starting_after: datetime | None = None,
        ending_before: datetime | None = None,
        scope: WorldScope,
    ) -> ChatPage:
        """A user's live chats in scope, newest first.

        Args:
            user_id: Owner whose chats are listed.
            limit: Maximum chats on the page.
            starting_after: Keep chats created strictly after this instant.
            ending_before: Keep chats created strictly before this instant.
            scope: World to list.

        Raises:
            ValidationError: If ``limit`` is not positive or both cursors are given.
        """
        if limit < 1:
            raise ValidationError("limit must be positive")
        if starting_after is not None and ending_before is not None:
            raise ValidationError("Only one of starting_after or ending_before may be given")
        rows = self._storage.query_chats(
            user_id,
            scope,
            newer_than=ensure_utc(starting_after) if starting_after is not None else None,
            older_than=ensure_utc(ending_before) if ending_before is not None else None,
            limit=limit + 1,
        )
        return ChatPage(chats=rows[:limit], has_more=len(rows) > limit)

    def _owned(self, chat_id: str, user_id: str, scope: WorldScope) -> Chat:
        chat = self._storage.get_chat(chat_id, scope, include_deleted=True)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        if chat.user_id != user_id:
            raise PermissionDeniedError("chat", chat_id, user_id)
        return chat

    def rename(self, chat_id: str, title: str, user_id: str, *, scope: WorldScope) -> Chat:
        """Change the title of a live chat.

        Raises:
            ValidationError: If the title is blank.
            NotFoundError: If the chat is absent in scope or deleted.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        if not title or not title.strip():
            raise ValidationError("Chat title is required")
        chat = self._owned(chat_id, user_id, scope)
        if chat.is_deleted:
            raise NotFoundError("Chat", chat_id)
        return self._storage.update_chat(chat_id, scope, title=title.strip())

    def soft_delete(self, chat_id: str, user_id: str, *, scope: WorldScope) -> Chat:
        """Mark the chat deleted. Deleting a deleted chat returns it unchanged.

        Raises:
            NotFoundError: If the chat has no row in scope.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        chat = self._owned(chat_id, user_id, scope)
        if chat.is_deleted:
            return chat
        now = ensure_utc(self._clock())
        logger.info("Soft-deleting chat %s in world %s", chat_id, scope)
        return self._storage.update_chat(chat_id, scope, deleted_at=now)

    def restore(self, chat_id: str, user_id: str, *, scope: WorldScope) -> Chat:
        """Clear the deletion marker. No-op when not deleted.

        Raises:
            NotFoundError: If the chat has no row in scope.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        chat = self._owned(chat_id, user_id, scope)
        if not chat.is_deleted:
            return chat
        return self._storage.update_chat(chat_id, scope, deleted_at=None)
