"""
Chat Service

Stores Ask-AI conversations so they survive a page reload. A session is
nothing more than the messages sharing one session id; its title is the
first question asked in it.
"""

from typing import Optional
from uuid import UUID, uuid4

from finance_tracker.audit import AuditLogger
from finance_tracker.models.assistant import (
    NEW_SESSION_TITLE,
    ChatMessage,
    ChatMessageType,
    ChatSession,
)
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.services.base import UserScopedService
from finance_tracker.services.storage import ChatStorageInterface


def group_sessions(messages: list[ChatMessage]) -> list[ChatSession]:
    """Summarize messages per session, most recently active first."""
    sessions: dict[UUID, ChatSession] = {}
    for message in messages:
        session = sessions.get(message.session_id)
        if session is None:
            session = ChatSession(
                session_id=message.session_id,
                last_message_at=message.created_at,
            )
            sessions[message.session_id] = session
        session.message_count += 1
        session.last_message_at = max(session.last_message_at, message.created_at)
        if session.first_message == NEW_SESSION_TITLE and message.type == ChatMessageType.USER:
            session.first_message = message.message

    return sorted(sessions.values(), key=lambda s: s.last_message_at, reverse=True)


class ChatService(UserScopedService):

    def __init__(
        self,
        storage: ChatStorageInterface,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(user_id, audit_logger)
        self._storage = storage

    @staticmethod
    def new_session_id() -> UUID:
        return uuid4()

    async def get_chat_sessions(self) -> list[ChatSession]:
        user_id = self._require_user()
        return group_sessions(await self._storage.list_messages(user_id))

    async def get_messages(self, session_id: UUID) -> list[ChatMessage]:
        """Messages of one session, oldest first."""
        user_id = self._require_user()
        return await self._storage.list_messages(user_id, session_id)

    async def save_message(
        self,
        session_id: UUID,
        message_type: ChatMessageType,
        message: str,
    ) -> ChatMessage:
        user_id = self._require_user()
        saved = await self._storage.save_message(ChatMessage(
            user_id=user_id,
            session_id=session_id,
            type=message_type,
            message=message,
        ))
        self._logger.debug(
            "chat_message_saved",
            session_id=str(session_id),
            type=saved.type.value,
        )
        return saved

    async def delete_session(self, session_id: UUID) -> int:
        """Delete every message of a session and return how many were removed."""
        user_id = self._require_user()
        removed = await self._storage.delete_session(user_id, session_id)

        self._logger.info("chat_session_deleted", session_id=str(session_id), messages=removed)
        await self._audit.log(AuditEventBuilder.chat_session_deleted(user_id, session_id, removed))
        return removed
