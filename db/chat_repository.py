from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models import VaultMessage, WorkspaceMessage, new_id, utcnow
from economist_ai.exception import PersistenceError
from economist_ai.logger import GLOBAL_LOGGER as log

MessageModel = Union[Type[WorkspaceMessage], Type[VaultMessage]]

# fields a caller may change after a message is written
UPDATABLE_FIELDS = {"is_upvoted": "is_upvoted", "metadata": "message_metadata"}


class ConversationRepository:
    """
    Durable message store for one conversation kind (workspace or vault).

    Source of truth for chat history; the Redis context window is only a
    derived, expiring view of it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: MessageModel,
        parent_column: str,
    ):
        self.session_factory = session_factory
        self.model = model
        self.parent_column = parent_column

    @classmethod
    def for_workspaces(cls, session_factory) -> "ConversationRepository":
        return cls(session_factory, WorkspaceMessage, "workspace_id")

    @classmethod
    def for_vaults(cls, session_factory) -> "ConversationRepository":
        return cls(session_factory, VaultMessage, "vault_id")

    @property
    def _parent(self):
        return getattr(self.model, self.parent_column)

    async def append(
        self,
        conversation_id: str,
        role: str,
        content: str,
        created_at: Optional[datetime] = None,
        metadata: Optional[dict[str, Any]] = None,
        message_id: Optional[str] = None,
    ):
        msg = self.model(
            id=message_id or new_id(),
            role=role,
            content=content,
            created_at=created_at or utcnow(),
            message_metadata=metadata,
        )
        setattr(msg, self.parent_column, conversation_id)
        try:
            async with self.session_factory() as db:
                db.add(msg)
                await db.commit()
        except SQLAlchemyError as e:
            log.error(
                "Failed to persist message | table=%s | conversation_id=%s | role=%s | error=%s",
                self.model.__tablename__,
                conversation_id,
                role,
                str(e),
            )
            raise PersistenceError("Failed to persist message", details=str(e)) from e

        log.info(
            "Message persisted | table=%s | conversation_id=%s | role=%s | message_id=%s",
            self.model.__tablename__,
            conversation_id,
            role,
            msg.id,
        )
        return msg

    async def list_recent(self, conversation_id: str, limit: int = 50):
        """Most recent first."""
        try:
            async with self.session_factory() as db:
                out = await db.execute(
                    select(self.model)
                    .where(self._parent == conversation_id)
                    .order_by(self.model.created_at.desc())
                    .limit(limit)
                )
                rows = list(out.scalars().all())
        except SQLAlchemyError as e:
            log.error("Failed to load messages | conversation_id=%s | error=%s", conversation_id, str(e))
            raise PersistenceError("Failed to load messages", details=str(e)) from e

        log.info(
            "Loaded recent messages | table=%s | conversation_id=%s | count=%d",
            self.model.__tablename__,
            conversation_id,
            len(rows),
        )
        return rows

    async def update(self, message_id: str, fields: dict[str, Any], conversation_id: Optional[str] = None):
        """Apply feedback fields; returns None when the message does not exist."""
        try:
            async with self.session_factory() as db:
                msg = await db.get(self.model, message_id)
                if msg is None or (
                    conversation_id is not None and getattr(msg, self.parent_column) != conversation_id
                ):
                    return None
                for key, value in fields.items():
                    if key in UPDATABLE_FIELDS:
                        setattr(msg, UPDATABLE_FIELDS[key], value)
                await db.commit()
        except SQLAlchemyError as e:
            log.error("Failed to update message | message_id=%s | error=%s", message_id, str(e))
            raise PersistenceError("Failed to update message", details=str(e)) from e

        log.info("Message updated | message_id=%s | fields=%s", message_id, sorted(fields))
        return msg
