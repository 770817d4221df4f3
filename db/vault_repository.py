from __future__ import annotations

from typing import List, Optional, Type, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models import Vault, Workspace, new_id, utcnow
from economist_ai.exception import PersistenceError
from economist_ai.logger import GLOBAL_LOGGER as log

Conversation = Union[Type[Vault], Type[Workspace]]


class ConversationOwnerRepository:
    """
    Create / list / delete for the two conversation containers.

    Deleting a row cascades to its messages (and, for vaults, documents and
    chunk rows) through the foreign keys.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], model: Conversation):
        self.session_factory = session_factory
        self.model = model

    @classmethod
    def for_workspaces(cls, session_factory) -> "ConversationOwnerRepository":
        return cls(session_factory, Workspace)

    @classmethod
    def for_vaults(cls, session_factory) -> "ConversationOwnerRepository":
        return cls(session_factory, Vault)

    async def create(self, user_id: str, title: str, **extra):
        row = self.model(id=new_id(), user_id=user_id, title=title, created_at=utcnow(), **extra)
        try:
            async with self.session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            log.error("Failed to create %s | user_id=%s | error=%s", self.model.__tablename__, user_id, str(e))
            raise PersistenceError(f"Failed to create {self.model.__tablename__}", details=str(e)) from e
        log.info("Created %s | id=%s | user_id=%s", self.model.__tablename__, row.id, user_id)
        return row

    async def get(self, conversation_id: str):
        try:
            async with self.session_factory() as db:
                return await db.get(self.model, conversation_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load {self.model.__tablename__}", details=str(e)) from e

    async def exists(self, conversation_id: str, user_id: Optional[str] = None) -> bool:
        row = await self.get(conversation_id)
        exists = row is not None and (user_id is None or row.user_id == user_id)
        log.info(
            "Existence check | table=%s | id=%s | exists=%s",
            self.model.__tablename__,
            conversation_id,
            exists,
        )
        return exists

    async def list_for_user(self, user_id: str) -> List:
        try:
            async with self.session_factory() as db:
                out = await db.execute(
                    select(self.model)
                    .where(self.model.user_id == user_id)
                    .order_by(self.model.created_at.desc())
                )
                return list(out.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list {self.model.__tablename__}", details=str(e)) from e

    async def delete(self, conversation_id: str) -> None:
        # children (messages, documents, chunk rows) go with it via ON DELETE CASCADE
        try:
            async with self.session_factory() as db:
                await db.execute(delete(self.model).where(self.model.id == conversation_id))
                await db.commit()
        except SQLAlchemyError as e:
            log.error("Failed to delete %s | id=%s | error=%s", self.model.__tablename__, conversation_id, str(e))
            raise PersistenceError(f"Failed to delete {self.model.__tablename__}", details=str(e)) from e
        log.info("Deleted %s | id=%s", self.model.__tablename__, conversation_id)
