from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models import VaultDocument, VaultDocumentChunk, utcnow
from economist_ai.exception import PersistenceError
from economist_ai.logger import GLOBAL_LOGGER as log


class DocumentRepository:
    """CRUD for vault documents and their chunk rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_document(
        self,
        document_id: str,
        vault_id: str,
        document_name: str,
        document_type: str,
        document_size: str,
        document_metadata: str,
    ) -> VaultDocument:
        doc = VaultDocument(
            id=document_id,
            vault_id=vault_id,
            document_name=document_name,
            document_type=document_type,
            document_size=document_size,
            document_metadata=document_metadata,
            created_at=utcnow(),
        )
        try:
            async with self.session_factory() as db:
                db.add(doc)
                await db.commit()
        except SQLAlchemyError as e:
            log.error("Failed to create document | vault_id=%s | error=%s", vault_id, str(e))
            raise PersistenceError("Failed to create document record", details=str(e)) from e
        log.info("Document created | vault_id=%s | document_id=%s", vault_id, document_id)
        return doc

    async def get_document(self, document_id: str) -> Optional[VaultDocument]:
        try:
            async with self.session_factory() as db:
                return await db.get(VaultDocument, document_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load document", details=str(e)) from e

    async def list_documents(self, vault_id: str) -> List[VaultDocument]:
        try:
            async with self.session_factory() as db:
                out = await db.execute(
                    select(VaultDocument)
                    .where(VaultDocument.vault_id == vault_id)
                    .order_by(VaultDocument.created_at.desc())
                )
                return list(out.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to list documents", details=str(e)) from e

    async def delete_document(self, document_id: str) -> None:
        try:
            async with self.session_factory() as db:
                await db.execute(delete(VaultDocument).where(VaultDocument.id == document_id))
                await db.commit()
        except SQLAlchemyError as e:
            log.error("Failed to delete document | document_id=%s | error=%s", document_id, str(e))
            raise PersistenceError("Failed to delete document record", details=str(e)) from e
        log.info("Document deleted | document_id=%s", document_id)

    async def create_chunks(
        self, document_id: str, user_id: str, chunk_ids: Sequence[str]
    ) -> int:
        """One row per vector id, index-aligned, written in a single transaction."""
        now = utcnow()
        rows = [
            VaultDocumentChunk(
                id=chunk_id,
                document_id=document_id,
                user_id=user_id,
                chunk_index=i,
                created_at=now,
            )
            for i, chunk_id in enumerate(chunk_ids)
        ]
        # all rows or none
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    db.add_all(rows)
        except SQLAlchemyError as e:
            log.error(
                "Failed to create chunk records | document_id=%s | count=%d | error=%s",
                document_id,
                len(rows),
                str(e),
            )
            raise PersistenceError("Failed to create chunk records", details=str(e)) from e
        log.info("Chunk records created | document_id=%s | count=%d", document_id, len(rows))
        return len(rows)

    async def list_chunks(self, document_id: str) -> List[VaultDocumentChunk]:
        try:
            async with self.session_factory() as db:
                out = await db.execute(
                    select(VaultDocumentChunk)
                    .where(VaultDocumentChunk.document_id == document_id)
                    .order_by(VaultDocumentChunk.chunk_index)
                )
                return list(out.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to list chunk records", details=str(e)) from e

    async def delete_chunks(self, document_id: str) -> None:
        # vectors are removed by the caller first; these rows only mirror them
        try:
            async with self.session_factory() as db:
                await db.execute(
                    delete(VaultDocumentChunk).where(VaultDocumentChunk.document_id == document_id)
                )
                await db.commit()
        except SQLAlchemyError as e:
            log.error("Failed to delete chunk records | document_id=%s | error=%s", document_id, str(e))
            raise PersistenceError("Failed to delete chunk records", details=str(e)) from e
