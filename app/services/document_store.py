import enum
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound
from app.models.document import Document, DocumentCategory, DocumentState

logger = logging.getLogger(__name__)

# Campos que podem ser alterados depois da criação do registro
MUTABLE_FIELDS = frozenset({
    "file_name",
    "mime_type",
    "state",
    "external_verification_id",
    "classification_payload",
    "verification_payload",
    "error_message",
})


class DocumentStore:
    """
    Persistência dos documentos, sempre escopada pelo dono.

    A unicidade de (user_id, category) é garantida pela constraint do banco;
    um documento de outro usuário é tratado como inexistente.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, owner_id: uuid.UUID, category: DocumentCategory) -> Optional[Document]:
        result = await self.db.execute(
            select(Document).where(
                Document.user_id == owner_id,
                Document.category == category.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> Document:
        """
        Busca um documento pelo id.

        Raises:
            NotFound: se o documento não existir ou pertencer a outro usuário
        """
        result = await self.db.execute(
            select(Document).where(
                Document.id == document_id,
                Document.user_id == owner_id,
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFound()
        return document

    async def list_by_owner(self, owner_id: uuid.UUID) -> List[Document]:
        result = await self.db.execute(
            select(Document)
            .where(Document.user_id == owner_id)
            .order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    async def upsert(self, owner_id: uuid.UUID, category: DocumentCategory, fields: Dict[str, Any]) -> Document:
        """
        Cria ou atualiza o documento da categoria para o usuário.

        O registro existente é atualizado no lugar (mesmo id). Se ele já estiver
        DONE a substituição é recusada.

        Raises:
            Conflict: se o documento existente já foi verificado
        """
        fields = self._prepare(fields)

        existing = await self.get(owner_id, category)
        if existing is None:
            document = Document(user_id=owner_id, category=category.value, **fields)
            self.db.add(document)
            try:
                await self.db.commit()
            except IntegrityError:
                # Outra requisição criou o registro ao mesmo tempo
                await self.db.rollback()
                logger.info(f"Upload concorrente para {category.value} do usuário {owner_id}, atualizando registro existente")
                existing = await self.get(owner_id, category)
                if existing is None:
                    raise
                return await self._replace(existing, fields)
            await self.db.refresh(document)
            return document

        return await self._replace(existing, fields)

    async def update_state(
        self,
        document_id: uuid.UUID,
        state: DocumentState,
        patch: Optional[Dict[str, Any]] = None,
    ) -> Document:
        """Aplica uma transição de estado e, opcionalmente, outros campos."""
        document = await self.db.get(Document, document_id)
        if document is None:
            raise NotFound()

        patch = self._prepare(patch or {})
        patch["state"] = state.value
        for name, value in patch.items():
            setattr(document, name, value)

        await self.db.commit()
        await self.db.refresh(document)
        return document

    async def _replace(self, document: Document, fields: Dict[str, Any]) -> Document:
        if document.state == DocumentState.DONE.value:
            raise Conflict()

        for name, value in fields.items():
            setattr(document, name, value)

        await self.db.commit()
        await self.db.refresh(document)
        return document

    @staticmethod
    def _prepare(fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Campos não atualizáveis: {', '.join(sorted(unknown))}")
        # Enums são gravados pelo valor
        return {name: value.value if isinstance(value, enum.Enum) else value for name, value in fields.items()}
