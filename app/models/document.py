import enum
import uuid
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, JSON, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID as SQLAlchemyUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base


class DocumentCategory(str, enum.Enum):
    """Categorias de documento aceitas pelo portal."""
    PASSPORT = "PASSPORT"
    DRIVERS_LICENCE = "DRIVERS_LICENCE"
    RESUME = "RESUME"


class DocumentState(str, enum.Enum):
    """Estados do ciclo de vida de um documento."""
    PENDING = "PENDING"
    CLASSIFYING = "CLASSIFYING"
    CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"
    SUBMITTING = "SUBMITTING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


# Estados em que nenhuma transição automática acontece mais
TERMINAL_STATES = frozenset({
    DocumentState.DONE,
    DocumentState.FAILED,
    DocumentState.CLASSIFICATION_FAILED,
})

# Estados que ainda dependem de alguma resposta externa
IN_FLIGHT_STATES = frozenset({
    DocumentState.CLASSIFYING,
    DocumentState.SUBMITTING,
    DocumentState.PROCESSING,
})

# Estados que possuem resultado de verificação
RESULT_STATES = frozenset({DocumentState.DONE, DocumentState.FAILED})


class Document(Base):
    """
    Documento enviado por um usuário para verificação.
    Existe no máximo um registro por (usuário, categoria); o conteúdo do
    arquivo nunca é armazenado, apenas metadados e resultados.
    """

    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_documents_user_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(SQLAlchemyUUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(SQLAlchemyUUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    category: Mapped[str] = mapped_column(String(32))  # Imutável após a criação
    file_name: Mapped[str] = mapped_column(String(255))
    mime_type: Mapped[str] = mapped_column(String(100))
    state: Mapped[str] = mapped_column(String(32), default=DocumentState.PENDING.value)
    external_verification_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    classification_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    verification_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relacionamento
    owner = relationship("User", back_populates="documents")

    @property
    def is_terminal(self) -> bool:
        return DocumentState(self.state) in TERMINAL_STATES

    @property
    def has_result(self) -> bool:
        return DocumentState(self.state) in RESULT_STATES
