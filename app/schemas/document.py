import uuid
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, Any, List, Optional

from app.models.document import DocumentCategory, DocumentState

class DocumentSummary(BaseModel):
    """Schema com os dados públicos de um documento (sem payloads)."""
    id: uuid.UUID
    category: DocumentCategory
    file_name: str
    mime_type: str
    state: DocumentState
    external_verification_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class DocumentDetail(DocumentSummary):
    """Schema completo do documento, incluindo os resultados externos."""
    classification_payload: Optional[Dict[str, Any]] = None
    verification_payload: Optional[Dict[str, Any]] = None

class DocumentsList(BaseModel):
    """Schema para listar múltiplos documentos."""
    items: List[DocumentSummary]
    total: int

class UploadResponse(BaseModel):
    """Resposta do upload de documento."""
    message: str
    document: DocumentSummary

class DocumentStatusResponse(BaseModel):
    """Resposta do endpoint de status usado pelo polling."""
    id: uuid.UUID
    status: DocumentState
    has_result: bool = Field(..., description="Indica se já existe resultado de verificação (DONE ou FAILED)")
