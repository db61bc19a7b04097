from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
import logging
import uuid
from typing import Optional

from app.core.config import settings
from app.core.deps import get_current_user
from app.core.errors import InvalidInput
from app.api.v1.deps import limiter, get_lifecycle
from app.models.user import User
from app.schemas.document import (
    DocumentSummary,
    DocumentDetail,
    DocumentsList,
    DocumentStatusResponse,
    UploadResponse,
)
from app.services.lifecycle import DocumentLifecycle, IncomingFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents")

def normalize_mime_type(content_type: str | None) -> str:
    """Remove parâmetros do content-type (ex.: "; charset=...")."""
    return (content_type or "").split(";")[0].strip().lower()

@router.get("", response_model=DocumentsList)
async def list_documents(
    current_user: User = Depends(get_current_user),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    """
    Lista os documentos do usuário atual, do mais recente para o mais antigo.
    """
    documents = await lifecycle.list_documents(current_user.id)
    return DocumentsList(
        items=[DocumentSummary.model_validate(document) for document in documents],
        total=len(documents),
    )

@router.post("/upload", response_model=UploadResponse)
@limiter.limit("10/minute")
async def upload_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    document_type: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    """
    Recebe um documento (PASSPORT, DRIVERS_LICENCE ou RESUME) e o envia para verificação.

    Passaporte e carteira de motorista são classificados antes da submissão.
    O arquivo não é armazenado; apenas os metadados e os resultados.
    """
    if file is None:
        # Sem arquivo: a validação do ciclo de vida rejeita o conteúdo vazio
        upload = IncomingFile(file_name="", mime_type="", content=b"")
    else:
        # Rejeitar arquivos grandes antes de ler o conteúdo
        if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
            raise InvalidInput(
                f"Arquivo muito grande. Envie um arquivo menor que {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB."
            )
        upload = IncomingFile(
            file_name=file.filename or "documento",
            mime_type=normalize_mime_type(file.content_type),
            content=await file.read(),
        )

    outcome = await lifecycle.upload(current_user.id, document_type or "", upload)
    if outcome.rejection is not None:
        raise outcome.rejection

    return UploadResponse(
        message=outcome.message,
        document=DocumentSummary.model_validate(outcome.document),
    )

@router.get("/{document_id}", response_model=DocumentSummary)
async def get_document(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    """
    Obtém um documento específico pelo ID.
    """
    return await lifecycle.status(current_user.id, document_id)

@router.get("/{document_id}/status", response_model=DocumentStatusResponse)
async def get_document_status(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    """
    Estado atual do documento, usado pelo polling do cliente.

    Este endpoint também avança o ciclo de vida: se o documento estiver em
    PROCESSING, a verificação externa é consultada uma vez antes da resposta.
    """
    document = await lifecycle.advance(current_user.id, document_id)
    return DocumentStatusResponse(
        id=document.id,
        status=document.state,
        has_result=document.has_result,
    )

@router.get("/{document_id}/result", response_model=DocumentDetail)
async def get_document_result(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    """
    Documento completo com os resultados de classificação e verificação.
    Disponível apenas quando o documento está em um estado terminal.
    """
    return await lifecycle.result(current_user.id, document_id)
