from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_db
from app.services.document_store import DocumentStore
from app.services.lifecycle import DocumentLifecycle
from app.services.verification_client import VerificationGatewayClient

# Conexão com Redis
redis = Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    decode_responses=True
)

# Configuração do rate limiter usando Redis como storage
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.RATE_LIMIT_ENABLED,
)

def get_verification_client(request: Request) -> VerificationGatewayClient:
    """
    Cliente da API de verificação criado no lifespan da aplicação.
    As credenciais são lidas uma única vez, na inicialização.
    """
    return request.app.state.verification_client

async def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    gateway: VerificationGatewayClient = Depends(get_verification_client),
) -> DocumentLifecycle:
    """Monta o ciclo de vida dos documentos para a requisição atual."""
    return DocumentLifecycle(
        store=DocumentStore(db),
        gateway=gateway,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
        max_id_upload_bytes=settings.MAX_ID_UPLOAD_BYTES,
        resume_verification_required=settings.RESUME_VERIFICATION_REQUIRED,
    )
