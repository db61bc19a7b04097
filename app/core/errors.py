import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """
    Erro de domínio do portal.

    Cada subclasse define o status HTTP e um código estável; `message` é o
    texto exibido ao cliente e nunca deve conter detalhes internos.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "PORTAL_ERROR"
    default_message: str = "Não foi possível concluir a operação."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(PortalError):
    code = "INVALID_INPUT"
    default_message = "Dados de entrada inválidos."


class Conflict(PortalError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = (
        "Este tipo de documento já foi verificado. "
        "Entre em contato com o suporte caso precise reenviá-lo."
    )


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Documento não encontrado"


class InvalidState(PortalError):
    code = "INVALID_STATE"
    default_message = "A verificação ainda está em andamento."


class ClassificationRejected(PortalError):
    """A classificação funcionou, mas o documento não é o tipo esperado."""

    status_code = 422
    code = "CLASSIFICATION_REJECTED"


class ClassificationFailure(PortalError):
    """
    A chamada de classificação falhou.
    `payload` guarda o corpo recebido quando a resposta era 2xx mas malformada.
    """

    status_code = 422
    code = "CLASSIFICATION_FAILED"
    default_message = (
        "Não conseguimos identificar o tipo do documento. "
        "Verifique se a imagem está nítida e mostra o documento inteiro."
    )

    def __init__(self, message: str | None = None, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class SubmissionFailure(PortalError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "SUBMISSION_FAILED"
    default_message = "Falha ao enviar o documento para verificação. Tente novamente mais tarde."


class PollFailure(PortalError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "POLL_FAILED"
    default_message = "Não foi possível consultar o resultado da verificação."


def register_exception_handlers(app: FastAPI) -> None:
    """Traduz erros do domínio e falhas inesperadas para o formato JSON da API."""

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Erro inesperado em {request.method} {request.url.path}")
        # Não expor detalhes internos em produção
        detail = "Ocorreu um erro inesperado. Tente novamente."
        if not settings.is_production:
            detail = f"{detail} ({exc})"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": detail, "code": "INTERNAL_ERROR"},
        )
