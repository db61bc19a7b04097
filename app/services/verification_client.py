import base64
import logging
import uuid
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from app.core.config import Settings
from app.core.errors import ClassificationFailure, SubmissionFailure, PollFailure
from app.schemas.verification import ClassificationResult, SubmissionResult, PollResult

logger = logging.getLogger(__name__)

# Tamanho máximo do corpo de erro registrado no log
_ERROR_BODY_LIMIT = 500

_POLL_STATES = ("PROCESSING", "DONE", "FAILED")


def build_basic_credential(api_key: str, api_secret: str) -> str:
    """Gera o valor do header Authorization a partir do par chave/segredo."""
    token = base64.b64encode(f"{api_key}:{api_secret}".encode()).decode()
    return f"Basic {token}"


def idempotency_ref_for(document_id: uuid.UUID) -> str:
    """Referência externa estável derivada do id interno do documento."""
    return f"doc-{document_id}"


class VerificationGatewayClient:
    """
    Cliente para as APIs externas de classificação e verificação de documentos.

    A credencial é calculada uma única vez no construtor e enviada em todas as
    chamadas. Nenhuma chamada faz retry; quem decide é o chamador.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        classifier_url: str,
        submit_url: str,
        result_url: str,
        required_checks: List[str],
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.classifier_url = classifier_url
        self.submit_url = submit_url
        self.result_url = result_url.rstrip("/")
        self.required_checks = list(required_checks)
        self._client = httpx.AsyncClient(
            headers={"Authorization": build_basic_credential(api_key, api_secret)},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "VerificationGatewayClient":
        """Constrói o cliente a partir das configurações carregadas na inicialização."""
        return cls(
            api_key=settings.VERIFY_API_KEY,
            api_secret=settings.VERIFY_API_SECRET,
            classifier_url=settings.VERIFY_CLASSIFIER_URL,
            submit_url=settings.verify_submit_url,
            result_url=settings.verify_result_url,
            required_checks=settings.verify_required_checks,
            timeout=settings.VERIFY_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def classify(self, image: bytes, mime_type: str) -> ClassificationResult:
        """
        Classifica a imagem do documento (país e tipo).

        Raises:
            ClassificationFailure: erro de rede, resposta não-2xx ou payload malformado
        """
        body = {
            "images": [
                {
                    "image": base64.b64encode(image).decode(),
                    "mimeType": mime_type,
                }
            ]
        }
        data = await self._request_json("POST", self.classifier_url, ClassificationFailure, "classificação", json=body)

        # Corpo vazio significa que nada foi determinado
        if data is None:
            data = {}
        if not isinstance(data, dict):
            logger.error(f"Resposta de classificação inesperada: {type(data).__name__}")
            raise ClassificationFailure(payload=data)

        try:
            result = ClassificationResult.model_validate(data)
        except ValidationError as e:
            logger.error(f"Payload de classificação malformado: {e}")
            raise ClassificationFailure(payload=data) from e

        result.raw = data
        return result

    async def submit(
        self,
        image: bytes,
        mime_type: str,
        country_code: str,
        document_type_code: str,
        idempotency_ref: str,
    ) -> SubmissionResult:
        """
        Envia o documento para verificação.

        Raises:
            SubmissionFailure: erro de rede, resposta não-2xx ou sem documentVerifyId
        """
        body = {
            "document": {
                "countryCode": country_code,
                "documentType": document_type_code,
                "image": {
                    "content": base64.b64encode(image).decode(),
                    "mimeType": mime_type,
                },
            },
            "externalRefId": idempotency_ref,
            "options": {
                "requiredChecks": [{"name": check} for check in self.required_checks],
            },
        }
        data = await self._request_json("POST", self.submit_url, SubmissionFailure, "submissão", json=body)

        verify_id = data.get("documentVerifyId") if isinstance(data, dict) else None
        if not verify_id:
            logger.error(f"Resposta de submissão sem documentVerifyId (ref={idempotency_ref})")
            raise SubmissionFailure()

        return SubmissionResult(
            external_verification_id=str(verify_id),
            status=data.get("status"),
            raw=data,
        )

    async def poll_result(self, external_verification_id: str) -> PollResult:
        """
        Consulta o resultado de uma verificação. Somente leitura.

        Raises:
            PollFailure: erro de rede, resposta não-2xx ou payload não-JSON
        """
        url = f"{self.result_url}/{external_verification_id}"
        data = await self._request_json("GET", url, PollFailure, "consulta de resultado")

        if not isinstance(data, dict):
            logger.error(f"Resultado de verificação inesperado para {external_verification_id}")
            raise PollFailure()

        status = data.get("status")
        # Qualquer status desconhecido é tratado como ainda em processamento
        state = status if status in _POLL_STATES else "PROCESSING"
        return PollResult(state=state, payload=data)

    async def _request_json(self, method: str, url: str, failure: type, action: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Erro de rede na {action}: {e!r}")
            raise failure() from e

        if not response.is_success:
            logger.error(
                f"Erro da API de verificação na {action}: "
                f"{response.status_code} {response.text[:_ERROR_BODY_LIMIT]}"
            )
            raise failure()

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Resposta não-JSON na {action}: {response.text[:_ERROR_BODY_LIMIT]}")
            raise failure() from e
