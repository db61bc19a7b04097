"""
Ciclo de vida dos documentos enviados ao portal.

    PENDING -> CLASSIFYING -> (CLASSIFICATION_FAILED | SUBMITTING) -> PROCESSING -> (DONE | FAILED)

Currículos não passam pela classificação: PENDING -> SUBMITTING.

Cada categoria tem uma política (tipos de mídia aceitos, códigos enviados à
verificação) e um pipeline, escolhido uma única vez no momento do upload.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Any, FrozenSet, List, Optional

from prometheus_client import Counter

from app.core.errors import (
    PortalError,
    InvalidInput,
    Conflict,
    InvalidState,
    ClassificationRejected,
    ClassificationFailure,
    SubmissionFailure,
    PollFailure,
)
from app.models.document import Document, DocumentCategory, DocumentState
from app.services.document_store import DocumentStore
from app.services.verification_client import VerificationGatewayClient, idempotency_ref_for

logger = logging.getLogger(__name__)

DOCUMENT_TRANSITIONS = Counter(
    "verification_portal_document_transitions_total",
    "Transições de estado de documentos",
    ["category", "state"],
)

IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png"})
PDF_MIME_TYPE = "application/pdf"

DEFAULT_COUNTRY_CODE = "PHL"

MSG_UNCLASSIFIABLE = (
    "Não foi possível classificar o documento. "
    "Verifique se a imagem está nítida e tente novamente."
)
MSG_SUBMISSION_FAILED = "Falha ao enviar o documento para verificação. Tente novamente."
MSG_RESUME_SKIPPED = "A verificação de currículo não é obrigatória"


@dataclass(frozen=True)
class CategoryPolicy:
    category: DocumentCategory
    allowed_mime_types: FrozenSet[str]
    country_code: str
    document_type_code: str
    label: str
    requires_classification: bool


CATEGORY_POLICIES: Dict[DocumentCategory, CategoryPolicy] = {
    DocumentCategory.PASSPORT: CategoryPolicy(
        category=DocumentCategory.PASSPORT,
        allowed_mime_types=IMAGE_MIME_TYPES,
        country_code=DEFAULT_COUNTRY_CODE,
        document_type_code="PASSPORT",
        label="Philippines Passport",
        requires_classification=True,
    ),
    DocumentCategory.DRIVERS_LICENCE: CategoryPolicy(
        category=DocumentCategory.DRIVERS_LICENCE,
        allowed_mime_types=IMAGE_MIME_TYPES,
        country_code=DEFAULT_COUNTRY_CODE,
        document_type_code="DRIVERS_LICENCE",
        label="Philippines Driver's Licence",
        requires_classification=True,
    ),
    DocumentCategory.RESUME: CategoryPolicy(
        category=DocumentCategory.RESUME,
        allowed_mime_types=IMAGE_MIME_TYPES | {PDF_MIME_TYPE},
        country_code=DEFAULT_COUNTRY_CODE,
        document_type_code="OTHER",
        label="Resume",
        requires_classification=False,
    ),
}


@dataclass(frozen=True)
class IncomingFile:
    """Arquivo recebido no upload. O conteúdo vive apenas durante a requisição."""
    file_name: str
    mime_type: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class Outcome:
    """
    Resultado de um pipeline.
    `rejection` é preenchido quando o documento parou em CLASSIFICATION_FAILED.
    """
    document: Document
    message: str
    rejection: Optional[PortalError] = None


async def transition(
    store: DocumentStore,
    document: Document,
    state: DocumentState,
    patch: Optional[Dict[str, Any]] = None,
) -> Document:
    """Persiste uma transição de estado e registra no log e nas métricas."""
    previous = document.state
    document = await store.update_state(document.id, state, patch)
    DOCUMENT_TRANSITIONS.labels(category=document.category, state=state.value).inc()
    logger.info(f"Documento {document.id} ({document.category}): {previous} -> {state.value}")
    return document


class Pipeline:
    """Contrato comum: `run(document, upload) -> Outcome`."""

    def __init__(self, store: DocumentStore, gateway: VerificationGatewayClient, policy: CategoryPolicy):
        self.store = store
        self.gateway = gateway
        self.policy = policy

    async def run(self, document: Document, upload: IncomingFile) -> Outcome:
        raise NotImplementedError

    async def submit(self, document: Document, upload: IncomingFile) -> Outcome:
        document = await transition(self.store, document, DocumentState.SUBMITTING)
        try:
            result = await self.gateway.submit(
                upload.content,
                upload.mime_type,
                self.policy.country_code,
                self.policy.document_type_code,
                idempotency_ref_for(document.id),
            )
        except SubmissionFailure as e:
            return await self.on_submission_failure(document, e)

        document = await transition(
            self.store,
            document,
            DocumentState.PROCESSING,
            {"external_verification_id": result.external_verification_id},
        )
        return Outcome(document=document, message="Documento enviado para verificação")

    async def on_submission_failure(self, document: Document, error: SubmissionFailure) -> Outcome:
        """Registra FAILED e repassa o erro para o chamador."""
        await transition(
            self.store,
            document,
            DocumentState.FAILED,
            {"error_message": MSG_SUBMISSION_FAILED},
        )
        raise error


class ClassifyThenSubmitPipeline(Pipeline):
    """Documentos de identidade: classifica, valida país/tipo e só então submete."""

    async def run(self, document: Document, upload: IncomingFile) -> Outcome:
        document = await transition(self.store, document, DocumentState.CLASSIFYING)

        try:
            classification = await self.gateway.classify(upload.content, upload.mime_type)
        except ClassificationFailure as e:
            marker = {"status": "ERROR", "message": e.message}
            if e.payload is not None:
                marker["response"] = e.payload
            document = await transition(
                self.store,
                document,
                DocumentState.CLASSIFICATION_FAILED,
                {
                    "classification_payload": marker,
                    "error_message": MSG_UNCLASSIFIABLE,
                },
            )
            return Outcome(document=document, message=MSG_UNCLASSIFIABLE, rejection=e)

        # O resultado da classificação fica registrado para auditoria
        document = await self.store.update_state(
            document.id,
            DocumentState.CLASSIFYING,
            {"classification_payload": classification.raw},
        )

        if not classification.matches(self.policy.country_code, self.policy.document_type_code):
            detected = classification.describe()
            document = await transition(
                self.store,
                document,
                DocumentState.CLASSIFICATION_FAILED,
                {
                    "error_message": (
                        f"O documento enviado parece ser {detected}. "
                        f"Envie um(a) {self.policy.label} válido(a)."
                    ),
                },
            )
            rejection = ClassificationRejected(
                f"Tipo de documento inválido. Esperado {self.policy.label}, "
                f"mas foi detectado {detected}. Envie o documento correto."
            )
            return Outcome(document=document, message=rejection.message, rejection=rejection)

        return await self.submit(document, upload)


class SubmitOnlyPipeline(Pipeline):
    """
    Currículos: submissão direta, sem classificação.

    Sem `verification_required`, uma falha na submissão não bloqueia o
    candidato: o documento termina DONE com o payload marcado como SKIPPED.
    """

    def __init__(self, store: DocumentStore, gateway: VerificationGatewayClient, policy: CategoryPolicy, verification_required: bool = False):
        super().__init__(store, gateway, policy)
        self.verification_required = verification_required

    async def run(self, document: Document, upload: IncomingFile) -> Outcome:
        return await self.submit(document, upload)

    async def on_submission_failure(self, document: Document, error: SubmissionFailure) -> Outcome:
        if self.verification_required:
            return await super().on_submission_failure(document, error)

        logger.warning(f"Submissão do documento {document.id} falhou; verificação marcada como SKIPPED")
        document = await transition(
            self.store,
            document,
            DocumentState.DONE,
            {"verification_payload": {"status": "SKIPPED", "message": MSG_RESUME_SKIPPED}},
        )
        return Outcome(document=document, message="Currículo enviado com sucesso")


class DocumentLifecycle:
    """
    Orquestra o ciclo de vida dos documentos de um usuário.

    Chamado pelo endpoint de upload (que dispara o pipeline) e pelo endpoint de
    status (que avança documentos em PROCESSING consultando a verificação).
    """

    def __init__(
        self,
        store: DocumentStore,
        gateway: VerificationGatewayClient,
        max_upload_bytes: int = 10 * 1024 * 1024,
        max_id_upload_bytes: int = 5 * 1024 * 1024,
        resume_verification_required: bool = False,
    ):
        self.store = store
        self.gateway = gateway
        self.max_upload_bytes = max_upload_bytes
        self.max_id_upload_bytes = max_id_upload_bytes
        self.resume_verification_required = resume_verification_required

    def validate_upload(self, category: str, upload: IncomingFile) -> CategoryPolicy:
        """
        Valida categoria, tipo de mídia e tamanho antes de qualquer acesso ao banco.

        Raises:
            InvalidInput: se algum dos critérios não for atendido
        """
        try:
            policy = CATEGORY_POLICIES[DocumentCategory(category)]
        except ValueError:
            raise InvalidInput("Tipo de documento inválido") from None

        if upload.size == 0:
            raise InvalidInput("Selecione um arquivo para enviar")

        if upload.mime_type not in policy.allowed_mime_types:
            if policy.requires_classification:
                raise InvalidInput(
                    "Passaporte e carteira de motorista devem ser enviados como imagens JPEG ou PNG. "
                    "Arquivos PDF não são aceitos para documentos de identidade."
                )
            raise InvalidInput("Tipo de arquivo inválido. Apenas JPEG, PNG e PDF são aceitos.")

        limit = self.max_id_upload_bytes if policy.requires_classification else self.max_upload_bytes
        if upload.size > limit:
            raise InvalidInput(
                f"Arquivo muito grande. Envie um arquivo menor que {limit // (1024 * 1024)}MB."
            )

        return policy

    def pipeline_for(self, policy: CategoryPolicy) -> Pipeline:
        if policy.requires_classification:
            return ClassifyThenSubmitPipeline(self.store, self.gateway, policy)
        return SubmitOnlyPipeline(
            self.store,
            self.gateway,
            policy,
            verification_required=self.resume_verification_required,
        )

    async def upload(self, owner_id: uuid.UUID, category: str, upload: IncomingFile) -> Outcome:
        """
        Recebe um novo arquivo para a categoria e executa o pipeline.

        Raises:
            InvalidInput: categoria, tipo de mídia ou tamanho inválidos
            Conflict: o documento da categoria já foi verificado
            SubmissionFailure: falha ao submeter um documento de identidade
        """
        policy = self.validate_upload(category, upload)

        existing = await self.store.get(owner_id, policy.category)
        if existing is not None and existing.state == DocumentState.DONE.value:
            raise Conflict()

        # Reenvio reaproveita o registro e limpa os resultados anteriores
        document = await self.store.upsert(
            owner_id,
            policy.category,
            {
                "file_name": upload.file_name,
                "mime_type": upload.mime_type,
                "state": DocumentState.PENDING,
                "external_verification_id": None,
                "classification_payload": None,
                "verification_payload": None,
                "error_message": None,
            },
        )
        DOCUMENT_TRANSITIONS.labels(category=document.category, state=DocumentState.PENDING.value).inc()
        logger.info(f"Upload de {policy.category.value} recebido para o usuário {owner_id} (documento {document.id})")

        return await self.pipeline_for(policy).run(document, upload)

    async def list_documents(self, owner_id: uuid.UUID) -> List[Document]:
        return await self.store.list_by_owner(owner_id)

    async def status(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> Document:
        """Leitura do estado atual, sem efeitos colaterais."""
        return await self.store.get_by_id(owner_id, document_id)

    async def advance(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> Document:
        """
        Faz uma consulta à verificação externa se o documento estiver em PROCESSING.

        Um resultado DONE/FAILED é persistido; qualquer outro estado, ou uma falha
        na consulta, mantém o estado armazenado e retorna o documento como está.
        """
        document = await self.store.get_by_id(owner_id, document_id)
        if document.state != DocumentState.PROCESSING.value or not document.external_verification_id:
            return document

        try:
            result = await self.gateway.poll_result(document.external_verification_id)
        except PollFailure:
            logger.warning(f"Falha ao consultar verificação do documento {document.id}; mantendo estado {document.state}")
            return document

        if not result.is_terminal:
            return document

        return await transition(
            self.store,
            document,
            DocumentState(result.state),
            {"verification_payload": result.payload},
        )

    async def result(self, owner_id: uuid.UUID, document_id: uuid.UUID) -> Document:
        """
        Documento completo com os payloads.

        Raises:
            InvalidState: se o documento ainda não chegou a um estado terminal
        """
        document = await self.store.get_by_id(owner_id, document_id)
        if not document.is_terminal:
            raise InvalidState()
        return document
