import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InvalidInput,
    Conflict,
    InvalidState,
    ClassificationRejected,
    ClassificationFailure,
    SubmissionFailure,
    PollFailure,
)
from app.models.document import Document, DocumentState
from app.models.user import User
from app.services.document_store import DocumentStore
from app.services.lifecycle import DocumentLifecycle

from conftest import FakeGateway, PHL_PASSPORT, PHL_DRIVERS_LICENCE, PDF_BYTES, make_file

pytestmark = pytest.mark.asyncio


async def count_documents(db_session: AsyncSession) -> int:
    result = await db_session.execute(select(func.count(Document.id)))
    return result.scalar()


async def test_passport_upload_is_classified_and_submitted(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Passaporte filipino classificado corretamente segue para a verificação."""
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())

    document = outcome.document
    assert outcome.rejection is None
    assert document.state == DocumentState.PROCESSING.value
    assert document.external_verification_id == "verify-1"
    assert document.classification_payload == PHL_PASSPORT
    assert document.error_message is None
    assert len(fake_gateway.classify_calls) == 1
    assert fake_gateway.submit_calls == [{
        "mime_type": "image/png",
        "country_code": "PHL",
        "document_type_code": "PASSPORT",
        "idempotency_ref": f"doc-{document.id}",
    }]


async def test_passport_image_rejected_as_drivers_licence(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Um passaporte enviado como carteira de motorista para em CLASSIFICATION_FAILED."""
    fake_gateway.classification = PHL_PASSPORT

    outcome = await lifecycle.upload(test_user.id, "DRIVERS_LICENCE", make_file("licence.png"))

    document = outcome.document
    assert document.state == DocumentState.CLASSIFICATION_FAILED.value
    assert "Philippines Passport" in document.error_message
    assert document.classification_payload == PHL_PASSPORT
    assert document.external_verification_id is None
    assert isinstance(outcome.rejection, ClassificationRejected)
    assert "Philippines Passport" in outcome.rejection.message
    assert fake_gateway.submit_calls == []


async def test_drivers_licence_accepted(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    fake_gateway.classification = PHL_DRIVERS_LICENCE

    outcome = await lifecycle.upload(test_user.id, "DRIVERS_LICENCE", make_file("licence.jpg", "image/jpeg"))

    assert outcome.document.state == DocumentState.PROCESSING.value
    assert fake_gateway.submit_calls[0]["document_type_code"] == "DRIVERS_LICENCE"


async def test_classification_call_failure(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Falha na API de classificação é registrada, não propagada."""
    fake_gateway.classify_error = ClassificationFailure()

    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())

    document = outcome.document
    assert document.state == DocumentState.CLASSIFICATION_FAILED.value
    assert document.classification_payload["status"] == "ERROR"
    assert "classificar" in document.error_message
    assert isinstance(outcome.rejection, ClassificationFailure)
    assert "response" not in document.classification_payload
    assert fake_gateway.submit_calls == []


async def test_malformed_classification_is_kept_for_audit(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """O corpo malformado devolvido pela classificação fica registrado junto do erro."""
    fake_gateway.classify_error = ClassificationFailure(payload={"country": "PHL"})

    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())

    assert outcome.document.state == DocumentState.CLASSIFICATION_FAILED.value
    assert outcome.document.classification_payload["status"] == "ERROR"
    assert outcome.document.classification_payload["response"] == {"country": "PHL"}


async def test_id_document_submission_failure_is_reported(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, db_session: AsyncSession, test_user: User) -> None:
    """Falha na submissão de documento de identidade vira FAILED e o erro chega ao chamador."""
    fake_gateway.submit_error = SubmissionFailure()

    with pytest.raises(SubmissionFailure):
        await lifecycle.upload(test_user.id, "PASSPORT", make_file())

    document = (await db_session.execute(select(Document))).scalar_one()
    assert document.state == DocumentState.FAILED.value
    assert document.error_message is not None
    assert document.external_verification_id is None


async def test_resume_skips_classification(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    outcome = await lifecycle.upload(test_user.id, "RESUME", make_file("cv.pdf", "application/pdf", PDF_BYTES))

    assert outcome.document.state == DocumentState.PROCESSING.value
    assert fake_gateway.classify_calls == []
    assert fake_gateway.submit_calls[0]["country_code"] == "PHL"
    assert fake_gateway.submit_calls[0]["document_type_code"] == "OTHER"


async def test_resume_submission_failure_ends_skipped(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Currículo com falha na submissão termina DONE com verificação SKIPPED, nunca FAILED."""
    fake_gateway.submit_error = SubmissionFailure()

    outcome = await lifecycle.upload(test_user.id, "RESUME", make_file("cv.pdf", "application/pdf", PDF_BYTES))

    document = outcome.document
    assert document.state == DocumentState.DONE.value
    assert document.verification_payload["status"] == "SKIPPED"
    assert document.external_verification_id is None
    assert outcome.rejection is None


async def test_resume_submission_failure_when_verification_required(db_session: AsyncSession, fake_gateway: FakeGateway, test_user: User) -> None:
    fake_gateway.submit_error = SubmissionFailure()
    lifecycle = DocumentLifecycle(DocumentStore(db_session), fake_gateway, resume_verification_required=True)

    with pytest.raises(SubmissionFailure):
        await lifecycle.upload(test_user.id, "RESUME", make_file("cv.pdf", "application/pdf", PDF_BYTES))

    document = (await db_session.execute(select(Document))).scalar_one()
    assert document.state == DocumentState.FAILED.value


@pytest.mark.parametrize("category, upload", [
    ("NATIONAL_ID", make_file()),
    ("PASSPORT", make_file("passport.pdf", "application/pdf", PDF_BYTES)),
    ("DRIVERS_LICENCE", make_file("licence.gif", "image/gif")),
    ("RESUME", make_file("cv.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document")),
    ("RESUME", make_file("cv.pdf", "application/pdf", b"")),
])
async def test_invalid_input_touches_nothing(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, db_session: AsyncSession, test_user: User, category, upload) -> None:
    """Entradas inválidas são rejeitadas antes de qualquer escrita ou chamada externa."""
    with pytest.raises(InvalidInput):
        await lifecycle.upload(test_user.id, category, upload)

    assert await count_documents(db_session) == 0
    assert fake_gateway.classify_calls == []
    assert fake_gateway.submit_calls == []


async def test_id_document_size_limit(db_session: AsyncSession, fake_gateway: FakeGateway, test_user: User) -> None:
    """Documentos de identidade têm limite menor que currículos."""
    lifecycle = DocumentLifecycle(DocumentStore(db_session), fake_gateway, max_upload_bytes=200, max_id_upload_bytes=100)
    content = b"\x00" * 150

    with pytest.raises(InvalidInput):
        await lifecycle.upload(test_user.id, "PASSPORT", make_file(content=content))

    outcome = await lifecycle.upload(test_user.id, "RESUME", make_file("cv.png", "image/png", content))
    assert outcome.document.state == DocumentState.PROCESSING.value


async def test_repeated_upload_keeps_single_row(lifecycle: DocumentLifecycle, db_session: AsyncSession, test_user: User) -> None:
    first = await lifecycle.upload(test_user.id, "PASSPORT", make_file())
    second = await lifecycle.upload(test_user.id, "PASSPORT", make_file("passport-2.png"))

    assert first.document.id == second.document.id
    assert await count_documents(db_session) == 1


async def test_upload_after_done_is_conflict(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Depois de DONE, um novo upload da mesma categoria é recusado e nada muda."""
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())
    fake_gateway.poll_state = "DONE"
    done = await lifecycle.advance(test_user.id, outcome.document.id)
    assert done.state == DocumentState.DONE.value
    submits_before = len(fake_gateway.submit_calls)

    with pytest.raises(Conflict):
        await lifecycle.upload(test_user.id, "PASSPORT", make_file("outro.png"))

    stored = await lifecycle.status(test_user.id, outcome.document.id)
    assert stored.state == DocumentState.DONE.value
    assert stored.file_name == "passport.png"
    assert len(fake_gateway.submit_calls) == submits_before


async def test_reupload_after_classification_failure_resets_fields(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    fake_gateway.classification = {"country": {"code": "AUS", "name": "Australia"}, "documentType": {"code": "PASSPORT", "name": "Passport"}}
    failed = await lifecycle.upload(test_user.id, "PASSPORT", make_file())
    assert failed.document.state == DocumentState.CLASSIFICATION_FAILED.value
    assert "Australia Passport" in failed.document.error_message

    fake_gateway.classification = PHL_PASSPORT
    retried = await lifecycle.upload(test_user.id, "PASSPORT", make_file("passport-nitido.png"))

    assert retried.document.id == failed.document.id
    assert retried.document.state == DocumentState.PROCESSING.value
    assert retried.document.error_message is None
    assert retried.document.classification_payload == PHL_PASSPORT
    assert retried.document.file_name == "passport-nitido.png"


async def test_advance_keeps_state_when_poll_fails(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Falha na consulta devolve o último estado conhecido, sem exceção."""
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())
    fake_gateway.poll_error = PollFailure()

    document = await lifecycle.advance(test_user.id, outcome.document.id)

    assert document.state == DocumentState.PROCESSING.value
    assert document.verification_payload is None
    assert len(fake_gateway.poll_calls) == 1


async def test_advance_while_still_processing(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())

    document = await lifecycle.advance(test_user.id, outcome.document.id)

    assert document.state == DocumentState.PROCESSING.value
    assert document.verification_payload is None


async def test_advance_persists_terminal_result_once(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    """Resultado DONE é gravado uma vez; consultas seguintes não chamam a API."""
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())
    fake_gateway.poll_state = "DONE"
    fake_gateway.poll_payload = {"checks": [{"name": "DEEPFAKE", "status": "PASSED"}]}

    first = await lifecycle.advance(test_user.id, outcome.document.id)
    second = await lifecycle.advance(test_user.id, outcome.document.id)

    assert first.state == DocumentState.DONE.value
    assert first.verification_payload["checks"][0]["status"] == "PASSED"
    assert second.state == DocumentState.DONE.value
    assert second.verification_payload == first.verification_payload
    assert len(fake_gateway.poll_calls) == 1


async def test_advance_persists_failed_result(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())
    fake_gateway.poll_state = "FAILED"

    document = await lifecycle.advance(test_user.id, outcome.document.id)

    assert document.state == DocumentState.FAILED.value
    assert document.verification_payload["status"] == "FAILED"


async def test_result_requires_terminal_state(lifecycle: DocumentLifecycle, fake_gateway: FakeGateway, test_user: User) -> None:
    outcome = await lifecycle.upload(test_user.id, "PASSPORT", make_file())

    with pytest.raises(InvalidState):
        await lifecycle.result(test_user.id, outcome.document.id)

    fake_gateway.poll_state = "DONE"
    await lifecycle.advance(test_user.id, outcome.document.id)
    document = await lifecycle.result(test_user.id, outcome.document.id)

    assert document.state == DocumentState.DONE.value
    assert document.verification_payload["status"] == "DONE"
    assert document.classification_payload == PHL_PASSPORT
