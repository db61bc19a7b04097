"""
Configuração para testes da aplicação.

O banco é um SQLite em memória criado a cada teste e a API de verificação é
substituída por um gateway falso (`FakeGateway`) via dependency override.
O rate limit fica desligado e as migrações não são executadas.
"""

import os

# As variáveis precisam existir antes de importar a aplicação
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("ENABLE_PROMETHEUS", "false")
os.environ.setdefault("RUN_MIGRATIONS", "false")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from typing import AsyncGenerator, Dict, List, Any, Optional
import uuid

from app.db.base import Base
from app.models.user import User
from app.core.security import hash_password, create_access_token
from app.main import app as fastapi_app
from app.db.session import get_db
from app.api.v1.deps import get_verification_client
from app.schemas.verification import ClassificationResult, SubmissionResult, PollResult
from app.services.document_store import DocumentStore
from app.services.lifecycle import DocumentLifecycle, IncomingFile

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PHL_PASSPORT = {
    "country": {"code": "PHL", "name": "Philippines"},
    "documentType": {"code": "PASSPORT", "name": "Passport"},
}

PHL_DRIVERS_LICENCE = {
    "country": {"code": "PHL", "name": "Philippines"},
    "documentType": {"code": "DRIVERS_LICENCE", "name": "Driver's Licence"},
}

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.4\n" + b"\x00" * 64


class FakeGateway:
    """
    Substituto da API de verificação.
    Cada chamada fica registrada; falhas são ligadas pelos atributos `*_error`.
    """

    def __init__(self):
        self.classification: Dict[str, Any] = dict(PHL_PASSPORT)
        self.classify_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.poll_state = "PROCESSING"
        self.poll_payload: Dict[str, Any] = {}
        self.poll_error: Optional[Exception] = None
        self.classify_calls: List[Dict[str, Any]] = []
        self.submit_calls: List[Dict[str, Any]] = []
        self.poll_calls: List[str] = []

    async def classify(self, image: bytes, mime_type: str) -> ClassificationResult:
        self.classify_calls.append({"mime_type": mime_type, "size": len(image)})
        if self.classify_error:
            raise self.classify_error
        result = ClassificationResult.model_validate(self.classification)
        result.raw = dict(self.classification)
        return result

    async def submit(self, image, mime_type, country_code, document_type_code, idempotency_ref) -> SubmissionResult:
        self.submit_calls.append({
            "mime_type": mime_type,
            "country_code": country_code,
            "document_type_code": document_type_code,
            "idempotency_ref": idempotency_ref,
        })
        if self.submit_error:
            raise self.submit_error
        return SubmissionResult(
            external_verification_id=f"verify-{len(self.submit_calls)}",
            status="PROCESSING",
            raw={},
        )

    async def poll_result(self, external_verification_id: str) -> PollResult:
        self.poll_calls.append(external_verification_id)
        if self.poll_error:
            raise self.poll_error
        payload = {"documentVerifyId": external_verification_id, "status": self.poll_state, **self.poll_payload}
        return PollResult(state=self.poll_state, payload=payload)


def make_file(file_name: str = "passport.png", mime_type: str = "image/png", content: bytes = PNG_BYTES) -> IncomingFile:
    return IncomingFile(file_name=file_name, mime_type=mime_type, content=content)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Engine SQLite em memória com as tabelas criadas."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()

@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)

@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Fornece uma sessão de banco de dados para testes."""
    async with session_factory() as session:
        yield session

@pytest_asyncio.fixture
async def fake_gateway() -> FakeGateway:
    return FakeGateway()

@pytest_asyncio.fixture
async def lifecycle(db_session: AsyncSession, fake_gateway: FakeGateway) -> DocumentLifecycle:
    """Ciclo de vida ligado ao banco de testes e ao gateway falso."""
    return DocumentLifecycle(store=DocumentStore(db_session), gateway=fake_gateway)

@pytest_asyncio.fixture
async def async_client(session_factory, fake_gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    """Fornece um cliente HTTP assíncrono para testes."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_verification_client] = lambda: fake_gateway

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as client:
        yield client

    fastapi_app.dependency_overrides.clear()

@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Cria um usuário de teste."""
    user = User(
        id=uuid.uuid4(),
        email="test@example.com",
        hashed_password=hash_password("testpassword"),
        is_active=True
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user

@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Cria um segundo usuário, dono de outros documentos."""
    user = User(
        id=uuid.uuid4(),
        email="other@example.com",
        hashed_password=hash_password("otherpassword"),
        is_active=True
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user

@pytest_asyncio.fixture
async def user_token_headers(test_user: User) -> Dict[str, str]:
    """Retorna headers com token de autenticação para o usuário de teste."""
    access_token = create_access_token(test_user.id)
    return {"Authorization": f"Bearer {access_token}"}
