from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.core.config import settings

# SQL no log apenas em modo DEBUG
engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.LOG_LEVEL.upper() == "DEBUG",
)

# Os documentos continuam legíveis após o commit de cada transição
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    class_=AsyncSession,
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Uma sessão por requisição, compartilhada pelo usuário atual e pelo ciclo de vida."""
    async with AsyncSessionLocal() as session:
        yield session
