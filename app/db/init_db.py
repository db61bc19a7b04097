import logging

from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

async def init_db() -> None:
    """
    Garante que todas as tabelas existam.
    Chamada na inicialização, depois das migrações do Alembic, como salvaguarda
    caso as migrações não tenham sido executadas.
    """
    logger.info("Garantindo que todas as tabelas foram criadas...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tabelas verificadas/criadas.")
