import time
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from redis.exceptions import RedisError

from app.db.session import get_db
from app.api.v1.deps import redis

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health", response_model=dict)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Verifica a saúde da aplicação.
    - Disponibilidade do banco de dados
    - Disponibilidade do Redis (storage do rate limit)
    - Tempo de resposta
    """
    start_time = time.time()
    
    try:
        result = await db.execute(text("SELECT 1"))
        db_status = "online" if result.scalar() == 1 else "offline"
    except Exception as e:
        logger.warning(f"Banco de dados indisponível: {e}")
        db_status = "offline"
    
    try:
        redis_status = "online" if await redis.ping() else "offline"
    except (RedisError, OSError) as e:
        logger.warning(f"Redis indisponível: {e}")
        redis_status = "offline"
    
    response_time = time.time() - start_time
    
    return {
        "status": "ok" if db_status == "online" else "degraded",
        "database": db_status,
        "redis": redis_status,
        "response_time_ms": round(response_time * 1000, 2),
        "timestamp": time.time()
    }
