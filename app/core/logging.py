import logging
import sys

from app.core.config import settings


def configure_logging() -> None:
    """
    Configura o logging da aplicação inteira.
    Deve ser chamada uma única vez, antes da criação do app FastAPI.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # httpx registra cada requisição em INFO; mantemos só avisos
    logging.getLogger("httpx").setLevel(logging.WARNING)
