import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path("alembic.ini")

async def run_migrations() -> None:
    """
    Aplica as migrações do Alembic (`alembic upgrade head`) em um subprocesso.

    Raises:
        FileNotFoundError: se o alembic.ini não estiver no diretório atual
        RuntimeError: se o comando terminar com código diferente de zero
    """
    if not ALEMBIC_INI.is_file():
        raise FileNotFoundError(f"Arquivo de configuração do Alembic não encontrado: {ALEMBIC_INI}")

    logger.info("Aplicando migrações do banco de dados...")
    process = await asyncio.create_subprocess_exec(
        "alembic", "-c", str(ALEMBIC_INI), "upgrade", "head",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )
    stdout, stderr = await process.communicate()

    if process.returncode != 0:
        error_msg = stderr.decode().strip() if stderr else "Código de saída não-zero"
        logger.error(f"Erro ao aplicar migrações: {error_msg}")
        raise RuntimeError(f"Falha ao aplicar migrações Alembic: {error_msg}")

    logger.info("Migrações aplicadas com sucesso!")
    if stdout:
        logger.debug(f"Saída das migrações: {stdout.decode().strip()}")
