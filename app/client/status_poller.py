"""
Polling de status dos documentos no lado do cliente.

A cada intervalo consulta o status de cada documento ainda em andamento; se
algum mudou, recarrega a lista completa e avisa quem está exibindo os dados.
O loop termina sozinho quando não há mais documentos em andamento e volta a
ser iniciado por `track` quando um novo aparece (por exemplo, após um upload).
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from app.client.portal_client import PortalClient, PortalClientError
from app.core.config import settings

logger = logging.getLogger(__name__)

# Estados que ainda podem mudar sem ação do usuário
POLLABLE_STATES = frozenset({"CLASSIFYING", "SUBMITTING", "PROCESSING"})

RefreshCallback = Callable[[List[Dict[str, Any]]], Awaitable[None]]


class StatusPoller:
    def __init__(
        self,
        client: PortalClient,
        on_refresh: RefreshCallback,
        interval: float = settings.STATUS_POLL_INTERVAL_SECONDS,
    ):
        self.client = client
        self.on_refresh = on_refresh
        self.interval = interval
        self._states: Dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def pending_ids(self) -> List[str]:
        return [document_id for document_id, state in self._states.items() if state in POLLABLE_STATES]

    async def track(self, documents: Iterable[Dict[str, Any]]) -> None:
        """
        Substitui os documentos observados pela lista atual.
        Inicia o loop se houver algum em andamento; caso contrário, encerra.
        """
        self._remember(documents)
        if self.pending_ids():
            if not self.running:
                self._task = asyncio.create_task(self._run())
        else:
            await self.stop()

    async def stop(self) -> None:
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        self._task = None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _remember(self, documents: Iterable[Dict[str, Any]]) -> None:
        self._states = {str(document["id"]): document["state"] for document in documents}

    async def _run(self) -> None:
        while self.pending_ids():
            await asyncio.sleep(self.interval)
            await self.tick()
        logger.debug("Nenhum documento em andamento; polling encerrado")

    async def tick(self) -> bool:
        """Executa uma rodada de consultas. Retorna True se a lista foi recarregada."""
        changed = False
        for document_id in self.pending_ids():
            try:
                status = await self.client.get_status(document_id)
            except (PortalClientError, httpx.HTTPError) as e:
                logger.warning(f"Falha ao consultar status do documento {document_id}: {e}")
                continue
            if status.get("status") != self._states.get(document_id):
                changed = True

        if not changed:
            return False

        try:
            documents = await self.client.list_documents()
        except (PortalClientError, httpx.HTTPError) as e:
            logger.warning(f"Falha ao recarregar documentos: {e}")
            return False

        self._remember(documents)
        await self.on_refresh(documents)
        return True
