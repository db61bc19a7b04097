import logging
from typing import Dict, Any, List, Optional

import httpx

logger = logging.getLogger(__name__)


class PortalClientError(Exception):
    """Resposta de erro da API do portal."""

    def __init__(self, status_code: int, detail: str, code: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        self.code = code
        super().__init__(f"{status_code}: {detail}")


class PortalClient:
    """
    Cliente assíncrono da API do portal, usado pelo painel do candidato.

    O token de acesso é enviado em todas as requisições depois do login.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport)
        if token:
            self.set_token(token)

    def set_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def login(self, email: str, password: str) -> str:
        """Autentica e guarda o token para as próximas chamadas."""
        data = await self._request("POST", "/auth/login", data={"username": email, "password": password})
        token = data["access_token"]
        self.set_token(token)
        return token

    async def list_documents(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/documents")
        return data["items"]

    async def upload(self, file_name: str, content: bytes, mime_type: str, document_type: str) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            "/documents/upload",
            files={"file": (file_name, content, mime_type)},
            data={"document_type": document_type},
        )
        return data["document"]

    async def get_status(self, document_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/documents/{document_id}/status")

    async def get_result(self, document_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/documents/{document_id}/result")

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self._client.request(method, path, **kwargs)
        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        detail = body.get("detail") if isinstance(body, dict) else None
        code = body.get("code") if isinstance(body, dict) else None
        raise PortalClientError(response.status_code, str(detail or "Ocorreu um erro"), code)
