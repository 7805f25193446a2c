"""HTTP client for the chat API"""

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from app.models.chat import AttachmentRef, ChatTurn, Message
from app.utils.logger import get_logger

logger = get_logger()


class ApiError(Exception):
    """A request failed, was rejected, or the server could not persist it"""

    def __init__(self, message: str, status_code: Optional[int] = None, offline: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.offline = offline


class ChatApiClient:
    """Thin async wrapper over the REST endpoints"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.client.headers.update(headers)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, f"/api{path}", **kwargs)
        except httpx.HTTPError as e:
            raise ApiError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ApiError(str(detail), status_code=response.status_code)

        data = response.json()
        if data.get("success") is False:
            raise ApiError(
                data.get("error", "Request was not successful"),
                status_code=response.status_code,
                offline=bool(data.get("offline")),
            )
        return data

    async def list_conversations(self) -> Tuple[List[Dict[str, Any]], bool]:
        """Returns the conversations and whether the server answered from offline mode"""
        data = await self._request("GET", "/conversations")
        return data.get("conversations", []), bool(data.get("offline"))

    async def create_conversation(
        self, title: str, model: str, messages: Optional[List[Message]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": title, "model": model}
        if messages:
            payload["messages"] = [m.to_api() for m in messages]
        data = await self._request("POST", "/conversations", json=payload)
        return data["conversation"]

    async def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/conversations/{conversation_id}")
        return data["conversation"]

    async def rename_conversation(self, conversation_id: str, title: str) -> Dict[str, Any]:
        data = await self._request("PUT", f"/conversations/{conversation_id}", json={"title": title})
        return data["conversation"]

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    async def add_message(
        self,
        conversation_id: str,
        content: str,
        role: str,
        attachments: Optional[List[AttachmentRef]] = None
    ) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json={
                "content": content,
                "role": role,
                "attachments": [a.to_api() for a in attachments or []],
            },
        )
        return data["conversation"]

    async def edit_message(self, conversation_id: str, message_id: str, new_content: str) -> Dict[str, Any]:
        data = await self._request(
            "PUT",
            f"/conversations/{conversation_id}/messages",
            json={"messageId": message_id, "newContent": new_content},
        )
        return data["conversation"]

    async def process_file(self, file_url: str, file_name: str, file_type: str, file_size: int) -> Dict[str, Any]:
        """Returns the processing result; a failed extraction is a result, not an error"""
        try:
            response = await self.client.post(
                "/api/files/process",
                json={"fileUrl": file_url, "fileName": file_name, "fileType": file_type, "fileSize": file_size},
            )
        except httpx.HTTPError as e:
            raise ApiError(f"POST /files/process failed: {e}") from e

        if response.status_code >= 400:
            raise ApiError(response.json().get("detail", response.text), status_code=response.status_code)
        return response.json()

    async def stream_chat(self, messages: List[ChatTurn], model: Optional[str] = None) -> AsyncIterator[str]:
        payload = {"messages": [m.model_dump() for m in messages], "model": model}
        try:
            async with self.client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise ApiError(response.text, status_code=response.status_code)
                async for text in response.aiter_text():
                    if text:
                        yield text
        except httpx.HTTPError as e:
            raise ApiError(f"POST /chat failed: {e}") from e
