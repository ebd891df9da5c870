"""
검색 문서 저장소

id 기준 upsert / delete 만 사용하므로 같은 잡이 여러 번 실행되어도 결과가 같습니다.
"""

import logging
from typing import Any, Protocol

import httpx

from integration.exception import SearchStoreError

logger = logging.getLogger(__name__)


class SearchStore(Protocol):
    async def upsert(self, document: dict[str, Any]) -> None: ...

    async def delete(self, document_id: str) -> bool: ...

    async def get(self, document_id: str) -> dict[str, Any] | None: ...

    async def close(self) -> None: ...


class InMemorySearchStore:
    """프로세스 메모리 저장소 (개발/테스트용)"""

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}

    async def upsert(self, document: dict[str, Any]) -> None:
        self.documents[str(document["id"])] = dict(document)

    async def delete(self, document_id: str) -> bool:
        return self.documents.pop(str(document_id), None) is not None

    async def get(self, document_id: str) -> dict[str, Any] | None:
        return self.documents.get(str(document_id))

    async def close(self) -> None:
        pass


class TypesenseSearchStore:
    """
    Typesense HTTP API 저장소

    사용 예시:
        store = TypesenseSearchStore("http://localhost:8108", api_key="xyz")
        await store.upsert({"id": "42", "title": "Backend Engineer", ...})
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        collection: str = "jobs",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._collection = collection
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"X-TYPESENSE-API-KEY": api_key},
            timeout=timeout_seconds,
            transport=transport,
        )

    def _documents_path(self, document_id: str | None = None) -> str:
        path = f"/collections/{self._collection}/documents"
        return f"{path}/{document_id}" if document_id is not None else path

    async def upsert(self, document: dict[str, Any]) -> None:
        document_id = str(document["id"])
        try:
            response = await self._client.post(
                self._documents_path(), params={"action": "upsert"}, json=document
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchStoreError("upsert", document_id, str(e))
        logger.debug(f"Search document upserted: id={document_id}")

    async def delete(self, document_id: str) -> bool:
        """문서 삭제 (없으면 False, 실패로 보지 않음)"""
        try:
            response = await self._client.delete(self._documents_path(document_id))
            if response.status_code == 404:
                logger.info(f"Search document already absent: id={document_id}")
                return False
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchStoreError("delete", document_id, str(e))
        logger.debug(f"Search document deleted: id={document_id}")
        return True

    async def get(self, document_id: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(self._documents_path(document_id))
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchStoreError("get", document_id, str(e))
        return response.json()

    async def close(self) -> None:
        await self._client.aclose()
