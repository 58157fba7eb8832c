"""MediaRepository that talks to the shelftrack HTTP API."""
import logging
import os
from typing import List, Optional

import httpx

from shelftrack.errors import ItemNotFoundError, NotAuthenticatedError, RemoteStoreError
from shelftrack.schemas import MediaItem

logger = logging.getLogger(__name__)

API_URL = os.getenv("SHELFTRACK_API_URL", "http://localhost:8000")
API_TIMEOUT = float(os.getenv("SHELFTRACK_API_TIMEOUT", "10"))


class HttpMediaRepository:
    def __init__(
        self,
        owner_id: str,
        base_url: str = API_URL,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.owner_id = owner_id
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=API_TIMEOUT)

    async def __aenter__(self) -> "HttpMediaRepository":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        owner_id: Optional[str] = None,
        item_id: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        headers = {"X-Owner-Id": owner_id or self.owner_id}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404 and item_id is not None:
                raise ItemNotFoundError(item_id) from exc
            if status == 401:
                raise NotAuthenticatedError() from exc
            logger.warning("%s %s returned HTTP %s", method, path, status)
            raise RemoteStoreError(f"{method} {path} failed with HTTP {status}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise RemoteStoreError(f"{method} {path} failed: {exc}") from exc
        return response

    async def list(self, owner_id: str) -> List[MediaItem]:
        response = await self._request("GET", "/api/media", owner_id=owner_id)
        return [MediaItem.model_validate(data) for data in response.json()]

    async def create(self, item: MediaItem) -> str:
        response = await self._request(
            "POST", "/api/media", owner_id=item.owner_id, json=item.model_dump(mode="json")
        )
        return response.json().get("id") or item.id

    async def replace(self, item_id: str, item: MediaItem) -> MediaItem:
        response = await self._request(
            "PUT",
            f"/api/media/{item_id}",
            owner_id=item.owner_id,
            item_id=item_id,
            json=item.model_dump(mode="json"),
        )
        return MediaItem.model_validate(response.json())

    async def delete(self, item_id: str) -> None:
        await self._request("DELETE", f"/api/media/{item_id}", item_id=item_id)
