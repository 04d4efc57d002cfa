from typing import Any, Optional

import httpx

from feedengine.config.settings import settings
from feedengine.shared.exceptions import ContentNotFoundError, ContentStoreError


class ContentStoreClient:
    """
    Read-only client for the Content Store.

    Only ``GET <path>`` returning JSON is used. Failures are raised as
    ContentStoreError / ContentNotFoundError; callers decide whether to
    swallow them.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.CONTENT_STORE_URL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.CONTENT_STORE_TIMEOUT,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def get_json(self, path: str, preload: bool = False) -> Any:
        headers = {"X-Preload": "true"} if preload else None
        try:
            response = await self._client.get(path, headers=headers)
        except httpx.HTTPError as e:
            raise ContentStoreError(path, detail=f"Request failed ({type(e).__name__})") from e

        if response.status_code == 404:
            raise ContentNotFoundError(path)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ContentStoreError(
                path,
                detail=f"Request failed with status {response.status_code}",
                status_code=response.status_code,
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise ContentStoreError(path, detail="Response was not valid JSON") from e

    async def aclose(self) -> None:
        await self._client.aclose()
