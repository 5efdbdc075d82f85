"""
GATHERLY - Object Storage Handle

S3-compatible bucket storage reached over HTTP. Reachability is a HEAD on
the bucket: any 2xx, or a 403 from a server that demands signed requests,
means the service is up and the bucket exists.
"""
import logging
from typing import Optional

import httpx

from core.errors import SubsystemConnectionError
from core.subsystems import Criticality, SubsystemHandleBase, SubsystemStatus


logger = logging.getLogger("gatherly.integrations.object_storage")

REACHABLE_STATUSES = frozenset({403})


class ObjectStorageHandle(SubsystemHandleBase):
    """Subsystem handle for the object store."""

    def __init__(
        self,
        endpoint: str,
        bucket: str,
        criticality: Criticality = Criticality.OPTIONAL,
        name: str = "storage",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(name, criticality)
        self.endpoint = endpoint.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self._client = client

    @property
    def bucket_url(self) -> str:
        return f"{self.endpoint}/{self.bucket}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _head_bucket(self) -> httpx.Response:
        return await self._get_client().head(self.bucket_url)

    @staticmethod
    def _reachable(response: httpx.Response) -> bool:
        return response.is_success or response.status_code in REACHABLE_STATUSES

    async def _open(self) -> None:
        response = await self._head_bucket()
        if not self._reachable(response):
            raise SubsystemConnectionError(
                f"bucket '{self.bucket}' not reachable: HTTP {response.status_code}",
                subsystem=self.name,
            )
        logger.info(f"Object storage bucket '{self.bucket}' reachable at {self.endpoint}")

    async def _ping(self) -> SubsystemStatus:
        response = await self._head_bucket()
        if self._reachable(response):
            return SubsystemStatus.connected()
        return SubsystemStatus.disconnected(f"HTTP {response.status_code}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        await super().close()
