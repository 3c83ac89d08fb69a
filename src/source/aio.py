"""Registry client over aiohttp for concurrent installs."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional, Union

import aiohttp

from common.errors import FetchError, TransientFetchError
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from constants import Constants
from versioning.models import SemanticVersion

from .base import PublishedVersion, as_version, parse_index, quote_name
from .http import classify_status

logger = logging.getLogger(__name__)


class AsyncHttpPackageSource:
    """Async registry client sharing one ``aiohttp.ClientSession``.

    Each call is a single attempt; the installer applies timeouts and
    retries around it.
    """

    def __init__(
        self,
        registry_url: str = Constants.REGISTRY_URL,
        timeout: float = Constants.REQUEST_TIMEOUT,
        connection_limit: int = 100,
    ):
        self.registry_url = registry_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._connection_limit = connection_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self._connection_limit)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "AsyncHttpPackageSource":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _get_bytes(self, url: str, name: str, version: Optional[str] = None) -> bytes:
        if self._session is None:
            await self.start()
        assert self._session is not None
        try:
            async with self._session.get(url) as response:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response",
                        extra=extra_context(
                            event="http_response",
                            component="aio_source",
                            action="GET",
                            status_code=response.status,
                            target=safe_url(url),
                        ),
                    )
                classify_status(response.status, name, version)
                return await response.read()
        except asyncio.TimeoutError:
            raise TransientFetchError(name, version, "request timed out") from None
        except aiohttp.ClientError as exc:
            raise TransientFetchError(name, version, f"connection error: {exc}") from exc

    async def list_versions(self, name: str) -> List[PublishedVersion]:
        body = await self._get_bytes(f"{self.registry_url}/{quote_name(name)}/index.json", name)
        try:
            payload: Any = json.loads(body)
        except ValueError as exc:
            raise FetchError(name, reason=f"index is not valid JSON: {exc}") from exc
        return parse_index(name, payload)

    async def fetch(self, name: str, version: Union[str, SemanticVersion]) -> bytes:
        parsed = as_version(version)
        url = f"{self.registry_url}/{quote_name(name)}/{parsed}/archive"
        return await self._get_bytes(url, name, str(parsed))
