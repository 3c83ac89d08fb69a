"""Registry client over HTTP using requests.

Layout served by the registry:

* ``GET <registry>/<name>/index.json`` returns
  ``{"versions": {"1.2.0": {"dependencies": {"lpeg": "^1.0"}}}}``.
* ``GET <registry>/<name>/<version>/archive`` returns the package content.
"""
from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Union

import requests

from common.errors import FetchError, PackageNotFoundError, TransientFetchError
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from common.retry import call_with_retries
from constants import Constants
from versioning.models import SemanticVersion

from .base import PublishedVersion, as_version, parse_index, quote_name

logger = logging.getLogger(__name__)


def classify_status(status: int, name: str, version: Optional[str] = None) -> None:
    """Raise the fetch error matching a non-success HTTP status."""
    if status == 404:
        raise PackageNotFoundError(name, version, "not found in registry")
    if status == 429 or status >= 500:
        raise TransientFetchError(name, version, f"registry returned HTTP {status}")
    if status != 200:
        raise FetchError(name, version, f"registry returned HTTP {status}")


class HttpPackageSource:
    """Blocking registry client.

    ``list_versions`` retries transient failures itself; ``fetch`` makes a
    single attempt so callers that schedule downloads own the retry policy.
    """

    def __init__(
        self,
        registry_url: str = Constants.REGISTRY_URL,
        timeout: float = Constants.REQUEST_TIMEOUT,
        retry_max: int = Constants.HTTP_RETRY_MAX,
        retry_base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
        session: Optional[requests.Session] = None,
    ):
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.retry_max = retry_max
        self.retry_base_delay = retry_base_delay
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", Constants.USER_AGENT)

    def index_url(self, name: str) -> str:
        return f"{self.registry_url}/{quote_name(name)}/index.json"

    def archive_url(self, name: str, version: SemanticVersion) -> str:
        return f"{self.registry_url}/{quote_name(name)}/{version}/archive"

    def _get(self, url: str, name: str, version: Optional[str] = None) -> requests.Response:
        target = safe_url(url)
        with Timer() as t:
            try:
                response = self._session.get(url, timeout=self.timeout)
            except requests.Timeout:
                raise TransientFetchError(name, version, f"timed out after {self.timeout}s") from None
            except requests.RequestException as exc:  # includes ConnectionError
                raise TransientFetchError(name, version, f"connection error: {exc}") from exc
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_source",
                        action="GET",
                        status_code=response.status_code,
                        duration_ms=t.duration_ms(),
                        target=target,
                    ),
                )
        classify_status(response.status_code, name, version)
        return response

    def list_versions(self, name: str) -> List[PublishedVersion]:
        def attempt() -> List[PublishedVersion]:
            response = self._get(self.index_url(name), name)
            try:
                payload: Any = response.json()
            except (json.JSONDecodeError, ValueError) as exc:
                raise FetchError(name, reason=f"index is not valid JSON: {exc}") from exc
            return parse_index(name, payload)

        return call_with_retries(
            attempt,
            retries=self.retry_max,
            base_delay=self.retry_base_delay,
            context=f"index {name}",
        )

    def fetch(self, name: str, version: Union[str, SemanticVersion]) -> bytes:
        parsed = as_version(version)
        response = self._get(self.archive_url(name, parsed), name, str(parsed))
        return response.content

    def close(self) -> None:
        self._session.close()
