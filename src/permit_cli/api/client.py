from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter, Retry

from ..logging import get_logger
from ..util.errors import PermitAPIError

LOG = get_logger(__name__)

DEFAULT_API_URL = "https://api.permit.io"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_POOL_SIZE = 8
DEFAULT_RETRIES = 3


def facts_path(project: str, environment: str, endpoint: str) -> str:
    """
    Environment-scoped path under the facts API, e.g. v2/facts/{proj}/{env}/users.
    """
    if not project or not environment:
        raise PermitAPIError("Both project and environment are required for environment-scoped calls")
    return f"v2/facts/{project}/{environment}/{endpoint.lstrip('/')}"


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:200]
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if value:
                return str(value)
    return str(body)[:200]


class PermitClient:
    """
    Thin synchronous client for the Permit REST API.

    One request is in flight per call; callers decide whether to fan out.
    Transport retries and timeouts live here, never in the callers.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        pool_size: int = DEFAULT_POOL_SIZE,
        retries: int = DEFAULT_RETRIES,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise PermitAPIError("An auth token is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        if session is None:
            # Retry GETs only
            retry = Retry(
                total=retries,
                backoff_factor=0.5,
                status_forcelist=(429, 502, 503, 504),
                allowed_methods=frozenset({"GET"}),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=retry)
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> PermitClient:
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        self.close()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        url = self.url(path)
        query: Dict[str, Any] = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        LOG.debug("Permit API request", extra={"method": method, "url": url, "params": query})
        try:
            response = self._session.request(method, url, params=query or None, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            raise PermitAPIError(f"{method} {url} failed: {e}", url=url) from e

        if not response.ok:
            raise PermitAPIError(
                f"{method} {url} returned {response.status_code}: {_error_detail(response)}",
                status=response.status_code,
                url=url,
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PermitAPIError(f"{method} {url} returned a non-JSON body", status=response.status_code, url=url) from e

    def get(self, path: str, *, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, *, json: Optional[Any] = None) -> Any:
        return self.request("POST", path, json=json)

    def delete(self, path: str, *, json: Optional[Any] = None) -> Any:
        return self.request("DELETE", path, json=json)
