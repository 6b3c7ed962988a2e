"""Shared JSON-over-HTTP plumbing for the remote repositories."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from ...errors import NetworkError, StoreTimeoutError, error_for_status
from ...logging_config import get_logger

logger = get_logger(__name__)


class JsonHttpClient:
    """Thin wrapper over a ``requests.Session`` that speaks JSON.

    Transport failures and error statuses are raised as ``habitsync.errors``
    exceptions so callers never see ``requests`` types.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.timeout = timeout
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Any = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (``None`` when empty)."""

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            logger.warning("%s %s timed out after %ss", method, url, self.timeout)
            raise StoreTimeoutError(f"{method} {path} timed out") from exc
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        body = _decode(response)
        if response.status_code >= 400:
            message = _error_message(body) or f"HTTP {response.status_code}"
            logger.info("%s %s -> %s %s", method, url, response.status_code, message)
            raise error_for_status(response.status_code, message)
        return body

    def get(self, path: str, **kwargs: Any) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Any:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Any:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> Any:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self.request("DELETE", path, **kwargs)


def _decode(response: Any) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        if response.status_code >= 400:
            return {"error": response.text}
        raise NetworkError(f"Backend returned a non-JSON body (HTTP {response.status_code})")


def _error_message(body: Any) -> str:
    if isinstance(body, Mapping):
        for key in ("error", "message", "msg"):
            if body.get(key):
                return str(body[key])
    return ""
