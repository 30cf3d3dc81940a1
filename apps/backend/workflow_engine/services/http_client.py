"""HTTP client wrapper for runners.

Provides a small async API on top of httpx with sensible defaults. Transport
failures surface as ExternalCallError; status handling is left to callers.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from workflow_engine.core.exceptions import ExternalCallError

logger = logging.getLogger(__name__)


class HTTPResponse:
    def __init__(self, status_code: int, headers: Dict[str, str], json: Any, text: str):
        self.status_code = status_code
        self.headers = headers
        self.json = json
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def data(self) -> Any:
        """Parsed JSON body, or the raw text when the body is not JSON."""
        return self.json if self.json is not None else self.text


class HTTPClient:
    def __init__(
        self,
        timeout: float = 30.0,
        follow_redirects: bool = True,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=follow_redirects,
            verify=verify_ssl,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        content: Optional[str] = None,
        auth: Optional[Dict[str, Any]] = None,
        retry_attempts: int = 0,
        backoff_seconds: float = 0.0,
    ) -> HTTPResponse:
        # Handle auth injection
        h = dict(headers or {})
        if auth:
            atype = str(auth.get("type", "")).lower()
            if atype == "bearer" and auth.get("token"):
                h["Authorization"] = f"Bearer {auth['token']}"
            if atype == "basic" and auth.get("username") and auth.get("password"):
                raw = f"{auth['username']}:{auth['password']}".encode()
                h["Authorization"] = "Basic " + base64.b64encode(raw).decode()

        attempt = 0
        exc: Optional[Exception] = None
        while attempt <= int(retry_attempts or 0):
            try:
                r = await self._client.request(
                    method.upper(), url, headers=h, params=params, json=json_body, content=content
                )
                try:
                    j = r.json()
                except ValueError:
                    j = None
                return HTTPResponse(r.status_code, dict(r.headers), j, r.text)
            except httpx.HTTPError as e:
                exc = e
                attempt += 1
                logger.warning(f"{method.upper()} {url} failed (attempt {attempt}): {e}")
                if attempt > int(retry_attempts or 0):
                    break
                if backoff_seconds and backoff_seconds > 0:
                    await asyncio.sleep(backoff_seconds)
        raise ExternalCallError(f"{method.upper()} {url} failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["HTTPClient", "HTTPResponse"]
