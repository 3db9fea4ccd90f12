"""Async HTTP client for the generation backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

import httpx

from ..channels.sse import http_stream_factory
from ..config import ClientConfig
from ..errors import TransportError

logger = logging.getLogger(__name__)

FileField = tuple[str, tuple[str, bytes, str]]


class ApiClient:
    """Thin wrapper over `httpx.AsyncClient` with bounded retries.

    Failed attempts back off exponentially. 4xx answers are never retried;
    timeouts surface as status 408 and connection failures as status 0.
    """

    def __init__(self, config: ClientConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.config = config or ClientConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.request_timeout_s,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def stream_factory(self):
        return http_stream_factory(self._client)

    async def get_json(self, path: str, *, retries: int | None = None) -> Any:
        response = await self._request(
            "GET",
            path,
            retries=self.config.fetch_retries if retries is None else retries,
        )
        return _decode_json(response)

    async def post_json(
        self,
        path: str,
        payload: Mapping[str, Any],
        *,
        retries: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        response = await self._request(
            "POST",
            path,
            retries=self.config.submit_retries if retries is None else retries,
            timeout=timeout,
            json=dict(payload),
        )
        return _decode_json(response)

    async def post_multipart(
        self,
        path: str,
        data: Mapping[str, str],
        files: Sequence[FileField],
        *,
        retries: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        response = await self._request(
            "POST",
            path,
            retries=self.config.submit_retries if retries is None else retries,
            timeout=timeout,
            data=dict(data),
            files=list(files),
        )
        return _decode_json(response)

    async def fetch_bytes(self, url: str, *, retries: int | None = None) -> bytes:
        response = await self._request(
            "GET",
            url,
            retries=self.config.fetch_retries if retries is None else retries,
        )
        return response.content

    async def _request(
        self,
        method: str,
        url: str,
        *,
        retries: int,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        attempts = max(0, retries) + 1
        delay = self.config.retry_delay_s
        if timeout is not None:
            kwargs["timeout"] = timeout
        error: TransportError | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TimeoutException as exc:
                error = TransportError(f"Request timeout: {exc}", status=408, url=url)
            except httpx.TransportError as exc:
                error = TransportError(f"Network error: {exc}", status=0, url=url)
            else:
                if response.is_success:
                    return response
                error = TransportError(_error_message(response), status=response.status_code, url=url)
                if 400 <= response.status_code < 500:
                    raise error
            if attempt < attempts:
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    method,
                    url,
                    attempt,
                    attempts,
                    error,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= self.config.retry_delay_multiplier
        assert error is not None
        logger.error("%s %s failed after %d attempt(s): %s", method, url, attempts, error)
        raise error


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(
            "Invalid response format received",
            status=response.status_code,
            url=str(response.request.url),
        ) from exc


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error.strip():
            return error.strip()
        if payload.get("message"):
            return str(payload["message"])
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"
