"""Retrying HTTP transport for the ATTOM API.

One pooled ``httpx.AsyncClient`` per transport. Every failure, including a
2xx body whose embedded ``status.code`` is non-zero, is retried with
exponential backoff; the last failure is raised as a
:class:`~attom_gateway.errors.TransportError`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import quote

import httpx

from attom_gateway.config import Config, get_config
from attom_gateway.errors import ConfigurationError, TransportError
from attom_gateway.utils import stringify_param

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
_MISSING_SEGMENT = "-"

# Paths the upstream has moved; requests to the key are sent to the value.
PATH_ALIASES: dict[str, str] = {
    "/v4/poi/search": "/v4/neighborhood/poi",
}

Sleep = Callable[[float], Awaitable[Any]]


def substitute_path(template: str, query: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    """Fill ``{placeholder}`` tokens from ``query``.

    Placeholder names match query keys case-insensitively. Consumed keys are
    removed from the returned query; unresolved placeholders become ``-``.
    """
    remaining = dict(query)
    lowered = {k.lower(): k for k in remaining}

    def _replace(match: re.Match[str]) -> str:
        original_key = lowered.get(match.group(1).lower())
        if original_key is None or remaining.get(original_key) is None:
            return _MISSING_SEGMENT
        value = remaining.pop(original_key)
        return quote(stringify_param(value), safe="")

    path = _PLACEHOLDER_RE.sub(_replace, template)
    return path, remaining


def _embedded_status_error(data: Any) -> str | None:
    """Return an error description when a 2xx body reports failure."""
    if not isinstance(data, dict):
        return None
    status = data.get("status")
    if not isinstance(status, dict) or "code" not in status:
        return None
    code = status.get("code")
    if code in (0, "0", None):
        return None
    return f"{code} - {status.get('msg', '')}"


class AttomTransport:
    """Async client for the ATTOM gateway with retry and backoff."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        config: Config | None = None,
    ) -> None:
        cfg = config or get_config()
        self.api_key = api_key if api_key is not None else cfg.api_key
        if not self.api_key:
            raise ConfigurationError("ATTOM_API_KEY is required to call the ATTOM API.")
        self.base_url = (base_url or cfg.api_base_url).rstrip("/")
        self.max_retries = cfg.api_retries if max_retries is None else max_retries
        self.retry_base_delay = cfg.retry_base_delay if retry_base_delay is None else retry_base_delay
        self.timeout = timeout or cfg.request_timeout or _DEFAULT_TIMEOUT
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    # -- HTTP client ----------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                    keepalive_expiry=30.0,
                ),
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    # -- Requests -------------------------------------------------------------

    def build_url(self, path_template: str, query: Mapping[str, Any] | None = None) -> str:
        """Resolve aliases and placeholders, then append the query string."""
        template = PATH_ALIASES.get(path_template, path_template)
        path, remaining = substitute_path(template, query or {})
        params = [(k, stringify_param(v)) for k, v in remaining.items() if v is not None]
        url = httpx.URL(f"{self.base_url}/{path.lstrip('/')}")
        if params:
            url = url.copy_merge_params(params)
        return str(url)

    async def fetch(
        self,
        path_template: str,
        query: Mapping[str, Any] | None = None,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """Call the upstream API and return the decoded JSON body.

        Raises TransportError after ``max_retries + 1`` failed attempts; a
        negative ``max_retries`` counts as zero.
        """
        retries = max(0, self.max_retries if max_retries is None else max_retries)
        url = self.build_url(path_template, query)
        request_headers = {
            "Accept": "application/json",
            "apikey": self.api_key,
            **(headers or {}),
        }
        attempts = retries + 1
        last_exc: TransportError | None = None

        for attempt in range(attempts):
            logger.debug("ATTOM %s %s (attempt %d/%d)", method, url, attempt + 1, attempts)
            try:
                return await self._request_once(method, url, request_headers)
            except TransportError as exc:
                last_exc = exc
                logger.warning(
                    "Request to %s failed (attempt %d/%d): %s",
                    url, attempt + 1, attempts, exc,
                )
                if attempt < attempts - 1:
                    await self._sleep(self.retry_base_delay * (2 ** attempt))

        raise TransportError(
            f"Failed after {attempts} attempts. Last URL: {url}. Error: {last_exc.message}",
            status=last_exc.status,
            body=last_exc.body,
            url=url,
            attempts=attempts,
        ) from last_exc

    async def _request_once(self, method: str, url: str, headers: Mapping[str, str]) -> Any:
        try:
            resp = await self._get_client().request(method, url, headers=headers)
        except httpx.RequestError as exc:
            raise TransportError(f"Network error: {exc}", url=url) from exc

        if not resp.is_success:
            raise TransportError(
                f"ATTOM API error: {resp.status_code} {resp.reason_phrase}",
                status=resp.status_code,
                body=resp.text,
                url=url,
            )

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise TransportError(
                f"Non-JSON response (status {resp.status_code})",
                status=resp.status_code,
                body=resp.text,
                url=url,
            ) from exc

        semantic_error = _embedded_status_error(data)
        if semantic_error:
            raise TransportError(
                f"ATTOM API error for {url}: {semantic_error}",
                status=resp.status_code,
                body=resp.text,
                url=url,
            )
        return data
