from __future__ import annotations

import builtins
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

import aiohttp
from loguru import logger

from stratus.core.exceptions import TransientNetworkError, error_for_status
from stratus.retry import RetryPolicy

# ─── Response ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Response[T]:
    status: int
    data: T
    headers: dict[str, str]


# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class BearerAuth:
    def __init__(self, token: str) -> None:
        self._token = token

    async def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }


# ─── Client ──────────────────────────────────────────────────────────


class HttpClient:
    """JSON HTTP client that executes each logical call under a RetryPolicy.

    One call is attempted up to ``retry.max_attempts`` times. Responses with
    a retryable status (429, 500, 502, 503, 504) and transport failures are
    retried after a fixed delay; every other status is terminal on the first
    response. Each attempt's response is released before the next one starts.
    """

    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        timeout: float = 30,
        retry: RetryPolicy | None = None,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry = retry or RetryPolicy()
        self._default_headers = {"Content-Type": "application/json", **(default_headers or {})}
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._base_url}{path}"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _build_headers(self) -> dict[str, str]:
        headers = dict(self._default_headers)
        if self._auth:
            headers.update(await self._auth.headers())
        return headers

    async def _attempt(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None,
        params: dict[str, Any] | None,
        format: Literal["json", "text"],
    ) -> Response[Any]:
        session = await self._ensure_session()
        headers = await self._build_headers()
        self._log.debug("{method} {path}", method=method, path=path)

        try:
            async with session.request(
                method, self._url(path), headers=headers, json=json, params=params
            ) as resp:
                return await self._parse(resp, method, path, format)
        except (aiohttp.ClientError, builtins.TimeoutError) as e:
            raise TransientNetworkError(
                f"{method} {path}: request failed: {e}", body=str(e)
            ) from e

    async def _parse(
        self,
        resp: aiohttp.ClientResponse,
        method: str,
        path: str,
        format: Literal["json", "text"],
    ) -> Response[Any]:
        if resp.status >= 400:
            body = await resp.text()
            self._log.warning(
                "HTTP {status} from {method} {path}: {body}",
                status=resp.status, method=method, path=path, body=body[:500],
            )
            raise error_for_status(resp.status, body, context=f"{method} {path}")
        resp_headers = dict(resp.headers)
        match format:
            case "json":
                raw = await resp.read()
                data = await resp.json(content_type=None) if raw.strip() else None
                return Response(status=resp.status, data=data, headers=resp_headers)
            case "text":
                return Response(status=resp.status, data=await resp.text(), headers=resp_headers)

    # ─── Retrying entry points ───────────────────────────────────────

    async def execute(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | list[Any] | None = None,
        *,
        params: dict[str, Any] | None = None,
        format: Literal["json", "text"] = "json",
    ) -> Response[Any]:
        """Issue one logical call, retrying transient failures.

        Raises:
            AuthenticationError, NotFoundError, ProviderError: Terminal statuses,
                on the first response.
            RateLimitError, TransientNetworkError: Once every attempt failed.
        """
        return await self._retry.call(
            self._attempt, method, path, json=body, params=params, format=format
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        format: Literal["json", "text"] = "json",
    ) -> Any:
        resp = await self.execute(method, path, json, params=params, format=format)
        return resp.data

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, *, json: dict[str, Any] | list[Any] | None = None) -> Any:
        return await self.request("POST", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session and not self._session.closed:
            self._log.debug("Closing HTTP session")
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
