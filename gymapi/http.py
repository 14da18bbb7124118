from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

import httpx

from .constants import AUTHORIZATION_HEADER, LOGGER, REPLAY_EXTENSION


@dataclass
class Outcome:
    """What a single send produced: a response, an error, or both for HTTP errors."""

    request: httpx.Request
    response: httpx.Response | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> httpx.Response:
        if self.error is not None:
            raise self.error
        if self.response is None:
            raise RuntimeError("Outcome carries neither a response nor an error.")
        return self.response


Stage = Callable[[Outcome], Awaitable[Outcome]]


class StageRegistry:
    """Ordered response stages. Handles returned by `use` stay valid until ejected."""

    def __init__(self) -> None:
        self._stages: dict[int, Stage] = {}
        self._next_id = 0

    def use(self, stage: Stage) -> int:
        stage_id = self._next_id
        self._next_id += 1
        self._stages[stage_id] = stage
        return stage_id

    def eject(self, stage_id: int) -> None:
        self._stages.pop(stage_id, None)

    def __iter__(self) -> Iterator[Stage]:
        return iter(list(self._stages.values()))

    def __len__(self) -> int:
        return len(self._stages)


def bearer(token: str) -> str:
    return f"Bearer {token}"


def is_replay(request: httpx.Request) -> bool:
    return request.extensions.get(REPLAY_EXTENSION) is True


def replay_request(request: httpx.Request, *, authorization: str) -> httpx.Request:
    headers = httpx.Headers(request.headers)
    headers[AUTHORIZATION_HEADER] = authorization
    return httpx.Request(
        method=request.method,
        url=request.url,
        headers=headers,
        content=request.content,
        extensions={**request.extensions, REPLAY_EXTENSION: True},
    )


class ApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        event_hooks: dict[str, list] | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers or {},
            timeout=timeout,
            transport=transport,
            event_hooks=event_hooks or {},
        )
        self.interceptors = StageRegistry()

    @property
    def base_url(self) -> httpx.URL:
        return self._http.base_url

    @property
    def headers(self) -> httpx.Headers:
        return self._http.headers

    def set_access_token(self, token: str) -> None:
        self._http.headers[AUTHORIZATION_HEADER] = bearer(token)

    def clear_access_token(self) -> None:
        self._http.headers.pop(AUTHORIZATION_HEADER, None)

    def build_request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Request:
        return self._http.build_request(
            method,
            path,
            json=json,
            params=params,
            headers=headers,
        )

    async def _dispatch(self, request: httpx.Request) -> Outcome:
        try:
            response = await self._http.send(request)
        except httpx.TransportError as error:
            LOGGER.warning("Gym API transport failure %s %s: %s", request.method, request.url, error)
            return Outcome(request=request, error=error)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            return Outcome(request=request, response=response, error=error)
        return Outcome(request=request, response=response)

    async def send(self, request: httpx.Request, *, intercept: bool = True) -> httpx.Response:
        outcome = await self._dispatch(request)
        if intercept:
            for stage in self.interceptors:
                outcome = await stage(outcome)
        return outcome.unwrap()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request = self.build_request(method, path, json=json, params=params, headers=headers)
        return await self.send(request)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    def asset_url(self, *parts: str) -> str:
        return str(self.base_url.join("/".join(part.strip("/") for part in parts)))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
