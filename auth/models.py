from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx


@dataclass
class CredentialPair:
    access_token: str
    refresh_token: str

    @classmethod
    def from_payload(cls, payload: dict) -> "CredentialPair":
        # The refresh endpoint answers with "token"; stored pairs use "access_token".
        access_token = payload.get("access_token", payload.get("token"))
        refresh_token = payload.get("refresh_token")

        if not isinstance(access_token, str) or not access_token:
            raise RuntimeError("Credential payload missing token.")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise RuntimeError("Credential payload missing refresh_token.")

        return cls(access_token=access_token, refresh_token=refresh_token)


@dataclass
class PendingRequest:
    """A request blocked behind an in-flight refresh, settled exactly once."""

    request: httpx.Request
    future: asyncio.Future = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )

    @property
    def settled(self) -> bool:
        return self.future.done()

    def resolve(self, response: httpx.Response) -> None:
        if not self.future.done():
            self.future.set_result(response)

    def reject(self, error: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(error)

    async def wait(self) -> httpx.Response:
        return await self.future


@dataclass
class RefreshState:
    """`Idle` when `refreshing` is False, otherwise `Refreshing(waiters)`."""

    refreshing: bool = False
    waiters: list[PendingRequest] = field(default_factory=list)

    @classmethod
    def idle(cls) -> "RefreshState":
        return cls()

    def begin(self) -> None:
        if self.refreshing:
            raise RuntimeError("A token refresh is already in progress.")
        self.refreshing = True

    def enqueue(self, pending: PendingRequest) -> None:
        if not self.refreshing:
            raise RuntimeError("Cannot queue a request while no refresh is in progress.")
        self.waiters.append(pending)

    def drain(self) -> list[PendingRequest]:
        waiters = self.waiters
        self.refreshing = False
        self.waiters = []
        return waiters
