"""Transparent access-token refresh for the gym API client.

`RefreshCoordinator.intercept` is a response stage for `ApiClient`. When a
request fails with a 401 whose body says the access token expired or is
invalid, the coordinator exchanges the stored refresh token for a new pair
once, then replays the failed request and every request that failed while
that refresh was in flight. If the refresh fails, every blocked request
fails with the same error and the session is signed out.

All state lives on the coordinator instance. The check of `state.refreshing`
and the transition into the refreshing state happen without an `await`
between them, so at most one refresh call reaches the network per episode.
The episode runs as its own task: cancelling the request that started it
leaves the refresh and the replay of queued requests running.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable

import httpx

from auth.models import CredentialPair, PendingRequest, RefreshState
from auth.token_store import TokenStore
from gymapi.constants import (
    AUTHORIZATION_HEADER,
    LOGGER,
    REFRESH_TOKEN_PATH,
    REFRESHABLE_AUTH_MESSAGES,
)
from gymapi.errors import RefreshError, app_error_from_response, response_message
from gymapi.http import ApiClient, Outcome, bearer, is_replay, replay_request

SignOut = Callable[[], object]


class RefreshCoordinator:
    def __init__(
        self,
        api: ApiClient,
        token_store: TokenStore,
        *,
        refresh_path: str = REFRESH_TOKEN_PATH,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api = api
        self._token_store = token_store
        self._refresh_path = refresh_path
        self._logger = logger or LOGGER
        self._on_sign_out: SignOut | None = None
        self.state = RefreshState.idle()

    def install(self, on_sign_out: SignOut) -> Callable[[], None]:
        self._on_sign_out = on_sign_out
        stage_id = self._api.interceptors.use(self.intercept)

        def uninstall() -> None:
            self._api.interceptors.eject(stage_id)

        return uninstall

    async def intercept(self, outcome: Outcome) -> Outcome:
        if outcome.ok or outcome.response is None:
            return outcome

        response = outcome.response
        if response.status_code != 401:
            return self._domain_error(outcome)

        reason = response_message(response)
        if reason not in REFRESHABLE_AUTH_MESSAGES:
            return self._domain_error(outcome)

        if is_replay(outcome.request):
            self._logger.warning(
                "Replayed request still rejected with %s; not refreshing again (%s %s)",
                reason,
                outcome.request.method,
                outcome.request.url,
            )
            return self._domain_error(outcome)

        current = self._api.headers.get(AUTHORIZATION_HEADER)
        if current is not None and outcome.request.headers.get(AUTHORIZATION_HEADER) != current:
            # Sent before the last refresh settled; the current token is already fresh.
            self._logger.info(
                "Replaying %s %s with the current access token",
                outcome.request.method,
                outcome.request.url,
            )
            return await self._resend(outcome.request, current)

        stored = await self._token_store.get()
        if stored is None or not stored.refresh_token:
            if AUTHORIZATION_HEADER not in self._api.headers:
                return outcome
            self._logger.warning("No refresh token stored; signing out.")
            self._api.clear_access_token()
            await self._sign_out()
            return outcome

        if self.state.refreshing:
            return await self._wait_for_refresh(outcome)

        self.state.begin()
        episode = asyncio.ensure_future(self._run_episode(outcome, stored.refresh_token))
        # Cancelling the caller leaves the episode running for queued requests.
        return await asyncio.shield(episode)

    async def _wait_for_refresh(self, outcome: Outcome) -> Outcome:
        pending = PendingRequest(outcome.request)
        self.state.enqueue(pending)
        self._logger.info(
            "Queued %s %s behind token refresh (%s waiting)",
            outcome.request.method,
            outcome.request.url,
            len(self.state.waiters),
        )
        try:
            response = await pending.wait()
        except Exception as error:
            return Outcome(request=outcome.request, response=_error_response(error), error=error)
        return Outcome(request=outcome.request, response=response)

    async def _run_episode(self, outcome: Outcome, refresh_token: str) -> Outcome:
        self._logger.info(
            "Access token rejected; refreshing (%s %s)",
            outcome.request.method,
            outcome.request.url,
        )

        credentials: CredentialPair | None = None
        failure: Exception | None = None
        try:
            credentials = await self._refresh_credentials(refresh_token)
        except Exception as error:
            failure = error
        finally:
            waiters = self.state.drain()
            if credentials is None and failure is None:
                # The episode task itself was cancelled.
                cancelled = RefreshError("Token refresh was cancelled.")
                for pending in waiters:
                    pending.reject(cancelled)

        if failure is not None:
            self._logger.warning(
                "Token refresh failed; rejecting %s queued request(s) and signing out: %s",
                len(waiters),
                failure,
            )
            for pending in waiters:
                pending.reject(failure)
            await self._sign_out()
            return Outcome(request=outcome.request, error=failure)

        authorization = bearer(credentials.access_token)
        self._logger.info("Token refreshed; replaying %s queued request(s)", len(waiters))
        results = await asyncio.gather(
            self._resend(outcome.request, authorization),
            *(self._resend(pending.request, authorization) for pending in waiters),
        )
        for pending, result in zip(waiters, results[1:]):
            if result.ok:
                pending.resolve(result.response)
            else:
                pending.reject(result.error)
        return results[0]

    async def _refresh_credentials(self, refresh_token: str) -> CredentialPair:
        request = self._api.build_request(
            "POST",
            self._refresh_path,
            json={"refresh_token": refresh_token},
        )
        try:
            response = await self._api.send(request, intercept=False)
        except httpx.HTTPStatusError as error:
            status_code = error.response.status_code
            message = response_message(error.response)
            raise RefreshError(
                message or f"Token refresh failed with status {status_code}.",
                status_code=status_code,
            ) from error
        except httpx.TransportError as error:
            raise RefreshError(f"Token refresh request failed: {error}") from error

        try:
            payload = response.json()
        except ValueError as error:
            raise RefreshError("Token refresh response is not valid JSON.") from error
        if not isinstance(payload, dict):
            raise RefreshError("Token refresh response must be a JSON object.")
        try:
            credentials = CredentialPair.from_payload(payload)
        except RuntimeError as error:
            raise RefreshError(f"Token refresh response is incomplete: {error}") from error

        await self._token_store.save(credentials)
        self._api.set_access_token(credentials.access_token)
        return credentials

    async def _resend(self, request: httpx.Request, authorization: str) -> Outcome:
        replayed = replay_request(request, authorization=authorization)
        try:
            response = await self._api.send(replayed)
        except Exception as error:
            return Outcome(request=replayed, response=_error_response(error), error=error)
        return Outcome(request=replayed, response=response)

    async def _sign_out(self) -> None:
        if self._on_sign_out is None:
            return
        result = self._on_sign_out()
        if inspect.isawaitable(result):
            await result

    def _domain_error(self, outcome: Outcome) -> Outcome:
        response = outcome.response
        if response is None or not response.content:
            return outcome
        error = app_error_from_response(response)
        error.__cause__ = outcome.error
        return Outcome(request=outcome.request, response=response, error=error)


def _error_response(error: BaseException) -> httpx.Response | None:
    for candidate in (error, error.__cause__):
        if isinstance(candidate, httpx.HTTPStatusError):
            return candidate.response
    return None
