from __future__ import annotations

import inspect
import logging
from collections.abc import Callable

from auth.models import CredentialPair
from auth.token_store import TokenStore
from gymapi.constants import LOGGER, SIGN_IN_PATH
from gymapi.http import ApiClient
from gymapi.services import User


class Session:
    """Owns the signed-in user and the stored credentials for one API client."""

    def __init__(
        self,
        api: ApiClient,
        token_store: TokenStore,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api = api
        self._token_store = token_store
        self._logger = logger or LOGGER
        self._listeners: list[Callable[[], object]] = []
        self.user: User | None = None
        self.signed_in = False

    def on_sign_out(self, callback: Callable[[], object]) -> None:
        self._listeners.append(callback)

    async def sign_in(self, email: str, password: str) -> User:
        response = await self._api.post(SIGN_IN_PATH, json={"email": email, "password": password})
        payload = response.json()
        if not isinstance(payload, dict):
            raise RuntimeError("Sign-in response must be a JSON object.")

        credentials = CredentialPair.from_payload(payload)
        user = User.from_payload(payload.get("user") or {})

        await self._token_store.save(credentials)
        self._api.set_access_token(credentials.access_token)
        self.user = user
        self.signed_in = True
        self._logger.info("Signed in user=%s", user.id)
        return user

    async def restore(self) -> bool:
        credentials = await self._token_store.get()
        if credentials is None:
            return False
        self._api.set_access_token(credentials.access_token)
        self.signed_in = True
        return True

    async def sign_out(self) -> None:
        await self._token_store.remove()
        self._api.clear_access_token()
        self.user = None
        self.signed_in = False
        self._logger.info("Signed out")

        for callback in list(self._listeners):
            result = callback()
            if inspect.isawaitable(result):
                await result
