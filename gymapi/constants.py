from __future__ import annotations

import logging

HTTP_METHODS = {
    "get",
    "post",
    "put",
    "patch",
    "delete",
}

LOGGER = logging.getLogger("gymapi.client")
APP_VERSION = "0.1.0"

AUTHORIZATION_HEADER = "Authorization"
REFRESH_TOKEN_PATH = "/sessions/refresh-token"
SIGN_IN_PATH = "/sessions"

# Reason codes a 401 body carries when the access token can be refreshed.
REFRESHABLE_AUTH_MESSAGES = frozenset({"token.expired", "token.invalid"})

# httpx request extension marking a request already replayed after a refresh.
REPLAY_EXTENSION = "gymapi_replayed"
