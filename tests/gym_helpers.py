import asyncio
import json

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.models import CredentialPair
from auth.refresh import RefreshCoordinator
from auth.token_store import MemoryTokenStore
from gymapi.http import ApiClient

BASE_URL = "http://gym.test/"


class FakeGymApi:
    """MockTransport handler: protected routes only accept the current access token."""

    def __init__(self, *, valid_access_token: str | None = None) -> None:
        self.valid_access_token = valid_access_token
        self.next_pairs = [("T2", "R2"), ("T3", "R3")]
        self.refresh_status = 200
        self.refresh_gate: asyncio.Event | None = None
        self.cancel_refresh = False
        self.expired_reason = "token.expired"
        self.always_expired = False
        self.refresh_bodies: list[dict] = []
        self.requests: list[httpx.Request] = []

    @property
    def refresh_calls(self) -> int:
        return len(self.refresh_bodies)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/sessions/refresh-token":
            self.refresh_bodies.append(json.loads(request.content))
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            if self.cancel_refresh:
                raise asyncio.CancelledError
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"message": "token.invalid"})
            token, refresh = self.next_pairs.pop(0)
            self.valid_access_token = token
            return httpx.Response(200, json={"token": token, "refresh_token": refresh})

        if path == "/boom":
            return httpx.Response(500, json={"message": "Internal error"})

        authorization = request.headers.get("authorization")
        if self.always_expired or authorization != f"Bearer {self.valid_access_token}":
            return httpx.Response(401, json={"message": self.expired_reason})

        if path == "/flaky":
            return httpx.Response(500, json={"message": "Internal error"})

        return httpx.Response(
            200,
            json={
                "path": path,
                "method": request.method,
                "authorization": authorization,
                "body": json.loads(request.content) if request.content else None,
            },
        )


class SignOutRecorder:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


def build_client(fake: FakeGymApi, *, pair: CredentialPair | None = None):
    store = MemoryTokenStore(pair if pair is not None else CredentialPair("T1", "R1"))
    api = ApiClient(BASE_URL, transport=fake.transport())
    api.set_access_token(pair.access_token if pair is not None else "T1")
    coordinator = RefreshCoordinator(api, store)
    sign_out = SignOutRecorder()
    uninstall = coordinator.install(sign_out)
    return api, coordinator, store, sign_out, uninstall


async def wait_for_waiters(coordinator: RefreshCoordinator, count: int) -> None:
    for _ in range(200):
        if len(coordinator.state.waiters) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"Expected {count} queued requests, saw {len(coordinator.state.waiters)}")


def build_gym_app(*, users: dict[str, str] | None = None) -> Starlette:
    """A small stand-in for the gym backend, served through httpx.ASGITransport."""
    accounts = users or {"ana@example.com": "secret"}
    state = {"access": {}, "refresh": {}, "history": [], "counter": 0}

    def _mint(email: str) -> dict:
        state["counter"] += 1
        access = f"access-{state['counter']}"
        refresh = f"refresh-{state['counter']}"
        state["access"] = {access: email}
        state["refresh"] = {refresh: email}
        return {"token": access, "refresh_token": refresh}

    def _authorized(request: Request) -> str | None:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer":
            return None
        return state["access"].get(token)

    def _unauthorized() -> Response:
        return JSONResponse({"status": "error", "message": "token.expired"}, status_code=401)

    async def sign_in(request: Request) -> Response:
        body = await request.json()
        email = body.get("email")
        if accounts.get(email) != body.get("password"):
            return JSONResponse(
                {"status": "error", "message": "E-mail e/ou senha incorreta."},
                status_code=401,
            )
        tokens = _mint(email)
        user = {"id": 1, "name": "Ana", "email": email, "avatar": "ana.png"}
        return JSONResponse({**tokens, "user": user})

    async def refresh(request: Request) -> Response:
        body = await request.json()
        email = state["refresh"].get(body.get("refresh_token"))
        if email is None:
            return JSONResponse({"status": "error", "message": "token.invalid"}, status_code=401)
        return JSONResponse(_mint(email))

    async def groups(request: Request) -> Response:
        if _authorized(request) is None:
            return _unauthorized()
        return JSONResponse(["costas", "ombro"])

    async def exercises_by_group(request: Request) -> Response:
        if _authorized(request) is None:
            return _unauthorized()
        group = request.path_params["group"]
        return JSONResponse(
            [
                {
                    "id": 7,
                    "name": "Remada unilateral",
                    "group": group,
                    "series": 3,
                    "repetitions": 12,
                    "demo": "remada.gif",
                    "thumb": "remada.png",
                }
            ]
        )

    async def exercise(request: Request) -> Response:
        if _authorized(request) is None:
            return _unauthorized()
        exercise_id = request.path_params["exercise_id"]
        if exercise_id != "7":
            return JSONResponse(
                {"status": "error", "message": "Exercício não encontrado."},
                status_code=404,
            )
        return JSONResponse(
            {"id": 7, "name": "Remada unilateral", "group": "costas", "series": 3, "repetitions": 12}
        )

    async def history(request: Request) -> Response:
        if _authorized(request) is None:
            return _unauthorized()
        if request.method == "POST":
            body = await request.json()
            state["history"].append(body["exercise_id"])
            return Response(status_code=201)
        entries = [
            {"id": index, "name": "Remada unilateral", "group": "costas", "hour": "08:00"}
            for index, _ in enumerate(state["history"], start=1)
        ]
        return JSONResponse([{"title": "26.08.22", "data": entries}] if entries else [])

    routes = [
        Route("/sessions", sign_in, methods=["POST"]),
        Route("/sessions/refresh-token", refresh, methods=["POST"]),
        Route("/groups", groups, methods=["GET"]),
        Route("/exercises/bygroup/{group}", exercises_by_group, methods=["GET"]),
        Route("/exercises/{exercise_id}", exercise, methods=["GET"]),
        Route("/history", history, methods=["GET", "POST"]),
    ]
    app = Starlette(routes=routes)
    app.state.tokens = state
    return app
