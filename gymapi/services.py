from __future__ import annotations

from dataclasses import dataclass

import httpx

from .http import ApiClient


@dataclass
class User:
    id: str
    name: str
    email: str
    avatar: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "User":
        user_id = payload.get("id")
        name = payload.get("name")
        email = payload.get("email")
        avatar = payload.get("avatar")

        if user_id is None:
            raise RuntimeError("User payload missing id.")
        if not isinstance(name, str):
            raise RuntimeError("User payload missing name.")
        if not isinstance(email, str):
            raise RuntimeError("User payload missing email.")
        if avatar is not None and not isinstance(avatar, str):
            raise RuntimeError("User avatar must be a string.")

        return cls(id=str(user_id), name=name, email=email, avatar=avatar or None)


@dataclass
class Exercise:
    id: str
    name: str
    group: str
    series: int
    repetitions: int
    demo: str | None = None
    thumb: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "Exercise":
        exercise_id = payload.get("id")
        name = payload.get("name")
        group = payload.get("group")

        if exercise_id is None:
            raise RuntimeError("Exercise payload missing id.")
        if not isinstance(name, str) or not isinstance(group, str):
            raise RuntimeError("Exercise payload missing name or group.")
        try:
            series = int(payload.get("series", 0))
            repetitions = int(payload.get("repetitions", 0))
        except (TypeError, ValueError) as error:
            raise RuntimeError("Exercise series and repetitions must be integers.") from error

        return cls(
            id=str(exercise_id),
            name=name,
            group=group,
            series=series,
            repetitions=repetitions,
            demo=payload.get("demo"),
            thumb=payload.get("thumb"),
        )


@dataclass
class HistoryEntry:
    id: str
    name: str
    group: str
    hour: str

    @classmethod
    def from_payload(cls, payload: dict) -> "HistoryEntry":
        entry_id = payload.get("id")
        if entry_id is None:
            raise RuntimeError("History entry payload missing id.")
        return cls(
            id=str(entry_id),
            name=str(payload.get("name", "")),
            group=str(payload.get("group", "")),
            hour=str(payload.get("hour", "")),
        )


@dataclass
class HistoryDay:
    title: str
    data: list[HistoryEntry]

    @classmethod
    def from_payload(cls, payload: dict) -> "HistoryDay":
        title = payload.get("title")
        entries = payload.get("data", [])
        if not isinstance(title, str):
            raise RuntimeError("History section payload missing title.")
        if not isinstance(entries, list):
            raise RuntimeError("History section data must be a list.")
        return cls(title=title, data=[HistoryEntry.from_payload(item) for item in entries])


def _json_list(response: httpx.Response) -> list:
    payload = response.json()
    if not isinstance(payload, list):
        raise RuntimeError(f"Expected a JSON list from {response.request.url}.")
    return payload


def _json_object(response: httpx.Response) -> dict:
    payload = response.json()
    if not isinstance(payload, dict):
        raise RuntimeError(f"Expected a JSON object from {response.request.url}.")
    return payload


class GymService:
    """Typed calls for the gym API. Errors come from the client's response stages."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def create_user(self, name: str, email: str, password: str) -> None:
        await self._api.post("/users", json={"name": name, "email": email, "password": password})

    async def update_profile(
        self,
        name: str,
        *,
        password: str | None = None,
        old_password: str | None = None,
    ) -> None:
        body: dict[str, str] = {"name": name}
        if password:
            if not old_password:
                raise ValueError("old_password is required to change the password.")
            body["password"] = password
            body["old_password"] = old_password
        await self._api.put("/users", json=body)

    async def list_groups(self) -> list[str]:
        response = await self._api.get("/groups")
        return [str(group) for group in _json_list(response)]

    async def list_exercises_by_group(self, group: str) -> list[Exercise]:
        response = await self._api.get(f"/exercises/bygroup/{group}")
        return [Exercise.from_payload(item) for item in _json_list(response)]

    async def get_exercise(self, exercise_id: str) -> Exercise:
        response = await self._api.get(f"/exercises/{exercise_id}")
        return Exercise.from_payload(_json_object(response))

    async def list_history(self) -> list[HistoryDay]:
        response = await self._api.get("/history")
        return [HistoryDay.from_payload(item) for item in _json_list(response)]

    async def register_history(self, exercise_id: str) -> None:
        await self._api.post("/history", json={"exercise_id": exercise_id})

    def avatar_url(self, avatar: str) -> str:
        return self._api.asset_url("avatar", avatar)

    def exercise_demo_url(self, demo: str) -> str:
        return self._api.asset_url("exercise", "demo", demo)

    def exercise_thumb_url(self, thumb: str) -> str:
        return self._api.asset_url("exercise", "thumb", thumb)
