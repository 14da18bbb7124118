from __future__ import annotations

import httpx


class AppError(RuntimeError):
    """Error the server explained with a message meant for the user."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RefreshError(AppError):
    """The refresh endpoint rejected the stored refresh token or could not be reached."""


def _friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. Please sign in again."
    if status_code == 403:
        return "You don't have permission to perform this action."
    if status_code == 404:
        return "The requested resource was not found."
    if status_code >= 500:
        return "The gym API is experiencing issues. Please try again later."
    return f"Gym API request failed with status {status_code}."


def response_message(response: httpx.Response) -> str | None:
    if not response.content:
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def app_error_from_response(response: httpx.Response) -> AppError:
    message = response_message(response)
    if message is None:
        message = _friendly_error_message(response.status_code)
    return AppError(message, status_code=response.status_code)
