from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass

import click
import httpx

from auth.refresh import RefreshCoordinator
from auth.session import Session
from auth.token_store import FileTokenStore, TokenStore
from gymapi.constants import APP_VERSION, HTTP_METHODS, LOGGER
from gymapi.env import (
    api_base_url,
    api_timeout,
    load_env,
    setup_logging,
    token_store_path,
    validate_env,
)
from gymapi.errors import AppError, RefreshError
from gymapi.http import ApiClient
from gymapi.services import GymService


@dataclass
class GymClient:
    api: ApiClient
    session: Session
    coordinator: RefreshCoordinator
    service: GymService
    uninstall: Callable[[], None]

    async def aclose(self) -> None:
        self.uninstall()
        await self.api.aclose()


def build_event_hooks(debug_enabled: bool) -> dict[str, list]:
    async def log_request(request: httpx.Request) -> None:
        if not debug_enabled:
            return
        LOGGER.info("Gym API request %s %s", request.method, request.url)

    async def log_response(response: httpx.Response) -> None:
        if not debug_enabled:
            return
        LOGGER.info(
            "Gym API response %s %s -> %s",
            response.request.method,
            response.request.url,
            response.status_code,
        )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            if len(text) > 1000:
                text = text[:1000] + "...<truncated>"
            LOGGER.warning("Gym API error body: %s", text)

    return {"request": [log_request], "response": [log_response]}


def create_client(
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    token_store: TokenStore | None = None,
) -> GymClient:
    load_env()
    debug_enabled = setup_logging()
    validate_env()

    api = ApiClient(
        api_base_url(),
        timeout=api_timeout(),
        transport=transport,
        event_hooks=build_event_hooks(debug_enabled),
    )
    store = token_store or FileTokenStore(token_store_path())
    session = Session(api, store)
    coordinator = RefreshCoordinator(api, store)
    uninstall = coordinator.install(session.sign_out)

    return GymClient(
        api=api,
        session=session,
        coordinator=coordinator,
        service=GymService(api),
        uninstall=uninstall,
    )


async def run_request(
    method: str,
    path: str,
    body: dict | None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    token_store: TokenStore | None = None,
) -> object:
    client = create_client(transport=transport, token_store=token_store)
    try:
        if not await client.session.restore():
            LOGGER.warning("No stored session; sending %s %s without credentials.", method, path)
        response = await client.api.request(method, path, json=body)
        if not response.content:
            return None
        return response.json()
    finally:
        await client.aclose()


@click.command(name="gym-api")
@click.argument("method", type=click.Choice(sorted(HTTP_METHODS), case_sensitive=False))
@click.argument("path")
@click.option("--data", "data", default=None, help="JSON request body.")
@click.version_option(APP_VERSION)
def main(method: str, path: str, data: str | None) -> None:
    """Send one authenticated request to the gym API and print the JSON reply."""
    body = None
    if data is not None:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as error:
            raise click.BadParameter(f"--data is not valid JSON: {error}") from error

    try:
        payload = asyncio.run(run_request(method.upper(), path, body))
    except RefreshError as error:
        raise click.ClickException(f"Session expired: {error.message}") from error
    except AppError as error:
        raise click.ClickException(error.message) from error
    except RuntimeError as error:
        raise click.ClickException(str(error)) from error
    except httpx.HTTPError as error:
        raise click.ClickException(f"Gym API request failed: {error}") from error

    if payload is not None:
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
