from __future__ import annotations

import asyncio
import json
from typing import Any

import click

from auth_transport.account import AccountService
from auth_transport.config import get_settings
from auth_transport.errors import TransportError
from auth_transport.session import AuthSession


def _parse_body(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as ex:
        raise click.BadParameter(f"not valid JSON: {ex}", param_hint="--json") from ex


async def _run_request(
    method: str,
    path: str,
    *,
    body: Any,
    email: str | None,
    password: str | None,
) -> int:
    async with AuthSession(get_settings()) as session:
        session.notifier.subscribe(
            lambda: click.echo("session expired: log in again", err=True)
        )
        account = AccountService(session)
        try:
            if email:
                await account.login(email, password or "")
            else:
                await account.bootstrap()
            resp = await session.request(method.upper(), path, json=body)
        except TransportError as ex:
            click.echo(f"error ({ex.kind.value}): {ex}", err=True)
            return 2
        click.echo(str(resp.status_code))
        if resp.content:
            click.echo(resp.text)
        return 0 if resp.is_success else 1


@click.command(name="request")
@click.argument("method")
@click.argument("path")
@click.option("--json", "json_body", default=None, help="JSON request body.")
@click.option("--email", default=None, help="Log in first (defaults to AUTH_EMAIL).")
@click.option("--password", default=None, help="Password (defaults to AUTH_PASSWORD, else prompt).")
@click.pass_context
def request(
    ctx: click.Context,
    method: str,
    path: str,
    json_body: str | None,
    email: str | None,
    password: str | None,
) -> None:
    """
    Perform one authenticated call: METHOD PATH (relative to API_BASE_URL).
    """
    s = get_settings()
    body = _parse_body(json_body)
    email = email or s.auth_email
    if email and password is None:
        if s.auth_password is not None:
            password = s.auth_password.get_secret_value()
        else:
            password = click.prompt("Password", hide_input=True)
    code = asyncio.run(_run_request(method, path, body=body, email=email, password=password))
    ctx.exit(code)


def add_commands(cli_group) -> None:
    cli_group.add_command(request)


__all__ = ["add_commands", "request"]
