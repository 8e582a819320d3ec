from __future__ import annotations

import click

from auth_transport.utils.log import set_log_level

from . import commands_admin, commands_request
from .commands_admin import config, devserver
from .commands_request import request


@click.group(name="auth-transport", help="auth-transport CLI (authenticated calls + dev backend)")
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run.")
def cli(log_level: str | None) -> None:
    if log_level:
        set_log_level(log_level)


commands_request.add_commands(cli)
commands_admin.add_commands(cli)

__all__ = ["cli", "request", "config", "devserver"]
