from __future__ import annotations

import json

import click

from auth_transport.config import get_safe_config_report


@click.command(name="config")
def config() -> None:
    """
    Print the effective configuration (secrets shown as SET/UNSET only).
    """
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True, default=str))


@click.command(name="devserver")
def devserver() -> None:
    """
    Run the in-memory reference backend (uvicorn).
    """
    from auth_transport.devserver import main

    main()


def add_commands(cli_group) -> None:
    cli_group.add_command(config)
    cli_group.add_command(devserver)


__all__ = ["add_commands", "config", "devserver"]
