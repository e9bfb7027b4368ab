"""Show command: prints the components recorded in the config file."""

from __future__ import annotations

import click

from h2o2.components import Com, Components
from h2o2.store import load_config

_NAME_WIDTH = max(len(com.display_name) for com in Com)


def format_components(components: Components) -> list[str]:
    return [
        f" {com.display_name:<{_NAME_WIDTH}} {components[com].to_show_format()}" for com in Com
    ]


def echo_components(components: Components) -> None:
    for line in format_components(components):
        click.echo(line)


def run_show() -> None:
    config = load_config()
    click.echo("H2O2 show")
    click.echo()
    click.echo("Components recorded in .h2o2config:")
    click.echo()
    echo_components(config.components)
    click.echo()
    click.echo(
        "If the components recorded is inconsistent with the actual situation, "
        "please run `h2o2 detect` to resync components."
    )
