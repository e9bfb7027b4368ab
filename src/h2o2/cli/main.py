"""Click CLI group: show, detect and install commands."""

from __future__ import annotations

import logging
import sys

import click

from h2o2.config import get_settings, validate_settings
from h2o2.errors import ConfigError
from h2o2.install.platforms import current_platform
from h2o2.logging import configure_logging

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(package_name="h2o2")
def cli() -> None:
    """H2O2 (a.k.a. hydrogen peroxide): another powerful tool for Hydro."""
    settings = get_settings()
    configure_logging(settings.log_level, json_output=bool(settings.log_json))
    try:
        validate_settings(settings)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if current_platform()[1] == "x86":
        logger.warning(
            "The x86 architecture is not supported, Hydro will not work properly, "
            "please consider using x86_64."
        )


@cli.command()
def show() -> None:
    """Print the components recorded in .h2o2config."""
    from h2o2.cli.show import run_show

    try:
        run_show()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option(
    "-d", "--dry-run", is_flag=True, help="Print the components detected without saving them."
)
@click.option("--no-config", is_flag=True, help="Run without loading the config file.")
def detect(dry_run: bool, no_config: bool) -> None:
    """Detect the installed components and update .h2o2config."""
    from h2o2.cli.detect import run_detect

    try:
        run_detect(dry_run=dry_run, no_config=no_config)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option("--no-config", is_flag=True, help="Run without loading the config file.")
def install(no_config: bool) -> None:
    """Install every missing component."""
    from h2o2.cli.install import run_install

    try:
        code = run_install(no_config=no_config)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    if code:
        sys.exit(code)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
