"""Install command: installs every missing component in dependency order."""

from __future__ import annotations

import asyncio
import logging

import click

from h2o2.cli.show import echo_components
from h2o2.components import Com, ComponentInfo
from h2o2.detect import detect_components
from h2o2.install.installers import Installer
from h2o2.install.orchestrator import (
    Completion,
    InstallBody,
    Orchestrator,
    SatisfiedFn,
    is_satisfied,
)
from h2o2.store import Config, load_or_default, save_config
from h2o2.utils import check_version

logger = logging.getLogger(__name__)


def _warn_existing_nodejs(config: Config) -> None:
    nodejs = config.components[Com.NODEJS]
    version = nodejs.semver()
    if version is None:
        return
    check_version(Com.NODEJS, version, warn=True)
    logger.info(
        "If you need H2O2 to install a recommended version of Node.js, "
        "please delete the existing version in the system and run H2O2 again."
    )


async def install_all(
    config: Config,
    *,
    installer: InstallBody | None = None,
    satisfied: SatisfiedFn = is_satisfied,
) -> list[Completion]:
    """Run one install batch and store the resulting table back into ``config``."""
    orchestrator = Orchestrator(installer or Installer())
    completions: list[Completion] = []
    async for completion in orchestrator.run(config.components, satisfied):
        completions.append(completion)
        if completion.skipped:
            continue
        if completion.ok:
            logger.info("[%s] done", completion.com)
        else:
            logger.error("[%s] %s", completion.com, completion.error)
    config.components = orchestrator.table
    return completions


def run_install(*, no_config: bool) -> int:
    if no_config:
        logger.info("Skipped config loading.")
        config = Config()
        config.components = detect_components(config.components)
        # the sandbox cannot be detected, so without a config it is always reinstalled
        config.components[Com.SANDBOX] = ComponentInfo()
    else:
        config = load_or_default()

    if is_satisfied(Com.NODEJS, config.components[Com.NODEJS]):
        _warn_existing_nodejs(config)

    completions = asyncio.run(install_all(config))

    logger.info("Saving config...")
    save_config(config)
    logger.info("Config saved successfully.")

    click.echo("Result:")
    echo_components(config.components)
    failed = [c for c in completions if not c.ok]
    if failed:
        for completion in failed:
            click.echo(str(completion.error), err=True)
        return 1
    return 0
