"""Detect command: probes installed components and updates the config file."""

from __future__ import annotations

import logging

import click

from h2o2.cli.show import echo_components
from h2o2.components import Com
from h2o2.detect import detect_components
from h2o2.errors import ConfigError
from h2o2.store import Config, load_config, load_or_default, save_config

logger = logging.getLogger(__name__)


def _fresh_config_keeping_sandbox() -> Config:
    # the sandbox cannot be detected, so its recorded entry must survive
    config = Config()
    try:
        recorded = load_config()
    except ConfigError:
        return config
    config.components[Com.SANDBOX] = recorded.components[Com.SANDBOX]
    return config


def run_detect(*, dry_run: bool, no_config: bool) -> None:
    if no_config:
        logger.info("Skipped config loading.")
        config = _fresh_config_keeping_sandbox()
    else:
        config = load_or_default()

    config.components = detect_components(config.components)

    click.echo("Result:")
    echo_components(config.components)
    if dry_run:
        return

    logger.info("Saving config...")
    save_config(config)
    logger.info("Config saved successfully.")
