"""Concurrent component installation: mirror race, readiness bus and orchestrator."""

from h2o2.install.bus import Failed, ReadinessBus, Ready, Subscription
from h2o2.install.installers import Installer
from h2o2.install.mirror import select_fastest
from h2o2.install.orchestrator import Completion, ComponentState, Orchestrator

__all__ = [
    "Completion",
    "ComponentState",
    "Failed",
    "Installer",
    "Orchestrator",
    "ReadinessBus",
    "Ready",
    "Subscription",
    "select_fastest",
]
