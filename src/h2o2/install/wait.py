"""Block an install task until its dependencies are ready."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from h2o2.components import Com, ComponentInfo
from h2o2.errors import BusClosedError, ErrorKind, InstallError
from h2o2.install.bus import Failed, Subscription

logger = logging.getLogger(__name__)


async def await_all(
    com: Com,
    required: Sequence[Com],
    subscription: Subscription,
) -> list[ComponentInfo]:
    """Wait for a Ready signal for every id in ``required``.

    Returns the dependency infos in ``required`` order. Raises InstallError
    for ``com`` as soon as one outstanding dependency fails, or when the bus
    closes first.
    """
    outstanding = set(required)
    resolved: dict[Com, ComponentInfo] = {}
    while outstanding:
        try:
            signal = await subscription.recv()
        except BusClosedError as exc:
            pending = ", ".join(sorted(c.value for c in outstanding))
            raise InstallError(
                com, ErrorKind.BUS_CLOSED, f"still waiting for {pending}"
            ) from exc
        if signal.com not in outstanding:
            continue
        if isinstance(signal, Failed):
            raise InstallError(com, ErrorKind.DEPENDENCY, dependency=signal.com)
        logger.debug("%s: dependency %s ready", com, signal.com)
        resolved[signal.com] = signal.info
        outstanding.discard(signal.com)
    return [resolved[dep] for dep in required]
