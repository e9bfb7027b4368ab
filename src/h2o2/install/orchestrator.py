"""Dependency-ordered concurrent installation of all components."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from h2o2.components import DEPENDENCIES, Com, ComponentInfo, Components
from h2o2.errors import ErrorKind, InstallError
from h2o2.install.bus import Failed, ReadinessBus, Ready, Subscription
from h2o2.install.wait import await_all
from h2o2.logging import bind_context

logger = logging.getLogger(__name__)


class ComponentState(Enum):
    UNCHECKED = "unchecked"
    ALREADY_SATISFIED = "already_satisfied"
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Completion:
    com: Com
    info: ComponentInfo | None = None
    error: InstallError | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class InstallBody(Protocol):
    async def install(self, com: Com, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo: ...


SatisfiedFn = Callable[[Com, ComponentInfo], bool]


def is_satisfied(com: Com, info: ComponentInfo) -> bool:
    del com
    return info.is_installed()


class Orchestrator:
    """Runs every pending install concurrently while honoring DEPENDENCIES.

    The orchestrator is the only writer of ``table``. Install bodies get
    snapshots of their dependencies and return a fresh ComponentInfo.
    """

    def __init__(
        self,
        installer: InstallBody,
        *,
        bus: ReadinessBus | None = None,
        dependencies: Mapping[Com, tuple[Com, ...]] | None = None,
    ) -> None:
        self._installer = installer
        self._bus = bus or ReadinessBus()
        self._dependencies = DEPENDENCIES if dependencies is None else dependencies
        self.table: Components = {}
        self.states: dict[Com, ComponentState] = {}

    @property
    def bus(self) -> ReadinessBus:
        return self._bus

    async def run(
        self,
        current: Mapping[Com, ComponentInfo],
        satisfied: SatisfiedFn = is_satisfied,
    ) -> AsyncIterator[Completion]:
        self.table = {com: current.get(com, ComponentInfo()) for com in Com}
        self.states = {com: ComponentState.UNCHECKED for com in Com}

        skipped: list[Completion] = []
        pending: list[Com] = []
        for com in Com:
            info = self.table[com]
            if satisfied(com, info):
                logger.info("%s is already installed, skip.", com)
                self.states[com] = ComponentState.ALREADY_SATISFIED
                self._bus.publish(Ready(com, info))
                skipped.append(Completion(com, info=info, skipped=True))
            else:
                self.states[com] = ComponentState.PENDING
                pending.append(com)

        # Subscribe before anything is scheduled: the bus keeps no history.
        # Dependencies satisfied above were published to nobody, so their
        # snapshots are handed to the task directly instead.
        plans: list[tuple[Com, dict[Com, ComponentInfo], list[Com], Subscription | None]] = []
        for com in pending:
            ready: dict[Com, ComponentInfo] = {}
            outstanding: list[Com] = []
            for dep in self._dependencies.get(com, ()):
                if self.states[dep] is ComponentState.ALREADY_SATISFIED:
                    ready[dep] = self.table[dep]
                else:
                    outstanding.append(dep)
            subscription = self._bus.subscribe() if outstanding else None
            plans.append((com, ready, outstanding, subscription))

        tasks: list[asyncio.Task[Completion]] = []
        try:
            for completion in skipped:
                yield completion

            tasks = [
                asyncio.create_task(
                    self._run_one(com, ready, outstanding, subscription),
                    name=f"install-{com.value}",
                )
                for com, ready, outstanding, subscription in plans
            ]
            for next_done in asyncio.as_completed(tasks):
                completion = await next_done
                self._apply(completion)
                yield completion
        finally:
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)
            for _, _, _, subscription in plans:
                if subscription is not None:
                    subscription.close()
            self._bus.close()

    def _apply(self, completion: Completion) -> None:
        com = completion.com
        if completion.ok and completion.info is not None:
            self.table[com] = completion.info
            self.states[com] = ComponentState.SUCCEEDED
            self._bus.publish(Ready(com, completion.info))
        else:
            self.states[com] = ComponentState.FAILED
            self._bus.publish(Failed(com))

    async def _run_one(
        self,
        com: Com,
        ready: dict[Com, ComponentInfo],
        outstanding: list[Com],
        subscription: Subscription | None,
    ) -> Completion:
        bind_context(com=com.value)
        try:
            deps = dict(ready)
            if subscription is not None:
                logger.info("%s is waiting for %s", com, ", ".join(map(str, outstanding)))
                infos = await await_all(com, outstanding, subscription)
                deps.update(zip(outstanding, infos))
            self.states[com] = ComponentState.RUNNING
            logger.info("Installing %s...", com)
            info = await self._installer.install(com, deps)
        except InstallError as exc:
            logger.error("%s", exc)
            return Completion(com, error=exc)
        except Exception as exc:
            logger.exception("Unexpected failure while installing %s", com)
            return Completion(com, error=InstallError(com, ErrorKind.UNCLASSIFIED, str(exc)))
        finally:
            if subscription is not None:
                subscription.close()
        logger.info("%s installed: %s", com, info.to_show_format())
        return Completion(com, info=info)
