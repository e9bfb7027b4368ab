from __future__ import annotations

import asyncio
from collections.abc import Mapping

import pytest

from h2o2.components import DEPENDENCIES, Com, ComponentInfo, Version, default_components
from h2o2.errors import BusClosedError, ErrorKind, InstallError
from h2o2.install.bus import Failed, ReadinessBus, Ready
from h2o2.install.orchestrator import Completion, ComponentState, Orchestrator


class FakeInstaller:
    """Records calls and the signals observed on the bus before each call."""

    def __init__(
        self,
        bus: ReadinessBus,
        *,
        failures: Mapping[Com, InstallError | Exception] | None = None,
        delays: Mapping[Com, float] | None = None,
    ) -> None:
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.calls: list[Com] = []
        self.deps_seen: dict[Com, dict[Com, ComponentInfo]] = {}
        self.ready_before_call: dict[Com, set[Com]] = {}
        self._observed: set[Com] = set()
        self._watch = bus.subscribe()
        self._watcher = asyncio.create_task(self._observe())

    async def _observe(self) -> None:
        while True:
            signal = await self._watch.recv()
            if isinstance(signal, Ready):
                self._observed.add(signal.com)

    async def install(self, com: Com, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        await asyncio.sleep(0)
        self.calls.append(com)
        self.deps_seen[com] = dict(deps)
        self.ready_before_call[com] = set(self._observed)
        await asyncio.sleep(self.delays.get(com, 0))
        failure = self.failures.get(com)
        if failure is not None:
            raise failure
        return ComponentInfo(Version.valid("1.0.0"), f"/opt/{com.value}")

    async def stop(self) -> None:
        self._watcher.cancel()
        try:
            await self._watcher
        except (asyncio.CancelledError, Exception):
            pass


async def _collect(orchestrator: Orchestrator, table, satisfied=None) -> list[Completion]:
    if satisfied is None:
        return [c async for c in orchestrator.run(table)]
    return [c async for c in orchestrator.run(table, satisfied)]


def _by_com(completions: list[Completion]) -> dict[Com, Completion]:
    return {c.com: c for c in completions}


@pytest.mark.asyncio
async def test_installs_everything_in_dependency_order() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus, delays={Com.NODEJS: 0.02})
    orchestrator = Orchestrator(installer, bus=bus)

    completions = await _collect(orchestrator, default_components())
    await installer.stop()

    assert {c.com for c in completions} == set(Com)
    assert all(c.ok and not c.skipped for c in completions)
    assert sorted(installer.calls, key=lambda c: c.value) == sorted(Com, key=lambda c: c.value)
    for com, deps in DEPENDENCIES.items():
        for dep in deps:
            assert installer.calls.index(dep) < installer.calls.index(com)
            assert dep in installer.ready_before_call[com]
            assert installer.deps_seen[com][dep] == ComponentInfo(
                Version.valid("1.0.0"), f"/opt/{dep.value}"
            )
    assert all(state is ComponentState.SUCCEEDED for state in orchestrator.states.values())
    assert orchestrator.table[Com.HYDRO].path == "/opt/hydro"


@pytest.mark.asyncio
async def test_all_satisfied_schedules_nothing() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus)
    orchestrator = Orchestrator(installer, bus=bus)
    table = {com: ComponentInfo(Version.installed(), f"/usr/bin/{com.value}") for com in Com}

    completions = await _collect(orchestrator, table)
    await installer.stop()

    assert installer.calls == []
    assert [c.com for c in completions] == list(Com)
    assert all(c.skipped and c.ok for c in completions)
    assert all(c.info == table[c.com] for c in completions)
    assert orchestrator.table == table
    assert all(
        state is ComponentState.ALREADY_SATISFIED for state in orchestrator.states.values()
    )


@pytest.mark.asyncio
async def test_chain_short_circuits_on_runtime_failure() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(
        bus,
        failures={Com.NODEJS: InstallError(Com.NODEJS, ErrorKind.TRANSPORT, "reset")},
    )
    orchestrator = Orchestrator(installer, bus=bus)

    results = _by_com(await _collect(orchestrator, default_components()))
    await installer.stop()

    assert results[Com.NODEJS].error is not None
    assert results[Com.NODEJS].error.kind is ErrorKind.TRANSPORT

    yarn = results[Com.YARN].error
    assert yarn is not None
    assert yarn.kind is ErrorKind.DEPENDENCY
    assert yarn.dependency is Com.NODEJS
    pm2 = results[Com.PM2].error
    assert pm2 is not None and pm2.dependency is Com.NODEJS

    hydro = results[Com.HYDRO].error
    assert hydro is not None
    assert hydro.kind is ErrorKind.DEPENDENCY
    assert hydro.dependency in (Com.NODEJS, Com.YARN)

    assert Com.YARN not in installer.calls
    assert Com.PM2 not in installer.calls
    assert Com.HYDRO not in installer.calls
    for com in (Com.MONGODB, Com.MINIO, Com.SANDBOX):
        assert results[com].ok
    assert orchestrator.states[Com.HYDRO] is ComponentState.FAILED
    assert orchestrator.table[Com.NODEJS] == ComponentInfo()


@pytest.mark.asyncio
async def test_package_manager_failure_stops_application_only() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(
        bus,
        failures={Com.YARN: InstallError(Com.YARN, ErrorKind.COMMAND, "npm exited with 1")},
    )
    orchestrator = Orchestrator(installer, bus=bus)

    results = _by_com(await _collect(orchestrator, default_components()))
    await installer.stop()

    assert results[Com.NODEJS].ok
    assert results[Com.PM2].ok
    hydro = results[Com.HYDRO].error
    assert hydro is not None and hydro.dependency is Com.YARN
    assert Com.HYDRO not in installer.calls


@pytest.mark.asyncio
async def test_satisfied_dependency_snapshot_reaches_dependent() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus)
    orchestrator = Orchestrator(installer, bus=bus)
    node = ComponentInfo(Version.valid("14.16.1"), "/usr/local/bin/node")
    table = default_components()
    table[Com.NODEJS] = node

    results = _by_com(await _collect(orchestrator, table))
    await installer.stop()

    assert results[Com.NODEJS].skipped
    assert Com.NODEJS not in installer.calls
    assert installer.deps_seen[Com.YARN] == {Com.NODEJS: node}
    assert installer.deps_seen[Com.HYDRO][Com.NODEJS] == node
    assert results[Com.HYDRO].ok


@pytest.mark.asyncio
async def test_unexpected_exception_is_reported_and_published() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus, failures={Com.NODEJS: RuntimeError("kaboom")})
    orchestrator = Orchestrator(installer, bus=bus)

    results = _by_com(await _collect(orchestrator, default_components()))
    await installer.stop()

    error = results[Com.NODEJS].error
    assert error is not None
    assert error.kind is ErrorKind.UNCLASSIFIED
    assert "kaboom" in str(error)
    assert results[Com.YARN].error is not None


@pytest.mark.asyncio
async def test_outcomes_are_published_once_per_component() -> None:
    bus = ReadinessBus()
    watcher = bus.subscribe()
    installer = FakeInstaller(
        bus, failures={Com.MONGODB: InstallError(Com.MONGODB, ErrorKind.UNSUPPORTED)}
    )
    orchestrator = Orchestrator(installer, bus=bus)
    await _collect(orchestrator, default_components())
    await installer.stop()

    signals = []
    with pytest.raises(BusClosedError):
        while True:
            signals.append(await watcher.recv())
    assert sorted(s.com.value for s in signals) == sorted(c.value for c in Com)
    assert Failed(Com.MONGODB) in signals


@pytest.mark.asyncio
async def test_custom_predicate_forces_reinstall() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus)
    orchestrator = Orchestrator(installer, bus=bus)
    table = {com: ComponentInfo(Version.installed()) for com in Com}

    def satisfied(com: Com, info: ComponentInfo) -> bool:
        return com is not Com.SANDBOX and info.is_installed()

    completions = await _collect(orchestrator, table, satisfied)
    await installer.stop()

    assert installer.calls == [Com.SANDBOX]
    assert orchestrator.table[Com.SANDBOX].path == "/opt/sandbox"
    assert len(completions) == len(Com)


@pytest.mark.asyncio
async def test_bus_is_closed_after_run() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus)
    orchestrator = Orchestrator(installer, bus=bus)
    await _collect(orchestrator, default_components())
    await installer.stop()
    assert bus.closed


@pytest.mark.asyncio
async def test_early_close_cancels_and_awaits_every_task() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus, delays={com: 5.0 for com in Com if com is not Com.MINIO})
    orchestrator = Orchestrator(installer, bus=bus)

    stream = orchestrator.run(default_components())
    first = await anext(stream)
    await stream.aclose()
    await installer.stop()

    assert first.com is Com.MINIO
    tasks = [t for t in asyncio.all_tasks() if t.get_name().startswith("install-")]
    assert tasks == []
    assert bus.closed
    assert bus.receiver_count == 0


@pytest.mark.asyncio
async def test_early_close_while_reporting_skipped_components() -> None:
    bus = ReadinessBus()
    installer = FakeInstaller(bus)
    orchestrator = Orchestrator(installer, bus=bus)
    table = default_components()
    table[Com.MONGODB] = ComponentInfo(Version.installed(), "/usr/bin/mongod")

    stream = orchestrator.run(table)
    first = await anext(stream)
    await stream.aclose()
    await installer.stop()

    assert first.com is Com.MONGODB and first.skipped
    assert installer.calls == []
    assert bus.closed
    assert bus.receiver_count == 0
