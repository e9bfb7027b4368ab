"""Shell, checksum and version helpers shared by detection and installers."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from packaging.specifiers import SpecifierSet
from packaging.version import Version as SemVer

from h2o2.components import Com

logger = logging.getLogger(__name__)

VERSION_REQUIREMENTS: dict[Com, SpecifierSet] = {
    Com.NODEJS: SpecifierSet(">=14"),
    Com.MONGODB: SpecifierSet(">=4"),
}


@dataclass(frozen=True, slots=True)
class CommandOutput:
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def maybe_cmd(name: str) -> str:
    """npm-installed shims are ``.cmd`` files on Windows."""
    return f"{name}.cmd" if sys.platform == "win32" else name


def node_env(node: str | None) -> dict[str, str] | None:
    """Environment with the directory of an absolute ``node`` path first on PATH.

    npm, yarn and pm2 are `#!/usr/bin/env node` scripts, so they only run when
    the interpreter next to them can be found. Returns None (inherit) otherwise.
    """
    if not node or not Path(node).is_absolute():
        return None
    env = os.environ.copy()
    current = env.get("PATH", "")
    directory = str(Path(node).parent)
    env["PATH"] = os.pathsep.join([directory, current]) if current else directory
    return env


def run(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> CommandOutput:
    """Run ``cmd`` and capture its output; raises OSError if it cannot start."""
    proc = subprocess.run(
        cmd,
        cwd=cwd,
        env=env if env is not None else os.environ.copy(),
        text=True,
        capture_output=True,
        timeout=timeout,
        check=False,
    )
    return CommandOutput(proc.returncode, proc.stdout or "", proc.stderr or "")


async def run_async(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> CommandOutput:
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd is not None else None,
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return CommandOutput(
        proc.returncode if proc.returncode is not None else -1,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


def debug_output(output: CommandOutput) -> None:
    logger.debug("exit status: %s", output.returncode)
    logger.debug("stdout:\n%s", output.stdout)
    logger.debug("stderr:\n%s", output.stderr)


def sha256_file(path: Path | str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 64), b""):
            digest.update(chunk)
    return digest.hexdigest()


def check_version(com: Com, version: SemVer, *, warn: bool = False) -> bool:
    """Whether ``version`` meets what Hydro needs from ``com``."""
    requirement = VERSION_REQUIREMENTS.get(com)
    if requirement is None:
        return True
    ok = requirement.contains(version, prereleases=True)
    if not ok and warn:
        logger.warning(
            "Hydro requires `%s %s`, the current version may not work properly.",
            com,
            requirement,
        )
    return ok
