"""Detect installed components by asking each executable for its version."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from packaging.version import InvalidVersion
from packaging.version import Version as SemVer

from h2o2.components import Com, ComponentInfo, Components, Version
from h2o2.utils import CommandOutput, check_version, debug_output, maybe_cmd, node_env, run

logger = logging.getLogger(__name__)

HYDRO_VERSION_SCRIPT = "console.log(require('hydrooj/package.json').version)"
_DETECT_TIMEOUT_SECONDS = 30.0


def _execute(
    com: Com,
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> CommandOutput | None:
    shown = " ".join(cmd)
    try:
        output = run(cmd, cwd=cwd, timeout=_DETECT_TIMEOUT_SECONDS, env=env)
    except FileNotFoundError:
        logger.error("%s is not found.", com)
        return None
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.error("Failed to execute `%s`.", shown)
        logger.debug("%r", exc)
        return None
    if not output.success:
        logger.error(
            "%s exited abnormally and the version could not be recognized. (%s)",
            com,
            output.returncode,
        )
        debug_output(output)
        return None
    return output


def _parse(com: Com, text: str, output: CommandOutput) -> SemVer | None:
    try:
        version = SemVer(text.strip())
    except InvalidVersion as exc:
        logger.error("Failed to parse version.")
        logger.debug("%r", exc)
        debug_output(output)
        return None
    logger.info("Found: %s %s", com, version)
    return version


def _strip_prefix(com: Com, text: str, prefix: str, output: CommandOutput) -> str | None:
    if len(text) <= len(prefix) or not text.startswith(prefix):
        logger.error(
            "The output of %s is malformed, and it seems to be running abnormally.", com
        )
        debug_output(output)
        return None
    return text[len(prefix):]


def detect_nodejs(path: str | None = None) -> ComponentInfo | None:
    executable = path or "node"
    output = _execute(Com.NODEJS, [executable, "-v"])
    if output is None:
        return None
    # v14.16.1
    text = _strip_prefix(Com.NODEJS, output.stdout.strip(), "v", output)
    version = _parse(Com.NODEJS, text, output) if text is not None else None
    if version is None:
        return None
    check_version(Com.NODEJS, version, warn=True)
    return ComponentInfo(Version.valid(version), executable)


def detect_mongodb(path: str | None = None) -> ComponentInfo | None:
    executable = path or "mongod"
    output = _execute(Com.MONGODB, [executable, "--version"])
    if output is None:
        return None
    # first line: db version v4.4.5
    lines = output.stdout.splitlines()
    first = lines[0].strip() if lines else ""
    text = _strip_prefix(Com.MONGODB, first, "db version v", output)
    version = _parse(Com.MONGODB, text, output) if text is not None else None
    if version is None:
        return None
    check_version(Com.MONGODB, version, warn=True)
    return ComponentInfo(Version.valid(version), executable)


def detect_minio(path: str | None = None) -> ComponentInfo | None:
    executable = path or "minio"
    output = _execute(Com.MINIO, [executable, "-v"])
    if output is None:
        return None
    # minio version RELEASE.2021-04-06T23-11-00Z, not a semantic version
    if _strip_prefix(Com.MINIO, output.stdout.strip(), "minio version ", output) is None:
        return None
    logger.info("Found: %s installed", Com.MINIO)
    return ComponentInfo(Version.installed(), executable)


def detect_yarn(
    path: str | None = None, *, env: dict[str, str] | None = None
) -> ComponentInfo | None:
    executable = path or maybe_cmd("yarn")
    output = _execute(Com.YARN, [executable, "-v"], env=env)
    if output is None:
        return None
    version = _parse(Com.YARN, output.stdout, output)
    if version is None:
        return None
    return ComponentInfo(Version.valid(version), executable)


def detect_pm2(
    path: str | None = None, *, env: dict[str, str] | None = None
) -> ComponentInfo | None:
    executable = path or maybe_cmd("pm2")
    output = _execute(Com.PM2, [executable, "-v", "-s", "--no-daemon"], env=env)
    if output is None:
        return None
    version = _parse(Com.PM2, output.stdout, output)
    if version is None:
        return None
    return ComponentInfo(Version.valid(version), executable)


def yarn_global_dir(yarn: str, *, env: dict[str, str] | None = None) -> str | None:
    try:
        output = run([yarn, "global", "dir"], timeout=_DETECT_TIMEOUT_SECONDS, env=env)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.error("Failed to get the result of `%s global dir`", yarn)
        logger.debug("%r", exc)
        return None
    text = output.stdout.strip()
    return text or None


def detect_hydro(
    path: str | None,
    node: str,
    yarn: str,
    *,
    env: dict[str, str] | None = None,
) -> ComponentInfo | None:
    directory = path or yarn_global_dir(yarn, env=env)
    if directory is None or not Path(directory).is_dir():
        logger.error("%s is not found.", Com.HYDRO)
        return None
    output = _execute(
        Com.HYDRO, [node, "-e", HYDRO_VERSION_SCRIPT], cwd=directory, env=env
    )
    if output is None:
        return None
    version = _parse(Com.HYDRO, output.stdout, output)
    if version is None:
        return None
    return ComponentInfo(Version.valid(version), directory)


def detect_components(current: Components) -> Components:
    """Probe every component and return an updated copy of ``current``.

    Entries that cannot be detected keep their recorded value.
    """
    table = dict(current)

    logger.info("Detecting %s...", Com.NODEJS)
    nodejs = detect_nodejs(table[Com.NODEJS].path)
    if nodejs is not None:
        table[Com.NODEJS] = nodejs

    logger.info("Detecting %s...", Com.MONGODB)
    mongodb = detect_mongodb(table[Com.MONGODB].path)
    if mongodb is not None:
        table[Com.MONGODB] = mongodb

    logger.info("Detecting %s...", Com.MINIO)
    minio = detect_minio(table[Com.MINIO].path)
    if minio is not None:
        table[Com.MINIO] = minio

    logger.info("Cannot detect %s, skipped.", Com.SANDBOX)

    yarn = None
    env = node_env(nodejs.path) if nodejs is not None else None
    if nodejs is not None:
        logger.info("Detecting %s...", Com.YARN)
        yarn = detect_yarn(table[Com.YARN].path, env=env)
        if yarn is not None:
            table[Com.YARN] = yarn

        logger.info("Detecting %s...", Com.PM2)
        pm2 = detect_pm2(table[Com.PM2].path, env=env)
        if pm2 is not None:
            table[Com.PM2] = pm2
    else:
        logger.warning(
            "Skip %s and %s (which depend on Node.js) due to Node.js not found.",
            Com.YARN,
            Com.PM2,
        )

    if nodejs is not None and yarn is not None:
        logger.info("Detecting %s...", Com.HYDRO)
        hydro = detect_hydro(
            table[Com.HYDRO].path,
            nodejs.path or "node",
            yarn.path or maybe_cmd("yarn"),
            env=env,
        )
        if hydro is not None:
            table[Com.HYDRO] = hydro
    else:
        logger.warning("Skip %s (which depends on Yarn) due to Yarn not found.", Com.HYDRO)

    return table
