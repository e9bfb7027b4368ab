"""Per-component install bodies."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import tarfile
import tempfile
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from urllib.parse import urljoin

import httpx

from h2o2 import detect
from h2o2.components import Com, ComponentInfo, Version
from h2o2.config import Settings, get_settings
from h2o2.errors import ErrorKind, InstallError
from h2o2.install.mirror import select_fastest
from h2o2.install.platforms import (
    MINIO_BINARIES,
    NODEJS_ARCHIVES,
    SANDBOX_BINARIES,
    Platform,
    current_platform,
    is_windows,
)
from h2o2.utils import (
    CommandOutput,
    debug_output,
    maybe_cmd,
    node_env,
    run_async,
    sha256_file,
)

logger = logging.getLogger(__name__)

NODEJS_MIRRORS = ("https://nodejs.org/dist/", "https://npmmirror.com/mirrors/node/")
MINIO_MIRRORS = (
    "http://dl.min.io/server/minio/release/",
    "http://dl.minio.org.cn/server/minio/release/",
)
SANDBOX_MIRRORS = ("https://github.com/", "https://download.fastgit.org/")
SANDBOX_PROBE = "wuxianucw/h2o2/releases/download/dummy/test"
SANDBOX_RELEASES = "criyle/go-judge/releases/download/{version}/"

ClientFactory = Callable[[], httpx.AsyncClient]


def _find_checksum(shasums: str, filename: str) -> str | None:
    for line in shasums.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1] == filename:
            return parts[0].lower()
    return None


def _extract_tarball(archive: Path, target: Path) -> None:
    """Unpack ``archive`` into ``target``, dropping its single top directory."""
    staging = Path(tempfile.mkdtemp(prefix=".extract-", dir=target.parent))
    try:
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(staging, filter="data")
        entries = list(staging.iterdir())
        root = entries[0] if len(entries) == 1 and entries[0].is_dir() else staging
        if target.exists():
            shutil.rmtree(target)
        shutil.move(str(root), str(target))
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def _place_binary(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    if os.name != "nt":
        mode = target.stat().st_mode
        target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class Installer:
    """Install bodies for every component, dispatched by Com."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
        platform: Platform | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client_factory = client_factory or self._default_client
        self._platform = platform or current_platform()
        self._handlers: dict[
            Com, Callable[[Mapping[Com, ComponentInfo]], Awaitable[ComponentInfo]]
        ] = {
            Com.NODEJS: self.install_nodejs,
            Com.MONGODB: self.install_mongodb,
            Com.MINIO: self.install_minio,
            Com.SANDBOX: self.install_sandbox,
            Com.YARN: self.install_yarn,
            Com.PM2: self.install_pm2,
            Com.HYDRO: self.install_hydro,
        }

    @property
    def com_dir(self) -> Path:
        return self._settings.resolved_com_dir()

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.download_timeout_seconds,
            follow_redirects=True,
        )

    async def install(self, com: Com, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        return await self._handlers[com](deps)

    # --- downloads ---

    async def _mirror(self, com: Com, mirrors: Sequence[str], probe: str | None = None) -> str:
        async with self._client_factory() as client:
            mirror = await select_fastest(com, mirrors, probe, client=client)
        if mirror is None:
            raise InstallError(com, ErrorKind.NO_AVAILABLE_SOURCE)
        return mirror

    async def _download(self, com: Com, url: str, dest: Path) -> Path:
        logger.info("Downloading %s", url)
        try:
            async with self._client_factory() as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(dest, "wb") as fh:
                        async for chunk in response.aiter_bytes():
                            await asyncio.to_thread(fh.write, chunk)
        except httpx.HTTPError as exc:
            raise InstallError(com, ErrorKind.TRANSPORT, f"download {url} failed: {exc}") from exc
        except OSError as exc:
            raise InstallError(com, ErrorKind.IO, f"cannot write {dest}: {exc}") from exc
        return dest

    async def _fetch_text(self, com: Com, url: str) -> str:
        try:
            async with self._client_factory() as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise InstallError(com, ErrorKind.TRANSPORT, f"fetch {url} failed: {exc}") from exc
        return response.text

    def _unsupported(self, com: Com) -> InstallError:
        system, machine = self._platform
        return InstallError(
            com, ErrorKind.UNSUPPORTED, f"no release for {system}/{machine}"
        )

    # --- commands ---

    async def _command(
        self,
        com: Com,
        cmd: list[str],
        *,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandOutput:
        shown = " ".join(cmd)
        logger.info("Running `%s`", shown)
        try:
            output = await run_async(
                cmd, cwd=cwd, timeout=self._settings.command_timeout_seconds, env=env
            )
        except FileNotFoundError as exc:
            raise InstallError(com, ErrorKind.COMMAND, f"`{cmd[0]}` not found") from exc
        except TimeoutError as exc:
            raise InstallError(com, ErrorKind.COMMAND, f"`{shown}` timed out") from exc
        except OSError as exc:
            raise InstallError(com, ErrorKind.COMMAND, f"failed to execute `{shown}`") from exc
        if not output.success:
            debug_output(output)
            raise InstallError(
                com, ErrorKind.COMMAND, f"`{shown}` exited with {output.returncode}"
            )
        return output

    async def _verify(
        self,
        com: Com,
        probe: Callable[..., ComponentInfo | None],
        *args: str | None,
        env: dict[str, str] | None = None,
    ) -> ComponentInfo:
        info = await asyncio.to_thread(probe, *args, env=env)
        if info is None:
            raise InstallError(com, ErrorKind.COMMAND, "installed but not runnable")
        return info

    # --- bodies ---

    async def install_nodejs(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        del deps
        suffix = NODEJS_ARCHIVES.get(self._platform)
        if suffix is None:
            raise self._unsupported(Com.NODEJS)
        version = self._settings.nodejs_version.lstrip("v")
        mirror = await self._mirror(Com.NODEJS, NODEJS_MIRRORS)
        base = urljoin(mirror, f"v{version}/")
        filename = f"node-v{version}{suffix}"
        target = self.com_dir / "nodejs"

        with tempfile.TemporaryDirectory() as tmp:
            archive = await self._download(Com.NODEJS, base + filename, Path(tmp) / filename)
            shasums = await self._fetch_text(Com.NODEJS, base + "SHASUMS256.txt")
            expected = _find_checksum(shasums, filename)
            if expected is None:
                raise InstallError(Com.NODEJS, ErrorKind.CHECKSUM, f"no checksum for {filename}")
            actual = await asyncio.to_thread(sha256_file, archive)
            if actual != expected:
                raise InstallError(
                    Com.NODEJS,
                    ErrorKind.CHECKSUM,
                    f"sha256 mismatch for {filename}: {actual} != {expected}",
                )
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                await asyncio.to_thread(_extract_tarball, archive, target)
            except (OSError, tarfile.TarError) as exc:
                raise InstallError(Com.NODEJS, ErrorKind.IO, f"extract failed: {exc}") from exc

        node = target / "bin" / "node"
        return ComponentInfo(Version.valid(version), str(node))

    async def install_mongodb(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        del deps
        raise InstallError(
            Com.MONGODB,
            ErrorKind.UNSUPPORTED,
            "install MongoDB with the system package manager and run `h2o2 detect`",
        )

    async def _install_binary(
        self,
        com: Com,
        url: str,
        name: str,
    ) -> ComponentInfo:
        filename = f"{name}.exe" if is_windows(self._platform) else name
        target = self.com_dir / name / filename
        with tempfile.TemporaryDirectory() as tmp:
            downloaded = await self._download(com, url, Path(tmp) / filename)
            try:
                await asyncio.to_thread(_place_binary, downloaded, target)
            except OSError as exc:
                raise InstallError(com, ErrorKind.IO, f"cannot install {target}: {exc}") from exc
        return ComponentInfo(Version.installed(), str(target))

    async def install_minio(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        del deps
        binary = MINIO_BINARIES.get(self._platform)
        if binary is None:
            raise self._unsupported(Com.MINIO)
        mirror = await self._mirror(Com.MINIO, MINIO_MIRRORS)
        return await self._install_binary(Com.MINIO, urljoin(mirror, binary), "minio")

    async def install_sandbox(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        del deps
        asset = SANDBOX_BINARIES.get(self._platform)
        if asset is None:
            raise self._unsupported(Com.SANDBOX)
        mirror = await self._mirror(Com.SANDBOX, SANDBOX_MIRRORS, SANDBOX_PROBE)
        releases = SANDBOX_RELEASES.format(version=self._settings.sandbox_version)
        url = urljoin(urljoin(mirror, releases), f"executorserver-{asset}")
        return await self._install_binary(Com.SANDBOX, url, "sandbox")

    def _node_sibling(self, node: ComponentInfo, name: str) -> str:
        """Executable installed next to ``node`` by ``npm -g``, or bare ``name``."""
        if node.path and Path(node.path).is_absolute():
            return str(Path(node.path).parent / maybe_cmd(name))
        return maybe_cmd(name)

    def _yarn(self, deps: Mapping[Com, ComponentInfo]) -> str:
        yarn = deps.get(Com.YARN)
        return yarn.path if yarn is not None and yarn.path else maybe_cmd("yarn")

    async def install_yarn(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        node = deps.get(Com.NODEJS, ComponentInfo())
        npm = self._node_sibling(node, "npm")
        env = node_env(node.path)
        await self._command(Com.YARN, [npm, "install", "-g", "yarn"], env=env)
        yarn = self._node_sibling(node, "yarn")
        return await self._verify(Com.YARN, detect.detect_yarn, yarn, env=env)

    async def install_pm2(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        node = deps.get(Com.NODEJS, ComponentInfo())
        npm = self._node_sibling(node, "npm")
        env = node_env(node.path)
        await self._command(Com.PM2, [npm, "install", "-g", "pm2"], env=env)
        pm2 = self._node_sibling(node, "pm2")
        return await self._verify(Com.PM2, detect.detect_pm2, pm2, env=env)

    async def install_hydro(self, deps: Mapping[Com, ComponentInfo]) -> ComponentInfo:
        yarn = self._yarn(deps)
        node = deps.get(Com.NODEJS, ComponentInfo()).path or "node"
        env = node_env(node)
        await self._command(Com.HYDRO, [yarn, "global", "add", "hydrooj"], env=env)
        output = await self._command(Com.HYDRO, [yarn, "global", "dir"], env=env)
        directory = output.stdout.strip() or None
        return await self._verify(
            Com.HYDRO, detect.detect_hydro, directory, node, yarn, env=env
        )
