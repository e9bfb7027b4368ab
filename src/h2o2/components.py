"""Component identifiers, dependency table and recorded component info."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from packaging.version import InvalidVersion
from packaging.version import Version as SemVer


class Com(Enum):
    """The seven components a Hydro host needs."""

    NODEJS = "nodejs"
    MONGODB = "mongodb"
    MINIO = "minio"
    SANDBOX = "sandbox"
    YARN = "yarn"
    PM2 = "pm2"
    HYDRO = "hydro"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    def __str__(self) -> str:
        return self.display_name


_DISPLAY_NAMES: dict[Com, str] = {
    Com.NODEJS: "Node.js",
    Com.MONGODB: "MongoDB",
    Com.MINIO: "MinIO",
    Com.SANDBOX: "sandbox",
    Com.YARN: "Yarn",
    Com.PM2: "PM2",
    Com.HYDRO: "Hydro",
}

DEPENDENCIES: dict[Com, tuple[Com, ...]] = {
    Com.NODEJS: (),
    Com.MONGODB: (),
    Com.MINIO: (),
    Com.SANDBOX: (),
    Com.YARN: (Com.NODEJS,),
    Com.PM2: (Com.NODEJS,),
    Com.HYDRO: (Com.NODEJS, Com.YARN),
}


def topological_order(table: dict[Com, tuple[Com, ...]] | None = None) -> list[Com]:
    """Return components with every dependency before its dependents.

    Raises ValueError when the table contains a cycle.
    """
    graph = DEPENDENCIES if table is None else table
    order: list[Com] = []
    state: dict[Com, int] = {}

    def _visit(com: Com, trail: tuple[Com, ...]) -> None:
        mark = state.get(com, 0)
        if mark == 2:
            return
        if mark == 1:
            cycle = " -> ".join(c.value for c in (*trail, com))
            raise ValueError(f"dependency cycle: {cycle}")
        state[com] = 1
        for dep in graph.get(com, ()):
            _visit(dep, (*trail, com))
        state[com] = 2
        order.append(com)

    for com in Com:
        _visit(com, ())
    return order


class VersionKind(Enum):
    UNKNOWN = "unknown"
    INSTALLED = "installed"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class Version:
    """Recorded version of a component.

    Exactly one of four shapes: unknown, installed without a discoverable
    number, a valid semantic version, or unparsable raw text.
    """

    kind: VersionKind = VersionKind.UNKNOWN
    value: SemVer | None = None
    raw: str = ""

    @classmethod
    def unknown(cls) -> Version:
        return cls()

    @classmethod
    def installed(cls) -> Version:
        return cls(kind=VersionKind.INSTALLED)

    @classmethod
    def valid(cls, value: SemVer | str) -> Version:
        if isinstance(value, str):
            value = SemVer(value)
        return cls(kind=VersionKind.VALID, value=value)

    @classmethod
    def invalid(cls, raw: str) -> Version:
        return cls(kind=VersionKind.INVALID, raw=raw)

    @classmethod
    def parse(cls, text: str) -> Version:
        text = text.strip()
        if text == "unknown":
            return cls.unknown()
        if text == "installed":
            return cls.installed()
        try:
            return cls.valid(SemVer(text))
        except InvalidVersion:
            return cls.invalid(text)

    @property
    def is_unknown(self) -> bool:
        return self.kind is VersionKind.UNKNOWN

    @property
    def is_installed(self) -> bool:
        return self.kind is VersionKind.INSTALLED

    @property
    def is_valid(self) -> bool:
        return self.kind is VersionKind.VALID

    @property
    def is_invalid(self) -> bool:
        return self.kind is VersionKind.INVALID

    def __str__(self) -> str:
        if self.kind is VersionKind.VALID:
            return str(self.value)
        if self.kind is VersionKind.INVALID:
            return self.raw
        return self.kind.value


@dataclass(frozen=True, slots=True)
class ComponentInfo:
    version: Version = field(default_factory=Version.unknown)
    path: str | None = None

    def is_installed(self) -> bool:
        return self.version.is_installed or self.version.is_valid

    def semver(self) -> SemVer | None:
        return self.version.value if self.version.is_valid else None

    def to_show_format(self) -> str:
        suffix = f" @ {self.path}" if self.path else ""
        return f"{self.version}{suffix}"

    def to_dict(self) -> dict[str, str | None]:
        return {"version": str(self.version), "path": self.path}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> ComponentInfo:
        raw_version = data.get("version")
        raw_path = data.get("path")
        version = Version.parse(raw_version) if isinstance(raw_version, str) else Version()
        path = raw_path if isinstance(raw_path, str) and raw_path else None
        return cls(version=version, path=path)


Components = dict[Com, ComponentInfo]


def default_components() -> Components:
    return {com: ComponentInfo() for com in Com}
