"""H2O2 exception hierarchy.

All H2O2-specific exceptions inherit from H2O2Error,
enabling structured error handling and cleaner catch clauses.
"""

from __future__ import annotations

from enum import Enum

from h2o2.components import Com


class H2O2Error(Exception):
    """Base exception for all H2O2 errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ErrorKind(Enum):
    DEPENDENCY = "dependency"
    BUS_CLOSED = "bus_closed"
    NO_AVAILABLE_SOURCE = "no_available_source"
    TRANSPORT = "transport"
    IO = "io"
    CHECKSUM = "checksum"
    COMMAND = "command"
    UNSUPPORTED = "unsupported"
    UNCLASSIFIED = "unclassified"


_RETRYABLE_KINDS = frozenset({ErrorKind.TRANSPORT, ErrorKind.NO_AVAILABLE_SOURCE})


class InstallError(H2O2Error):
    """A component could not be installed."""

    def __init__(
        self,
        com: Com,
        kind: ErrorKind,
        message: str = "",
        *,
        dependency: Com | None = None,
    ) -> None:
        if kind is ErrorKind.DEPENDENCY and dependency is None:
            raise ValueError("dependency errors must name the dependency")
        self.com = com
        self.kind = kind
        self.dependency = dependency
        self.detail = message
        super().__init__(
            f"Failed to install {com}: {self.reason}",
            retryable=kind in _RETRYABLE_KINDS,
        )

    @property
    def reason(self) -> str:
        if self.kind is ErrorKind.DEPENDENCY:
            return f"require {self.dependency}"
        if self.kind is ErrorKind.BUS_CLOSED:
            base = "readiness channel closed"
            return f"{base} ({self.detail})" if self.detail else base
        if self.kind is ErrorKind.NO_AVAILABLE_SOURCE:
            return "no available mirror"
        return self.detail or self.kind.value


class BusClosedError(H2O2Error):
    """The readiness bus was closed while a subscriber was still waiting."""


class ConfigError(H2O2Error):
    """Invalid, missing or unwritable config file."""


class ConfigFileNotFound(ConfigError):
    def __init__(self) -> None:
        super().__init__(
            "Config file does not exist, please run `h2o2 detect` or `h2o2 install` first"
        )


class ConfigReadError(ConfigError):
    def __init__(self) -> None:
        super().__init__("Failed to read config file, consider running `h2o2 detect` to fix")


class ConfigWriteError(ConfigError):
    def __init__(self) -> None:
        super().__init__("Failed to write config file")


class ConfigDecodeError(ConfigError):
    def __init__(self) -> None:
        super().__init__(
            "Failed to deserialize config file, consider running `h2o2 detect` to fix"
        )
