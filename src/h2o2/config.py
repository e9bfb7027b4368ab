"""Application configuration contract."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = Field(alias="H2O2_LOG_LEVEL", default="INFO")
    log_json: int = Field(alias="H2O2_LOG_JSON", default=0)
    config_path: str = Field(alias="H2O2_CONFIG_PATH", default="~/.h2o2config")
    com_dir: str = Field(alias="H2O2_COM_DIR", default="~/.h2o2/components")
    probe_timeout_seconds: float = Field(alias="H2O2_PROBE_TIMEOUT_SECONDS", default=5.0)
    download_timeout_seconds: float = Field(
        alias="H2O2_DOWNLOAD_TIMEOUT_SECONDS", default=600.0
    )
    command_timeout_seconds: float = Field(alias="H2O2_COMMAND_TIMEOUT_SECONDS", default=900.0)

    nodejs_version: str = Field(alias="H2O2_NODEJS_VERSION", default="14.16.1")
    sandbox_version: str = Field(alias="H2O2_SANDBOX_VERSION", default="v1.2.4")

    def resolved_config_path(self) -> Path:
        return Path(self.config_path).expanduser()

    def resolved_com_dir(self) -> Path:
        return Path(self.com_dir).expanduser()


def validate_settings(settings: Settings) -> None:
    invalid: list[str] = []
    timeouts = {
        "H2O2_PROBE_TIMEOUT_SECONDS": settings.probe_timeout_seconds,
        "H2O2_DOWNLOAD_TIMEOUT_SECONDS": settings.download_timeout_seconds,
        "H2O2_COMMAND_TIMEOUT_SECONDS": settings.command_timeout_seconds,
    }
    for key, value in timeouts.items():
        if value <= 0:
            invalid.append(f"{key}(must be > 0)")
    if not settings.nodejs_version.strip():
        invalid.append("H2O2_NODEJS_VERSION")
    if not settings.sandbox_version.strip():
        invalid.append("H2O2_SANDBOX_VERSION")

    if invalid:
        keys = ", ".join(sorted(invalid))
        raise ValueError(f"invalid configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
