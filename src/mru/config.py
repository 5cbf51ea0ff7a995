"""Application configuration contract."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mru.errors import ConfigError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    config_path: str = Field(alias="MRU_CONFIG_PATH", default="~/.config/mru/config.toml")
    log_level: str = Field(alias="MRU_LOG_LEVEL", default="INFO")
    log_json: int = Field(alias="MRU_LOG_JSON", default=0)
    max_workers: int = Field(alias="MRU_MAX_WORKERS", default=1)
    git_timeout_seconds: int = Field(alias="MRU_GIT_TIMEOUT_SECONDS", default=60)
    install_timeout_seconds: int = Field(alias="MRU_INSTALL_TIMEOUT_SECONDS", default=600)
    gh_timeout_seconds: int = Field(alias="MRU_GH_TIMEOUT_SECONDS", default=120)
    branch_prefix: str = Field(alias="MRU_BRANCH_PREFIX", default="mru/update")


def validate_settings(settings: Settings) -> None:
    problems: list[str] = []
    for key, value in (
        ("MRU_MAX_WORKERS", settings.max_workers),
        ("MRU_GIT_TIMEOUT_SECONDS", settings.git_timeout_seconds),
        ("MRU_INSTALL_TIMEOUT_SECONDS", settings.install_timeout_seconds),
        ("MRU_GH_TIMEOUT_SECONDS", settings.gh_timeout_seconds),
    ):
        if int(value) <= 0:
            problems.append(f"{key}(must be > 0)")
    if not settings.branch_prefix.strip().strip("/"):
        problems.append("MRU_BRANCH_PREFIX(non-empty)")
    if problems:
        raise ConfigError(f"invalid configuration: {', '.join(problems)}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
