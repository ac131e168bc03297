"""Bot configuration loaded from a TOML file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .errors import ConfigError

HOME_DIR = Path.home() / ".matrix-bot"
HOME_CONFIG_PATH = HOME_DIR / "config.toml"
DEFAULT_STATE_DIR = HOME_DIR / "state"


class AutoJoinSettings(BaseModel):
    """Backoff policy for accepting invites."""

    enabled: bool = True
    initial_delay: float = Field(default=2.0, gt=0)
    multiplier: float = Field(default=2.0, gt=1)
    max_delay: float = Field(default=3600.0, gt=0)


class MatrixBotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix="MATRIX_BOT__",
        env_nested_delimiter="__",
        str_strip_whitespace=True,
    )

    homeserver: str
    username: str
    password: str | None = None
    access_token: str | None = None
    device_id: str | None = None
    device_name: str = "matrix-bot"
    statedir: Path | None = None
    autojoin: AutoJoinSettings = Field(default_factory=AutoJoinSettings)
    log_level: str = "info"
    log_format: Literal["console", "json"] = "console"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _require_credentials(self) -> MatrixBotSettings:
        if not self.password and not self.access_token:
            raise ValueError("either password or access_token must be set")
        return self

    @property
    def state_dir(self) -> Path:
        """Directory handed to nio for its store."""
        if self.statedir is not None:
            return self.statedir.expanduser()
        return DEFAULT_STATE_DIR


def resolve_config_path(path: str | Path | None) -> Path:
    return Path(path).expanduser() if path else HOME_CONFIG_PATH


def _ensure_config_file(cfg_path: Path) -> None:
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None


def load_settings(path: str | Path | None = None) -> tuple[MatrixBotSettings, Path]:
    """Load settings from a TOML config file.

    Environment variables prefixed with ``MATRIX_BOT__`` override values
    from the file, e.g. ``MATRIX_BOT__AUTOJOIN__MAX_DELAY=600``.
    """
    cfg_path = resolve_config_path(path)
    _ensure_config_file(cfg_path)

    cfg = dict(MatrixBotSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "MatrixBotSettingsBound",
        (MatrixBotSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        return Bound(), cfg_path
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
    except Exception as exc:
        raise ConfigError(f"Failed to load config {cfg_path}: {exc}") from exc
