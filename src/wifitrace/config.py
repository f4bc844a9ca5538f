"""Application configuration via environment variables, config.json and .env file."""

import json
from pathlib import Path
from typing import Annotated

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsError
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
)

from wifitrace.errors import ConfigInvalid

# Paths to config.json and .env (patch in tests to use tmp_path)
_CONFIG_FILE: Path = Path("config.json")
_ENV_FILE: Path = Path(".env")


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "WIFITRACE_",
        "env_file_encoding": "utf-8",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # config.json uses bare field names (instant_scan, scan_duration, ...)
        return (
            init_settings,
            env_settings,
            JsonConfigSettingsSource(settings_cls, json_file=_CONFIG_FILE),
            DotEnvSettingsSource(
                settings_cls,
                env_file=_ENV_FILE,
                env_file_encoding="utf-8",
            ),
            file_secret_settings,
        )

    # Run mode
    instant_scan: bool = False
    start_after_duration: int = 0  # countdown before a delayed scan, seconds
    scan_duration: int = 60  # length of a delayed scan, seconds

    # Sampling
    sample_interval: int = 5  # seconds between snapshots
    silence_threshold: int = 5  # gap (seconds) after which a device has left
    scan_timeout: float = 30.0  # upper bound for one snapshot acquisition

    # Scan backends, run together each tick
    # Env: WIFITRACE_SCANNER_MODES="nmcli,glinet"
    scanner_modes: Annotated[list[str], NoDecode] = ["nmcli"]

    # Local nmcli
    wifi_interface: str | None = None

    # GL.iNet router (remote iw scan over SSH)
    glinet_host: str | None = None
    glinet_username: str = "root"
    glinet_password: str | None = None
    glinet_wifi_interface: str = "wlan0"

    # Monitor mode beacon capture
    monitor_interface: str | None = None
    monitor_dwell: float = 2.0

    # Vendor lookup table (prefix in column 1, name in column 2)
    oui_csv_path: Path | None = None

    # Reports
    output_dir: Path = Path(".")

    # Scan history
    history_enabled: bool = True
    db_path: Path = Path("./data/wifitrace.db")

    # Logging
    log_level: str = "info"

    # History API server
    host: str = "127.0.0.1"
    port: int = 8000

    @field_validator("scanner_modes", mode="before")
    @classmethod
    def parse_scanner_modes(cls, v: object) -> list[str]:
        """Parse comma-separated string or list."""
        if isinstance(v, str):
            return [s.strip().lower() for s in v.split(",") if s.strip()]
        if isinstance(v, list):
            return [str(s).strip().lower() for s in v if s]
        return []

    @field_validator("scan_duration", "sample_interval", "silence_threshold", "scan_timeout")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("start_after_duration")
    @classmethod
    def must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v


def load_config(**overrides: object) -> Settings:
    """Load configuration (init kwargs > env > config.json > .env).

    Raises:
        ConfigInvalid: If any source is malformed or a value is out of range.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid configuration: {e}") from e
    except (SettingsError, json.JSONDecodeError) as e:
        raise ConfigInvalid(f"Unreadable configuration source: {e}") from e
