"""Configuration management for the wallet tracker."""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

from ..errors import ConfigurationError
from ..utils.constants import DEFAULT_BASE_MINTS

DEFAULT_CONFIG_FILE = Path("config/tracker.toml")
CONFIG_FILE_ENV_VAR = "TRACKER_CONFIG_FILE"
PROFILE_ENV_VAR = "TRACKER_MODE"
WALLETS_ENV_VAR = "TRACKED_WALLETS"
BASE_PROFILE = "default"


def _merge_tables(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _merge_tables(current, value)
        merged[key] = value
    return merged


class ProfileFileSource:
    """Settings source backed by a TOML file of named profiles.

    ``[default]`` always applies. The profile named by ``TRACKER_MODE`` (or
    ``default.mode.profile``) is layered on top of it. A missing file
    contributes nothing.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or self.locate()

    @staticmethod
    def locate() -> Path:
        configured = Path(os.getenv(CONFIG_FILE_ENV_VAR) or DEFAULT_CONFIG_FILE)
        return configured if configured.is_absolute() else Path.cwd() / configured

    def read(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}
        with self.path.open("rb") as handle:
            document = tomllib.load(handle)
        base = document.get(BASE_PROFILE)
        if not isinstance(base, dict):
            # A file without profiles is one flat table.
            base, document = document, {}
        profile = os.getenv(PROFILE_ENV_VAR) or (base.get("mode") or {}).get("profile")
        profile = str(profile or BASE_PROFILE).lower()
        overlay = document.get(profile) if profile != BASE_PROFILE else None
        values = _merge_tables(base, overlay) if isinstance(overlay, dict) else dict(base)
        mode = dict(values.get("mode") or {})
        if isinstance(overlay, dict):
            mode["profile"] = profile
        mode.setdefault("config_file", str(self.path))
        values["mode"] = mode
        return values

    def __call__(self) -> Dict[str, Any]:
        return self.read()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class ModeConfig(BaseModel):
    """Which configuration profile is active and where it came from."""

    profile: str = Field(default="default")
    config_file: Optional[Path] = None


class TrackerConfig(BaseModel):
    """Classification and accounting thresholds."""

    base_mints: List[str] = Field(default_factory=lambda: list(DEFAULT_BASE_MINTS))
    noise_floor: float = Field(default=0.0001, ge=0.0)
    dust_threshold: float = Field(default=0.001, ge=0.0)
    min_meaningful_pnl_usd: float = Field(default=0.01, ge=0.0)
    min_swap_value_usd: float = Field(default=1.0, ge=0.0)

    @field_validator("base_mints", mode="before")
    @classmethod
    def _split_base_mints(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _split_csv(value)
        return value

    @field_validator("base_mints")
    @classmethod
    def _unique_base_mints(cls, value: List[str]) -> List[str]:
        unique = list(dict.fromkeys(mint.strip() for mint in value if mint.strip()))
        if not unique:
            raise ValueError("at least one base mint is required")
        return unique


class PricingConfig(BaseModel):
    """Jupiter token registry / price API settings."""

    base_url: str = Field(default="https://lite-api.jup.ag/ultra/v1")
    authenticated_base_url: str = Field(default="https://api.jup.ag/ultra/v1")
    api_key: Optional[str] = None
    http_timeout: float = Field(default=5.0, gt=0.0, le=30.0)
    price_ttl_seconds: int = Field(default=60, ge=0)
    metadata_ttl_seconds: int = Field(default=3_600, ge=0)
    failed_lookup_ttl_seconds: int = Field(default=300, ge=0)
    max_retry_attempts: int = Field(default=2, ge=1, le=5)


class RPCConfig(BaseModel):
    """Solana RPC endpoints used by the transaction stream."""

    http_url: str = Field(default="https://api.mainnet-beta.solana.com")
    ws_url: str = Field(default="wss://api.mainnet-beta.solana.com")
    commitment: str = Field(default="confirmed")
    request_timeout: float = Field(default=15.0, ge=1.0, le=60.0)
    fetch_delay_seconds: float = Field(default=1.0, ge=0.0)
    max_reconnect_attempts: int = Field(default=10, ge=1)
    reconnect_delay_seconds: float = Field(default=5.0, ge=0.0)


class IngestionConfig(BaseModel):
    """Which wallets to watch and how much to buffer."""

    tracked_wallets: List[str] = Field(default_factory=list)
    queue_capacity: int = Field(default=1_024, ge=1)
    max_seen_signatures: int = Field(default=5_000, ge=1)

    @field_validator("tracked_wallets", mode="before")
    @classmethod
    def _split_wallets(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _split_csv(value)
        return value


class ReportingConfig(BaseModel):
    """Console and session-log presentation."""

    trades_between_dashboards: int = Field(default=10, ge=1)
    top_positions: int = Field(default=5, ge=1)
    recent_trades: int = Field(default=10, ge=1)
    session_log_enabled: bool = True
    session_log_dir: Path = Field(default=Path("./logs"))


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class DashboardConfig(BaseModel):
    """Read-only HTTP dashboard."""

    enabled: bool = False
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8088, ge=1, le=65535)
    read_only_token: Optional[str] = None


class AppConfig(BaseSettings):
    """Every configuration section, resolved from init args, env, .env and the profile file."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    # Comma-separated shorthand for ingestion.tracked_wallets, read from env or .env.
    tracked_wallets: Optional[str] = Field(default=None, validation_alias="TRACKED_WALLETS", exclude=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over the profile file.
        return init_settings, env_settings, dotenv_settings, ProfileFileSource(), file_secret_settings

    @model_validator(mode="after")
    def _apply_wallet_shorthand(self) -> "AppConfig":
        if self.tracked_wallets and not self.ingestion.tracked_wallets:
            self.ingestion.tracked_wallets = _split_csv(self.tracked_wallets)
        return self


def validate_tracked_wallets(config: AppConfig) -> List[str]:
    """Return the tracked wallets, raising when none (or a malformed one) is configured."""

    wallets = list(dict.fromkeys(config.ingestion.tracked_wallets))
    if not wallets:
        raise ConfigurationError(
            f"No wallets to track. Set {WALLETS_ENV_VAR} or ingestion.tracked_wallets."
        )
    invalid: List[str] = []
    for wallet in wallets:
        try:
            Pubkey.from_string(wallet)
        except ValueError:
            invalid.append(wallet)
    if invalid:
        raise ConfigurationError(f"Invalid wallet address(es): {', '.join(invalid)}")
    return wallets


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Load the configuration once per process; tests call ``cache_clear``."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "DashboardConfig",
    "IngestionConfig",
    "ModeConfig",
    "MonitoringConfig",
    "PricingConfig",
    "ProfileFileSource",
    "RPCConfig",
    "ReportingConfig",
    "TrackerConfig",
    "get_app_config",
    "validate_tracked_wallets",
]
