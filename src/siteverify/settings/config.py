"""Configuration loader for siteverify using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (SITEVERIFY_* with __ for nesting)
  3. settings.local.toml
  4. settings.{env}.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from siteverify.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("SITEVERIFY_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "SITEVERIFY_ENV"
DEFAULT_ENV = "local"

PROVIDER_BROWSERBASE = "browserbase"
PROVIDER_LOCAL = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ProviderSettings(BaseSettings):
    """Remote session provider (Browserbase) credentials and endpoints."""

    model_config = SettingsConfigDict(env_prefix="SITEVERIFY_PROVIDER__")

    kind: str = PROVIDER_BROWSERBASE  # browserbase | local
    api_key: str = ""
    project_id: str = ""
    api_base: str = "https://api.browserbase.com"
    inspect_base: str = "https://www.browserbase.com/sessions"
    request_timeout_sec: float = 30.0


class SessionSettings(BaseSettings):
    """Capability flags requested for every browser session."""

    model_config = SettingsConfigDict(env_prefix="SITEVERIFY_SESSION__")

    use_proxy: bool = True
    stealth: Literal["off", "basic", "advanced"] = "advanced"
    acquire_timeout_ms: int = 120_000
    viewport_width: int = 1280
    viewport_height: int = 800

    # Local provider only
    headless: bool = True
    proxy_server: str = ""

    @field_validator("stealth", mode="before")
    @classmethod
    def _stealth_from_bool(cls, value: Any) -> Any:
        """Accept a boolean switch: true means advanced, false means off."""
        if isinstance(value, bool):
            return "advanced" if value else "off"
        if isinstance(value, str):
            value = value.strip().lower()
            return {"true": "advanced", "false": "off"}.get(value, value)
        return value


class ArtifactSettings(BaseSettings):
    """Checkpoint screenshot storage."""

    model_config = SettingsConfigDict(env_prefix="SITEVERIFY_ARTIFACTS__")

    output_dir: str = "screenshots"
    full_page: bool = True


class PacingSettings(BaseSettings):
    """Human-pacing delay bounds, in milliseconds."""

    model_config = SettingsConfigDict(env_prefix="SITEVERIFY_PACING__")

    step_min_ms: int = 800
    step_max_ms: int = 1500
    target_min_ms: int = 3000
    target_max_ms: int = 6000
    typing_delay_ms: int = 100


class TargetSettings(BaseSettings):
    """Where the target list is read from."""

    model_config = SettingsConfigDict(env_prefix="SITEVERIFY_TARGETS__")

    file: str = "config/targets.json"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root siteverify settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="SITEVERIFY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    artifacts: ArtifactSettings = Field(default_factory=ArtifactSettings)
    pacing: PacingSettings = Field(default_factory=PacingSettings)
    targets: TargetSettings = Field(default_factory=TargetSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths against project_root."""
        root = self.project_root
        if not Path(self.artifacts.output_dir).is_absolute():
            self.artifacts.output_dir = str(root / self.artifacts.output_dir)
        if not Path(self.targets.file).is_absolute():
            self.targets.file = str(root / self.targets.file)
        return self

    def require_provider_credentials(self) -> None:
        """Fail fast when the selected provider lacks its credentials.

        Raises:
            ConfigurationError: If the Browserbase provider is selected and
                the API key or project id is empty.
        """
        if self.provider.kind == PROVIDER_LOCAL:
            return
        if self.provider.kind != PROVIDER_BROWSERBASE:
            raise ConfigurationError(f"Unknown session provider: {self.provider.kind!r}")
        if not self.provider.api_key.strip():
            raise ConfigurationError("SITEVERIFY_PROVIDER__API_KEY is required")
        if not self.provider.project_id.strip():
            raise ConfigurationError("SITEVERIFY_PROVIDER__PROJECT_ID is required")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
