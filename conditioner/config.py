"""Conditioner — Engine configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with CONDITIONER_
    3. System config: /etc/conditioner/config.yaml
    4. User config:   ~/.conditioner/config.yaml
    5. An explicit config file passed to ``Settings.load()``

File values reach the model as init arguments, so a key set in any loaded
file beats the environment; nested keys the files leave out still come from
the environment.

The ``implementations`` table is the configuration registry consulted when a
candidate binding loads: it supplies default options and an optional alias
per implementation locator.  A plain string value is shorthand for an alias::

    implementations:
      app.ui.Map: map                 # alias only
      app.ui.StaticMap:
        alias: static-map
        options:
          zoom: 4
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ImplementationConfig(BaseModel):
    alias: str | None = Field(
        default=None,
        description="Short name declarations may use instead of the full locator.",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Default options, overridden by per-declaration options.",
    )


class ProbeConfig(BaseModel):
    builtin: bool = Field(
        default=True,
        description="Register the built-in probes (flag, env, platform, resource).",
    )
    aliases: dict[str, str] = Field(
        default_factory=dict,
        description=(
            "Probe id → fully-qualified class path for probes that are not "
            "registered explicitly (e.g. {'battery': 'myapp.probes.BatteryProbe'})."
        ),
    )
    poll_interval_seconds: Annotated[float, Field(gt=0.0, le=3600.0)] = Field(
        default=5.0,
        description="Sampling period of polling probes such as 'resource'.",
    )


class EngineConfig(BaseModel):
    max_propagation_depth: Annotated[int, Field(ge=1, le=64)] = Field(
        default=16,
        description="Maximum number of parent hops an event is forwarded through.",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CONDITIONER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    implementations: dict[str, ImplementationConfig] = Field(default_factory=dict)
    probes: ProbeConfig = Field(default_factory=ProbeConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("implementations", mode="before")
    @classmethod
    def expand_alias_shorthand(cls, v: object) -> object:
        if isinstance(v, dict):
            return {
                locator: {"alias": entry} if isinstance(entry, str) else entry
                for locator, entry in v.items()
            }
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/conditioner/config.yaml"),
            Path.home() / ".conditioner" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml  # lazy import — only needed when a file exists

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton — replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
