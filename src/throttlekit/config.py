"""
Configuration management for throttlekit

Provides pydantic-based configuration with environment variable support
and YAML file loading capabilities.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThrottleConfig(BaseModel):
    """
    Scheduler options

    Instances are immutable; reconfiguration builds a new validated copy.
    Unknown keys are kept on the model but have no effect on scheduling.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    # start unpaused
    active: bool = True
    # dispatches allowed per `rate_per` ms
    rate: int = Field(default=40, gt=0)
    rate_per: int = Field(default=40000, gt=0, description="Window length in ms")
    # max in-flight operations
    concurrent: int = Field(default=20, gt=0)

    # cross-context concurrency accounting through a shared store
    across_contexts: bool = False
    context_id_prefix: str = Field(default="_ctx", min_length=1)
    context_expire: int = Field(
        default=60 * 1000,
        gt=0,
        description="Entries of other contexts idle longer than this (ms) are ignored",
    )
    context_key: Optional[str] = Field(
        default=None,
        description="Distinguishes several schedulers sharing one context",
    )
    sweep_stale_on_start: bool = False

    name: str = "default"

    def merged(self, updates: dict) -> "ThrottleConfig":
        """Return a validated copy with `updates` applied"""
        return type(self).model_validate({**self.model_dump(), **updates})


class StoreConfig(BaseModel):
    """Shared context store configuration"""

    backend: Literal["memory", "file", "redis"] = "memory"
    # file backend
    path: str = ".throttlekit"
    # redis backend
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "throttlekit:"


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration"""

    enabled: bool = False
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    default_labels: dict[str, str] = Field(default_factory=dict)


class ThrottleSettings(BaseSettings):
    """Main throttlekit settings"""

    model_config = SettingsConfigDict(
        env_prefix="THROTTLEKIT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    log_level: str = "INFO"

    @classmethod
    def load_from_file(cls, config_path: str = "throttlekit.yml") -> "ThrottleSettings":
        """Load settings from YAML file with environment variable override"""
        import yaml

        config_file = Path(config_path)
        config_data = {}

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        return cls(**config_data)


# Global settings instance
_config: Optional[ThrottleSettings] = None


def get_config() -> ThrottleSettings:
    """Get the global settings instance"""
    global _config
    if _config is None:
        _config = ThrottleSettings.load_from_file()
    return _config


def set_config(config: Optional[ThrottleSettings]) -> None:
    """Set the global settings instance"""
    global _config
    _config = config
