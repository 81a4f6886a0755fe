"""
Configuration System
====================

Centralized, validated configuration management with typed dataclasses.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Union
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class ProviderConfig:
    """Provider selection and job polling settings."""

    default_image_provider: str = "imagen-3.0-generate-002"
    default_image_edit_provider: str = "gpt-image-1"
    default_video_provider: str = "veo-3.0-generate-preview"
    timeout: int = 300
    poll_interval: float = 5.0
    max_wait: float = 900.0

    # Per-provider keyword arguments (api_key, base_url, ...)
    provider_settings: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive, got {self.timeout}",
                config_key="providers.timeout",
            )
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"poll_interval must be positive, got {self.poll_interval}",
                config_key="providers.poll_interval",
            )
        if self.max_wait < self.poll_interval:
            raise ConfigurationError(
                f"max_wait ({self.max_wait}) must be at least poll_interval ({self.poll_interval})",
                config_key="providers.max_wait",
            )


@dataclass
class MediaConfig:
    """ffmpeg settings for the media combiner."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    subprocess_timeout: int = 300
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    download_timeout: int = 120

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.subprocess_timeout <= 0:
            raise ConfigurationError(
                f"subprocess_timeout must be positive, got {self.subprocess_timeout}",
                config_key="media.subprocess_timeout",
            )
        if self.download_timeout <= 0:
            raise ConfigurationError(
                f"download_timeout must be positive, got {self.download_timeout}",
                config_key="media.download_timeout",
            )


@dataclass
class StorageConfig:
    """Object storage settings for uploaded step results."""

    backend: str = "none"
    bucket: Optional[str] = None
    prefix: str = ""
    base_path: str = "./output"
    public_base_url: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: Optional[str] = None

    VALID_BACKENDS = {"none", "local", "s3", "gcs"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.backend not in self.VALID_BACKENDS:
            raise ConfigurationError(
                f"Invalid storage backend: {self.backend}",
                config_key="storage.backend",
            )
        if self.backend in ("s3", "gcs") and not self.bucket:
            raise ConfigurationError(
                f"A bucket is required for the {self.backend} backend",
                config_key="storage.bucket",
            )


@dataclass
class ModerationConfig:
    """Prompt moderation applied before image and video generation."""

    enabled: bool = False
    sanitize_flagged: bool = False
    provider: str = "openai"
    moderation_model: str = "omni-moderation-latest"
    sanitize_model: str = "gpt-4.1-mini"

    VALID_PROVIDERS = {"openai"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.provider not in self.VALID_PROVIDERS:
            raise ConfigurationError(
                f"Invalid moderation provider: {self.provider}",
                config_key="moderation.provider",
            )


@dataclass
class LoggingConfig:
    """Logging settings applied by the CLI and the HTTP API."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    def __post_init__(self):
        self.level = self.level.upper()
        if self.level not in self.VALID_LEVELS:
            raise ConfigurationError(
                f"Invalid log level: {self.level}",
                config_key="logging.level",
            )


# =============================================================================
# Main Configuration Class
# =============================================================================


SECTIONS = ("providers", "media", "storage", "moderation", "logging")


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides a unified interface to all configuration settings with:
    - Type-safe access to configuration values
    - Validation on load
    - Environment variable interpolation
    - Sensible defaults for all values
    """

    providers: ProviderConfig = field(default_factory=ProviderConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    moderation: ModerationConfig = field(default_factory=ModerationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Raw config for provider-specific extensions
    _raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to a YAML config file, searched before the defaults

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/genailib.yaml"),
            Path("./genailib.yaml"),
            Path.home() / ".genailib" / "config.yaml",
        ]

        if path:
            if not Path(path).exists():
                raise ConfigurationError(f"Config file not found: {path}", config_key=str(path))
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping", expected_type="dict")
        try:
            return cls(
                providers=ProviderConfig(**data.get("providers", {})),
                media=MediaConfig(**data.get("media", {})),
                storage=StorageConfig(**data.get("storage", {})),
                moderation=ModerationConfig(**data.get("moderation", {})),
                logging=LoggingConfig(**data.get("logging", {})),
                _raw=data,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            # Handle ${VAR} and ${VAR:-default} patterns
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {section: asdict(getattr(self, section)) for section in SECTIONS}

    def get_provider_config(self, provider: str) -> Dict[str, Any]:
        """Get provider-specific configuration."""
        return dict(self.providers.provider_settings.get(provider, {}))


def configure_logging(config: Optional["Config"] = None, level: Optional[str] = None) -> None:
    """Apply the logging section to the root logger."""
    config = config or get_config()
    logging.basicConfig(
        level=getattr(logging, (level or config.logging.level).upper()),
        format=config.logging.format,
        force=True,
    )


# =============================================================================
# Convenience Functions
# =============================================================================


_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance (lazily loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = Config.load()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload on next access)."""
    global _global_config
    _global_config = None
