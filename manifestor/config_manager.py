import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import colorlog
from dotenv import load_dotenv

# Load environment variables
load_dotenv(override=False)

"""
Configuration Management for Manifestor

This module provides centralized configuration management with validation and
environment variable handling. Every setting can be supplied through a
MANIFESTOR_* environment variable (or a .env file) and overridden from the CLI.
"""

logger = logging.getLogger(__name__)

VALID_PULL_POLICIES = ("Always", "IfNotPresent", "Never")
VALID_BUILDERS = ("docker", "podman")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("MANIFESTOR_LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "MANIFESTOR_LOG_FORMAT", "%(log_color)s%(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(
        default_factory=lambda: os.getenv("MANIFESTOR_LOG_FILE")
    )

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        self.level = self.level.upper()

    def get_log_level(self) -> int:
        """Convert string log level to logging constant."""
        level_attr = getattr(logging, self.level, None)
        if level_attr is None:
            raise ValueError(f"Invalid log level: {self.level}")
        return int(level_attr)


@dataclass
class BuildConfig:
    """Configuration for container image builds."""

    builder: str = field(
        default_factory=lambda: os.getenv("MANIFESTOR_CONTAINER_BUILDER", "docker")
    )
    registry: Optional[str] = field(
        default_factory=lambda: os.getenv("MANIFESTOR_REGISTRY") or None
    )
    repository_prefix: Optional[str] = field(
        default_factory=lambda: os.getenv("MANIFESTOR_REPOSITORY_PREFIX") or None
    )
    image_tag: str = field(
        default_factory=lambda: os.getenv("MANIFESTOR_IMAGE_TAG", "latest")
    )
    max_parallel_builds: int = field(
        default_factory=lambda: int(os.getenv("MANIFESTOR_MAX_PARALLEL_BUILDS", "2"))
    )
    non_interactive: bool = field(
        default_factory=lambda: _env_flag("MANIFESTOR_NON_INTERACTIVE")
    )
    runtime_identifier: Optional[str] = field(
        default_factory=lambda: os.getenv("MANIFESTOR_RUNTIME_IDENTIFIER") or None
    )

    def __post_init__(self) -> None:
        """Validate build configuration."""
        if self.builder not in VALID_BUILDERS:
            raise ValueError(f"Container builder must be one of: {list(VALID_BUILDERS)}")
        if self.max_parallel_builds < 1:
            raise ValueError("Max parallel builds must be at least 1")
        if not self.image_tag:
            raise ValueError("Image tag must not be empty")


@dataclass
class GenerationConfig:
    """Configuration for artifact generation."""

    output_dir: str = field(
        default_factory=lambda: os.getenv("MANIFESTOR_OUTPUT_DIR", "manifests")
    )
    namespace: Optional[str] = field(
        default_factory=lambda: os.getenv("MANIFESTOR_NAMESPACE") or None
    )
    image_pull_policy: str = field(
        default_factory=lambda: os.getenv("MANIFESTOR_IMAGE_PULL_POLICY", "IfNotPresent")
    )
    private_registry: bool = field(
        default_factory=lambda: _env_flag("MANIFESTOR_PRIVATE_REGISTRY")
    )
    pull_secret_name: str = field(
        default_factory=lambda: os.getenv(
            "MANIFESTOR_PULL_SECRET_NAME", "image-pull-secret"
        )
    )
    default_volume_size: str = field(
        default_factory=lambda: os.getenv("MANIFESTOR_DEFAULT_VOLUME_SIZE", "1Gi")
    )
    host_strategy: str = field(
        default_factory=lambda: os.getenv("MANIFESTOR_HOST_STRATEGY", "service-name")
    )
    state_file: Optional[str] = field(
        default_factory=lambda: os.getenv("MANIFESTOR_STATE_FILE") or None
    )

    def __post_init__(self) -> None:
        """Validate generation configuration."""
        if self.image_pull_policy not in VALID_PULL_POLICIES:
            raise ValueError(
                f"Image pull policy must be one of: {list(VALID_PULL_POLICIES)}"
            )
        if not self.output_dir:
            raise ValueError("Output directory is required")
        if not self.default_volume_size:
            raise ValueError("Default volume size must not be empty")
        if self.private_registry and not self.pull_secret_name:
            raise ValueError("A pull secret name is required for private registries")


@dataclass
class ManifestorConfig:
    """Main configuration class that aggregates all configuration sections."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    parameters: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_environment(
        cls,
        log_level: Optional[str] = None,
        parameters: Optional[Dict[str, str]] = None,
        **overrides: Any,
    ) -> "ManifestorConfig":
        """
        Create configuration from environment variables.

        Keyword overrides whose value is not None replace the matching field of
        the build or generation section (e.g. ``registry="ghcr.io/acme"``).

        Args:
            log_level: Optional log level override
            parameters: Externally supplied parameter values
            **overrides: Field overrides for BuildConfig / GenerationConfig

        Returns:
            ManifestorConfig: Configured instance
        """
        config = cls()
        if log_level is not None:
            config.logging = LoggingConfig(
                level=log_level,
                format=config.logging.format,
                file_output=config.logging.file_output,
            )
        if parameters:
            config.parameters.update(parameters)

        unknown = []
        for key, value in overrides.items():
            if value is None:
                continue
            if hasattr(config.build, key):
                setattr(config.build, key, value)
            elif hasattr(config.generation, key):
                setattr(config.generation, key, value)
            else:
                unknown.append(key)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

        return config

    def validate_all(self) -> None:
        """Validate all configuration sections."""
        try:
            self.logging.__post_init__()
            self.build.__post_init__()
            self.generation.__post_init__()
            logger.debug("Configuration validation successful")
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration (without parameter values)."""
        logger.info("=" * 60)
        logger.info("MANIFESTOR CONFIGURATION")
        logger.info("=" * 60)
        logger.info("Build:")
        logger.info(f"   - Builder: {self.build.builder}")
        logger.info(f"   - Registry: {self.build.registry or 'None (no push)'}")
        logger.info(f"   - Repository Prefix: {self.build.repository_prefix or 'None'}")
        logger.info(f"   - Image Tag: {self.build.image_tag}")
        logger.info(f"   - Max Parallel Builds: {self.build.max_parallel_builds}")
        logger.info(f"   - Non Interactive: {self.build.non_interactive}")
        logger.info("Generation:")
        logger.info(f"   - Output Directory: {self.generation.output_dir}")
        logger.info(f"   - Namespace: {self.generation.namespace or 'default'}")
        logger.info(f"   - Image Pull Policy: {self.generation.image_pull_policy}")
        logger.info(f"   - Private Registry: {self.generation.private_registry}")
        logger.info(f"   - Host Strategy: {self.generation.host_strategy}")
        logger.info(f"   - State File: {self.generation.state_file or 'None'}")
        logger.info(f"Supplied Parameters: {len(self.parameters)}")
        logger.info(f"Logging Level: {self.logging.level}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
            "build": {
                "builder": self.build.builder,
                "registry": self.build.registry,
                "repository_prefix": self.build.repository_prefix,
                "image_tag": self.build.image_tag,
                "max_parallel_builds": self.build.max_parallel_builds,
                "non_interactive": self.build.non_interactive,
                "runtime_identifier": self.build.runtime_identifier,
            },
            "generation": {
                "output_dir": self.generation.output_dir,
                "namespace": self.generation.namespace,
                "image_pull_policy": self.generation.image_pull_policy,
                "private_registry": self.generation.private_registry,
                "pull_secret_name": self.generation.pull_secret_name,
                "default_volume_size": self.generation.default_volume_size,
                "host_strategy": self.generation.host_strategy,
                "state_file": self.generation.state_file,
            },
            # Parameter values may be secrets; only names are serialized
            "parameters": sorted(self.parameters),
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.get_log_level())

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(config.format))
    root_logger.addHandler(console_handler)

    if config.file_output:
        file_handler = logging.FileHandler(config.file_output)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s:%(name)s:%(message)s"
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    logger.debug(
        f"Logging configured: level={config.level}, file={config.file_output or 'console'}"
    )


def create_config_from_env(
    log_level: Optional[str] = None,
    parameters: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> ManifestorConfig:
    """
    Factory function to create and validate configuration from environment.

    Raises:
        ValueError: If any section fails validation
    """
    config = ManifestorConfig.from_environment(
        log_level=log_level, parameters=parameters, **overrides
    )
    config.validate_all()
    return config


def resolve_state_file(config: GenerationConfig) -> Optional[Path]:
    """Return the configured secret state file as a Path, if any."""
    if not config.state_file:
        return None
    return Path(config.state_file).expanduser()
