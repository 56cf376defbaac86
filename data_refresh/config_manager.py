import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import colorlog
from dotenv import load_dotenv

# Load environment variables
load_dotenv(override=False)

"""
Configuration Management for Azure Data Refresh

This module provides centralized configuration with validation and
environment variable handling for the replica lifecycle workflow.
"""


def _set_azure_http_log_level(log_level: str) -> None:
    """Set log levels for HTTP-related loggers to reduce noise."""
    http_loggers = [
        "azure.core.pipeline.policies.http_logging_policy",
        "azure.core.pipeline",
        "azure.identity",
        "azure.mgmt",
        "azure",
        "urllib3",
        "urllib3.connectionpool",
        "http.client",
    ]
    # HTTP logging should only appear at DEBUG level
    target_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in http_loggers:
        logging.getLogger(name).setLevel(target_level)


logger = logging.getLogger(__name__)


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class AzureConfig:
    """Configuration for the Azure control plane."""

    subscription_ids: List[str] = field(
        default_factory=lambda: _env_list("AZURE_SUBSCRIPTION_IDS")
        or _env_list("AZURE_SUBSCRIPTION_ID")
    )
    tenant_id: Optional[str] = field(
        default_factory=lambda: os.getenv("AZURE_TENANT_ID")
    )

    def validate(self) -> None:
        """Validate that at least one subscription is configured."""
        if not self.subscription_ids:
            raise ValueError(
                "At least one subscription is required. Set AZURE_SUBSCRIPTION_ID, "
                "AZURE_SUBSCRIPTION_IDS or pass --subscription-id"
            )


@dataclass
class ReplicaConfig:
    """Configuration for secondary replica discovery and reconstruction."""

    production_namespace: str = field(
        default_factory=lambda: os.getenv("REFRESH_PRODUCTION_NAMESPACE", "manufacturo")
    )
    ownership_tag: str = field(
        default_factory=lambda: os.getenv("REFRESH_OWNERSHIP_TAG", "ClientName")
    )
    environment_tag: str = field(
        default_factory=lambda: os.getenv("REFRESH_ENVIRONMENT_TAG", "Environment")
    )
    server_type_tag: str = field(
        default_factory=lambda: os.getenv("REFRESH_SERVER_TYPE_TAG", "Type")
    )
    server_type_value: str = field(
        default_factory=lambda: os.getenv("REFRESH_SERVER_TYPE_VALUE", "Replica")
    )
    secondary_server_token: str = field(
        default_factory=lambda: os.getenv("REFRESH_SECONDARY_SERVER_TOKEN", "-replica")
    )
    settling_seconds: float = field(
        default_factory=lambda: float(os.getenv("REFRESH_SETTLING_SECONDS", "30"))
    )
    deployment_poll_interval: float = field(
        default_factory=lambda: float(os.getenv("REFRESH_DEPLOYMENT_POLL_INTERVAL", "10"))
    )
    deployment_max_polls: int = field(
        default_factory=lambda: int(os.getenv("REFRESH_DEPLOYMENT_MAX_POLLS", "180"))
    )
    max_parallel_recreations: int = field(
        default_factory=lambda: int(os.getenv("REFRESH_MAX_PARALLEL_RECREATIONS", "1"))
    )
    template_dir: str = field(
        default_factory=lambda: os.getenv("REFRESH_TEMPLATE_DIR", tempfile.gettempdir())
    )

    def __post_init__(self) -> None:
        """Validate replica configuration."""
        if not self.production_namespace:
            raise ValueError("Production namespace sentinel must not be empty")
        if not self.ownership_tag:
            raise ValueError("Ownership tag name must not be empty")
        if not self.secondary_server_token:
            raise ValueError("Secondary server token must not be empty")
        if self.settling_seconds < 0:
            raise ValueError("Settling delay must be non-negative")
        if self.deployment_poll_interval < 0:
            raise ValueError("Deployment poll interval must be non-negative")
        if self.deployment_max_polls < 1:
            raise ValueError("Deployment max polls must be at least 1")
        if self.max_parallel_recreations < 1:
            raise ValueError("Max parallel recreations must be at least 1")
        if not os.path.isdir(self.template_dir):
            raise ValueError(f"Template directory does not exist: {self.template_dir}")


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(log_color)s%(asctime)s %(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    audit_file: Optional[str] = field(
        default_factory=lambda: os.getenv("REFRESH_AUDIT_LOG")
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
class DataRefreshConfig:
    """Main configuration class that aggregates all configuration sections."""

    azure: AzureConfig = field(default_factory=AzureConfig)
    replicas: ReplicaConfig = field(default_factory=ReplicaConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_environment(
        cls,
        subscription_ids: Optional[List[str]] = None,
        settling_seconds: Optional[float] = None,
        max_parallel_recreations: Optional[int] = None,
        log_level: Optional[str] = None,
    ) -> "DataRefreshConfig":
        """
        Create configuration from environment variables.

        Args:
            subscription_ids: Optional subscriptions overriding the environment
            settling_seconds: Optional settling delay override
            max_parallel_recreations: Optional recreation concurrency override
            log_level: Optional log level override

        Returns:
            DataRefreshConfig: Configured instance
        """
        config = cls()
        if subscription_ids:
            config.azure.subscription_ids = list(subscription_ids)
        if settling_seconds is not None:
            config.replicas.settling_seconds = settling_seconds
        if max_parallel_recreations is not None:
            config.replicas.max_parallel_recreations = max_parallel_recreations
        if log_level:
            config.logging.level = log_level
        return config

    def validate_all(self) -> None:
        """Validate all configuration sections."""
        try:
            self.azure.validate()
            self.replicas.__post_init__()
            self.logging.__post_init__()
            logger.info("✅ Configuration validation successful")
        except Exception as e:
            logger.exception(f"❌ Configuration validation failed: {e}")
            raise

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration (without sensitive data)."""
        logger.info("=" * 60)
        logger.info("🔧 REPLICA REFRESH CONFIGURATION")
        logger.info("=" * 60)
        logger.info(f"📋 Subscriptions: {', '.join(self.azure.subscription_ids)}")
        logger.info(f"🛡️  Production namespace: {self.replicas.production_namespace}")
        logger.info(f"🏷️  Ownership tag: {self.replicas.ownership_tag}")
        logger.info(
            f"🔎 Server tags: {self.replicas.environment_tag}=<destination>, "
            f"{self.replicas.server_type_tag}={self.replicas.server_type_value}"
        )
        logger.info(f"⏳ Settling delay: {self.replicas.settling_seconds}s")
        logger.info(
            f"⚙️  Parallel recreations: {self.replicas.max_parallel_recreations}"
        )
        logger.info(f"📝 Logging Level: {self.logging.level}")
        if self.logging.file_output:
            logger.info(f"📄 Log File: {self.logging.file_output}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "azure": {
                "subscription_ids": self.azure.subscription_ids,
                "tenant_id": self.azure.tenant_id,
            },
            "replicas": {
                "production_namespace": self.replicas.production_namespace,
                "ownership_tag": self.replicas.ownership_tag,
                "environment_tag": self.replicas.environment_tag,
                "server_type_tag": self.replicas.server_type_tag,
                "server_type_value": self.replicas.server_type_value,
                "secondary_server_token": self.replicas.secondary_server_token,
                "settling_seconds": self.replicas.settling_seconds,
                "deployment_poll_interval": self.replicas.deployment_poll_interval,
                "deployment_max_polls": self.replicas.deployment_max_polls,
                "max_parallel_recreations": self.replicas.max_parallel_recreations,
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
                "audit_file": self.logging.audit_file,
            },
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    _set_azure_http_log_level(config.level.upper())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()  # Remove any existing handlers
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

    # Specifically suppress Azure HTTP logging policy verbose output
    if config.level != "DEBUG":
        logging.getLogger("azure").setLevel(logging.WARNING)

    logger.info(
        f"📝 Logging configured: level={config.level}, file={config.file_output or 'console'}"
    )


def create_config_from_env(
    subscription_ids: Optional[List[str]] = None,
    settling_seconds: Optional[float] = None,
    max_parallel_recreations: Optional[int] = None,
    log_level: Optional[str] = None,
) -> DataRefreshConfig:
    """
    Factory function to create and validate configuration from environment.

    Raises:
        ValueError: If configuration is invalid
    """
    config = DataRefreshConfig.from_environment(
        subscription_ids, settling_seconds, max_parallel_recreations, log_level
    )
    config.validate_all()
    return config
