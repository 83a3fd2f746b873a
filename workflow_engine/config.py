"""Configuration management for the workflow execution engine."""

import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .core.exceptions import ConfigurationError
from .core.execution_engine import ExecutionOptions


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Workflow Execution Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Execution engine settings
    max_retries: int = Field(default=3, description="Retries per node after the first attempt")
    retry_delay: float = Field(default=1.0, description="Linear retry backoff base in seconds")
    node_timeout: float = Field(default=300.0, description="Per-attempt node timeout in seconds")
    parallel_execution: bool = Field(
        default=False,
        description="Run dependency-ready node groups concurrently by default"
    )
    max_tracked_runs: int = Field(
        default=1000,
        ge=1,
        description="Launched runs kept for lookup; oldest finished runs are evicted first"
    )

    # Monitoring settings
    slow_request_threshold: float = Field(
        default=5.0,
        description="Requests slower than this many seconds are logged as warnings"
    )
    monitor_queue_size: int = Field(
        default=1000,
        description="Maximum buffered progress events per WebSocket subscriber"
    )

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log records")

    # Security settings
    cors_origins: list = Field(
        default=["*"],
        description="CORS allowed origins"
    )

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('max_retries')
    @classmethod
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v

    @field_validator('retry_delay')
    @classmethod
    def validate_retry_delay(cls, v):
        if v < 0:
            raise ValueError("retry_delay cannot be negative")
        return v

    @field_validator('node_timeout')
    @classmethod
    def validate_node_timeout(cls, v):
        """Validate timeout values."""
        if v <= 0:
            raise ValueError("Timeout must be greater than zero")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and not self.reload

    def execution_options(self) -> ExecutionOptions:
        """Engine defaults derived from this configuration."""
        return ExecutionOptions(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            node_timeout=self.node_timeout,
            parallel=self.parallel_execution,
            max_tracked_runs=self.max_tracked_runs
        )

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"WORKFLOW_ENGINE_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            elif type_func == list:
                return value.split(',') if value else default
            try:
                return type_func(value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for WORKFLOW_ENGINE_{key}: {value!r}",
                    config_key=key.lower()
                ) from e

        return cls(
            app_name=get_env("APP_NAME", "Workflow Execution Engine"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            reload=get_env("RELOAD", False, bool),
            max_retries=get_env("MAX_RETRIES", 3, int),
            retry_delay=get_env("RETRY_DELAY", 1.0, float),
            node_timeout=get_env("NODE_TIMEOUT", 300.0, float),
            parallel_execution=get_env("PARALLEL_EXECUTION", False, bool),
            max_tracked_runs=get_env("MAX_TRACKED_RUNS", 1000, int),
            slow_request_threshold=get_env("SLOW_REQUEST_THRESHOLD", 5.0, float),
            monitor_queue_size=get_env("MONITOR_QUEUE_SIZE", 1000, int),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool),
            cors_origins=get_env("CORS_ORIGINS", ["*"], list)
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and the environment."""
    global _config

    if config_file and os.path.exists(config_file):
        from dotenv import load_dotenv
        load_dotenv(config_file)
    elif config_file:
        raise ConfigurationError(f"Configuration file not found: {config_file}", config_key="config_file")
    elif os.path.exists('.env'):
        from dotenv import load_dotenv
        load_dotenv('.env')

    _config = AppConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def validate_config(config: AppConfig) -> None:
    """Validate configuration settings that depend on the host environment."""
    errors = []

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir and not os.path.exists(log_dir):
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create log directory {log_dir}: {e}")

    if config.node_timeout * (config.max_retries + 1) > 24 * 3600:
        errors.append("Retry budget allows a single node to run for more than a day")

    if errors:
        raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")


# Environment-specific configurations
def get_development_config() -> AppConfig:
    """Get development configuration."""
    return AppConfig(
        debug=True,
        reload=True,
        log_level=LogLevel.DEBUG
    )


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        log_level=LogLevel.WARNING,
        max_retries=1,
        retry_delay=0.0,
        node_timeout=5.0
    )
