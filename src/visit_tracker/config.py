"""
Configuration management for Visit Tracker

Dataclass sections with sensible defaults, overridden by an optional JSON
file and by VISIT_TRACKER_* environment variables.
"""

import json
import os
import secrets
from pathlib import Path
from typing import Dict, Any, Optional, List, TYPE_CHECKING
from dataclasses import dataclass, asdict, fields
import logging
import sys

if TYPE_CHECKING:
    from .auth.rate_limiter import RateLimitConfig

ENV_PREFIX = "VISIT_TRACKER_"

# List of known weak/default JWT secrets that should be rejected
WEAK_JWT_SECRETS = {
    "your-secret-key-change-in-production",
    "secret",
    "key",
    "password",
    "jwt-secret",
    "secret-key",
    "change-me",
    "default",
    "test",
    "development",
    "dev",
    "demo",
    "example",
    "sample",
}


def _validate_jwt_secret_key(jwt_secret_key: str) -> None:
    """Validate JWT secret key security and reject weak/default keys.

    Args:
        jwt_secret_key: The JWT secret key to validate

    Raises:
        SystemExit: If the secret key is weak, default, or insecure
    """
    if not jwt_secret_key:
        logging.critical(
            "JWT secret key is empty - this is a critical security vulnerability"
        )
        sys.exit(1)

    if len(jwt_secret_key) < 32:
        logging.critical(
            f"JWT secret key is too short ({len(jwt_secret_key)} chars). "
            f"Minimum 32 characters required for security."
        )
        sys.exit(1)

    if jwt_secret_key.lower() in WEAK_JWT_SECRETS:
        logging.critical(
            f"JWT secret key '{jwt_secret_key}' is a known weak/default secret. "
            f"Set {ENV_PREFIX}JWT_SECRET_KEY environment variable with a secure key."
        )
        sys.exit(1)

    unique_chars = len(set(jwt_secret_key))
    if unique_chars < 8:
        logging.critical(
            f"JWT secret key has insufficient entropy ({unique_chars} unique characters). "
            f"Use a cryptographically secure random key."
        )
        sys.exit(1)

    logging.debug(
        f"JWT secret key validation passed ({len(jwt_secret_key)} chars, {unique_chars} unique)"
    )


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DatabaseConfig:
    """Database configuration."""

    url: str = "sqlite:///visit_tracker.db"
    echo: bool = False
    log_queries: bool = False  # Log slow queries for performance analysis


@dataclass
class ServerConfig:
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    auto_reload: bool = False
    workers: int = 1


@dataclass
class AppConfig:
    """Main application configuration."""

    app_name: str = "Visit Tracker"
    version: str = "1.0.0"
    description: str = "Live safety tracking for home-care field visits"

    # Tracking
    default_check_in_interval_minutes: int = 30
    max_shared_contacts: int = 3
    share_token_bytes: int = 32
    public_tracking_base_url: str = "https://care.example.com/track"
    monitoring_center_recipient: str = "monitoring-center"
    sweep_interval_seconds: int = 60

    # Notifications
    notify_webhook_url: Optional[str] = None
    notify_timeout_seconds: float = 10.0
    notify_max_attempts: int = 8
    notify_backoff_base_seconds: float = 5.0
    notify_backoff_max_seconds: float = 600.0
    notify_batch_size: int = 50

    # JWT Configuration - secret key comes from environment or is generated
    jwt_secret_key: str = ""
    jwt_access_token_expires_minutes: int = 60

    # Rate Limiting Configuration
    enable_cors: bool = True
    rate_limit_public_requests: int = 30  # Public token lookups per window
    rate_limit_api_requests: int = 120
    rate_limit_window_seconds: int = 60
    rate_limit_bypass_ips: Optional[List[str]] = None

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"


@dataclass
class VisitTrackerConfig:
    """Complete configuration for Visit Tracker."""

    app: AppConfig
    server: ServerConfig
    database: DatabaseConfig

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "app": asdict(self.app),
            "server": asdict(self.server),
            "database": asdict(self.database),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisitTrackerConfig":
        """Create from dictionary, ignoring unknown keys."""

        def _section(section_cls, values: Dict[str, Any]):
            known = {f.name for f in fields(section_cls)}
            return section_cls(**{k: v for k, v in values.items() if k in known})

        return cls(
            app=_section(AppConfig, data.get("app", {})),
            server=_section(ServerConfig, data.get("server", {})),
            database=_section(DatabaseConfig, data.get("database", {})),
        )


class ConfigManager:
    """Manages configuration loading, saving and environment overrides."""

    def __init__(self):
        self.config_file: Optional[Path] = None
        self.config: Optional[VisitTrackerConfig] = None

    def get_config_file_path(self) -> Optional[Path]:
        """Get the path for the config file, if one is configured."""
        path = os.getenv(ENV_PREFIX + "CONFIG_FILE")
        return Path(path) if path else None

    def apply_environment(self, config: VisitTrackerConfig) -> VisitTrackerConfig:
        """Apply VISIT_TRACKER_* environment overrides in place."""
        db_url = os.getenv(ENV_PREFIX + "DATABASE_URL")
        if db_url:
            config.database.url = db_url

        debug = _env_flag("DEBUG")
        if debug is not None:
            config.server.debug = debug
            config.app.log_level = "DEBUG" if debug else config.app.log_level

        public_base = os.getenv(ENV_PREFIX + "PUBLIC_BASE_URL")
        if public_base:
            config.app.public_tracking_base_url = public_base.rstrip("/")

        webhook = os.getenv(ENV_PREFIX + "NOTIFY_WEBHOOK_URL")
        if webhook:
            config.app.notify_webhook_url = webhook

        log_dir = os.getenv(ENV_PREFIX + "LOG_DIR")
        if log_dir:
            config.app.log_dir = log_dir

        log_to_file = _env_flag("LOG_TO_FILE")
        if log_to_file is not None:
            config.app.log_to_file = log_to_file

        jwt_secret_key = os.getenv(ENV_PREFIX + "JWT_SECRET_KEY")
        if jwt_secret_key:
            config.app.jwt_secret_key = jwt_secret_key
            logging.info(
                f"Using JWT secret key from {ENV_PREFIX}JWT_SECRET_KEY environment variable"
            )
        elif not config.app.jwt_secret_key:
            config.app.jwt_secret_key = secrets.token_urlsafe(64)  # 512-bit key
            logging.info("Generated new JWT secret key (not from environment)")

        return config

    def create_default_config(self) -> VisitTrackerConfig:
        """Create default configuration."""
        return VisitTrackerConfig(
            app=AppConfig(), server=ServerConfig(), database=DatabaseConfig()
        )

    def load_config(self) -> VisitTrackerConfig:
        """Load configuration once from file or defaults, then environment."""
        if self.config is not None:
            return self.config

        self.config_file = self.get_config_file_path()
        config = None

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = VisitTrackerConfig.from_dict(json.load(f))
                logging.info(f"Loaded configuration from {self.config_file}")
            except (OSError, ValueError, TypeError) as e:
                logging.warning(f"Failed to load config from {self.config_file}: {e}")

        if config is None:
            config = self.create_default_config()

        self.config = self.apply_environment(config)
        _validate_jwt_secret_key(self.config.app.jwt_secret_key)
        return self.config

    def reload_config(self) -> VisitTrackerConfig:
        """Drop the cached configuration and load it again."""
        self.config = None
        return self.load_config()

    def save_config(self, config: Optional[VisitTrackerConfig] = None) -> bool:
        """Save configuration to the configured file."""
        if config is None:
            config = self.config

        if config is None or self.config_file is None:
            logging.error("No configuration or config file to save to")
            return False

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
            logging.info(f"Saved configuration to {self.config_file}")
            return True
        except OSError as e:
            logging.error(f"Failed to save config to {self.config_file}: {e}")
            return False

    def get_database_url(self) -> str:
        """Get the database URL."""
        return self.load_config().database.url

    def validate_security_config(self) -> None:
        """Validate security-critical configuration at startup.

        Raises:
            SystemExit: If critical security issues are found
        """
        _validate_jwt_secret_key(self.load_config().app.jwt_secret_key)
        logging.info("Security configuration validation passed")


# Global config manager instance
config_manager = ConfigManager()


def get_rate_limit_config() -> "RateLimitConfig":
    """Create a RateLimitConfig from the current app configuration."""
    from .auth.rate_limiter import RateLimitConfig, RateLimitTier

    app_config = get_config().app

    return RateLimitConfig(
        public_strict=RateLimitTier(
            max_requests=app_config.rate_limit_public_requests,
            window_seconds=app_config.rate_limit_window_seconds,
            description="Public tracking link lookups",
        ),
        api_moderate=RateLimitTier(
            max_requests=app_config.rate_limit_api_requests,
            window_seconds=app_config.rate_limit_window_seconds,
            description="Authenticated API endpoints",
        ),
        bypass_ips=set(app_config.rate_limit_bypass_ips or []),
    )


def get_config() -> VisitTrackerConfig:
    """Get the current configuration."""
    return config_manager.load_config()


def get_database_url() -> str:
    """Get the database URL."""
    return config_manager.get_database_url()


def validate_startup_security() -> None:
    """Validate security configuration at application startup.

    Raises:
        SystemExit: If critical security vulnerabilities are detected
    """
    config_manager.validate_security_config()
    logging.info("Startup security validation completed successfully")
