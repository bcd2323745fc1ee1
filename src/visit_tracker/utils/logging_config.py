"""
Centralized logging configuration for Visit Tracker.
Provides component-specific loggers with separate log files.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime

from ..config import get_config

LOGGER_NAMESPACE = "visit_tracker"

DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - "
    "%(funcName)s() - %(message)s"
)


class ComponentLogger:
    """Manages component-specific logging with separate files."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _unified_handler: Optional[logging.Handler] = None

    # Component definitions with their log levels
    COMPONENTS = {
        "api": {"level": logging.INFO, "file": "api.log"},
        "database": {"level": logging.INFO, "file": "database.log"},
        "tracking": {"level": logging.INFO, "file": "tracking.log"},
        "scheduler": {"level": logging.INFO, "file": "scheduler.log"},
        "notifications": {"level": logging.INFO, "file": "notifications.log"},
        "auth": {"level": logging.INFO, "file": "auth.log"},
        "main": {"level": logging.INFO, "file": "main.log"},
        "error": {"level": logging.ERROR, "file": "errors.log"},  # Centralized error log
    }

    @classmethod
    def initialize(cls, log_dir: Optional[str] = None, debug: bool = False) -> None:
        """
        Initialize the logging system with component-specific loggers.

        When file logging is disabled in the configuration, component loggers
        carry no handlers of their own and propagate to the root logger.

        Args:
            log_dir: Directory for log files. Defaults to config.log_dir
            debug: Enable debug logging for all components
        """
        if cls._initialized:
            return

        config = get_config()
        debug = debug or config.server.debug
        root_level = logging.DEBUG if debug else logging.INFO

        if not config.app.log_to_file:
            for component_name, component_config in cls.COMPONENTS.items():
                logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{component_name}")
                logger.setLevel(logging.DEBUG if debug else component_config["level"])
                logger.propagate = True
                cls._loggers[component_name] = logger
            cls._initialized = True
            return

        cls._log_dir = Path(log_dir or config.app.log_dir)
        session_dir = datetime.now().strftime("%Y%m%d_%H%M%S")
        cls._log_dir = cls._log_dir / session_dir
        cls._log_dir.mkdir(parents=True, exist_ok=True)

        detailed_formatter = logging.Formatter(
            DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"
        )
        simple_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
        )

        unified_handler = logging.handlers.RotatingFileHandler(
            cls._log_dir / "unified.log",
            maxBytes=20 * 1024 * 1024,  # 20MB
            backupCount=3,
            encoding="utf-8",
        )
        unified_handler.setLevel(root_level)
        unified_handler.setFormatter(detailed_formatter)
        cls._unified_handler = unified_handler

        for component_name, component_config in cls.COMPONENTS.items():
            logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{component_name}")
            logger.handlers.clear()
            logger.propagate = False

            level = logging.DEBUG if debug else component_config["level"]
            logger.setLevel(level)

            file_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / component_config["file"],
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(detailed_formatter)
            logger.addHandler(file_handler)
            logger.addHandler(unified_handler)

            # Console handler for errors and critical
            if component_name in ["error", "main"]:
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(logging.ERROR)
                console_handler.setFormatter(simple_formatter)
                logger.addHandler(console_handler)

            cls._loggers[component_name] = logger

        cls._initialized = True

        main_logger = cls._loggers["main"]
        main_logger.info("=" * 80)
        main_logger.info("Visit Tracker Logging System Initialized")
        main_logger.info(f"Log directory: {cls._log_dir}")
        main_logger.info(f"Debug mode: {debug}")
        main_logger.info("=" * 80)

    @classmethod
    def get_logger(cls, component: str) -> logging.Logger:
        """
        Get a logger for a specific component.

        Args:
            component: Component name (api, database, tracking, scheduler, ...)

        Returns:
            Logger instance for the component
        """
        if not cls._initialized:
            cls.initialize()

        if component not in cls._loggers:
            cls._create_component_logger(component)
        return cls._loggers[component]

    @classmethod
    def _create_component_logger(cls, component: str) -> None:
        """Create a component logger on-demand."""
        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{component}")

        if cls._log_dir is not None:
            logger.handlers.clear()
            logger.propagate = False
            file_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / f"{component}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(
                logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
            )
            logger.addHandler(file_handler)
            if cls._unified_handler is not None:
                logger.addHandler(cls._unified_handler)

        cls._loggers[component] = logger

    @classmethod
    def log_exception(
        cls, component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an exception with context to both component and error logs.

        Args:
            component: Component where the exception occurred
            exc: The exception to log
            context: Additional context information
        """
        component_logger = cls.get_logger(component)
        error_logger = cls.get_logger("error")

        context_str = ""
        if context:
            context_str = " | Context: " + ", ".join(
                f"{k}={v}" for k, v in context.items()
            )

        exc_info = (type(exc), exc, exc.__traceback__)
        component_logger.error(
            f"Exception in {component}: {type(exc).__name__}: {exc}{context_str}",
            exc_info=exc_info,
        )
        error_logger.error(
            f"[{component}] {type(exc).__name__}: {exc}{context_str}",
            exc_info=exc_info,
        )

    @classmethod
    def get_log_directory(cls) -> Optional[Path]:
        """Get the current log directory path."""
        return cls._log_dir


# Convenience functions
def get_logger(component: str) -> logging.Logger:
    """Get a logger for a specific component."""
    return ComponentLogger.get_logger(component)


def initialize_logging(log_dir: Optional[str] = None, debug: bool = False) -> None:
    """Initialize the logging system."""
    ComponentLogger.initialize(log_dir=log_dir, debug=debug)


def log_exception(
    component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an exception with context."""
    ComponentLogger.log_exception(component, exc, context)


def get_log_directory() -> Optional[Path]:
    """Get the current log directory path."""
    return ComponentLogger.get_log_directory()
