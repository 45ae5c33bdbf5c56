"""
Logging configuration module for wa_group_sync.

Provides centralized logging configuration with support for:
- Console and file logging
- Configurable log levels via environment variables
- Verbose mode for detailed output
- Colored output for better readability (when supported)
- A dedicated scan log recording every per-group classification
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Simplified format for console (less verbose)
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# Verbose format (includes more details)
VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)

# Date format for log timestamps
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Environment variable names
ENV_LOG_LEVEL = "WA_GROUP_SYNC_LOG_LEVEL"
ENV_DEBUG = "WA_GROUP_SYNC_DEBUG"
ENV_LOG_FILE = "WA_GROUP_SYNC_LOG_FILE"

# Root logger name for the package
ROOT_LOGGER_NAME = "wa_group_sync"

# Name of the per-group classification logger
SCAN_LOGGER_NAME = "wa_group_sync.scan"

# Scan log format - millisecond timestamps, one line per group decision
SCAN_LOG_FORMAT = "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s"
SCAN_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _get_default_log_dir() -> Path:
    """Get the default logs directory (inside the config directory)."""
    from wa_group_sync.utils.paths import resolve_config_dir

    return resolve_config_dir() / "logs"


class ColoredFormatter(logging.Formatter):
    """
    A logging formatter that adds ANSI color codes to log messages.

    Colors are only applied when output is to a terminal that supports them.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self) -> bool:
        """Check if the terminal supports colors."""
        if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return False

        # https://no-color.org/
        if os.environ.get("NO_COLOR"):
            return False

        term = os.environ.get("TERM", "")
        return term != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with optional colors."""
        # Copy so other handlers see the uncolored record
        record = logging.makeLogRecord(record.__dict__)

        if self.use_colors and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            record.levelname = f"{color}{record.levelname}{self.RESET}"
            record.msg = f"{color}{record.msg}{self.RESET}"

        return super().format(record)


def get_log_level_from_env() -> int:
    """
    Get the logging level from environment variables.

    WA_GROUP_SYNC_DEBUG wins over WA_GROUP_SYNC_LOG_LEVEL.

    Returns:
        Logging level constant (e.g., logging.DEBUG, logging.INFO)
    """
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG

    level_str = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    return level_map.get(level_str, logging.INFO)


def get_log_file_path() -> Optional[Path]:
    """
    Get the log file path from environment or default location.

    Returns:
        Path to log file, or None if file logging is disabled
    """
    log_file = os.environ.get(ENV_LOG_FILE)
    if log_file is not None:
        if log_file.lower() in ("none", "disabled", ""):
            return None
        return Path(log_file)

    return (
        _get_default_log_dir()
        / f"wa_group_sync_{datetime.now().strftime('%Y%m%d')}.log"
    )


# Directory chosen by the last setup_logging() call, reused by the scan logger
_configured_log_dir: Optional[Path] = None


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure logging for the wa_group_sync application.

    Sets up both console and file logging handlers with appropriate
    formatters and levels.

    Args:
        level: Logging level (e.g., logging.DEBUG). If None, determined from
               environment variables.
        verbose: If True, use verbose format with more details.
        log_dir: Directory for log files. If provided, overrides default.
        log_file: Path to log file. If None, uses log_dir or default.
        enable_file_logging: If False, disable file logging entirely.
        use_colors: If True, use colored output for console (when supported).

    Returns:
        The root logger for wa_group_sync

    Example:
        # Verbose mode for CLI
        setup_logging(verbose=True)

        # Disable file logging
        setup_logging(enable_file_logging=False)
    """
    global _configured_log_dir

    if level is None:
        level = get_log_level_from_env()
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console_format = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    console_formatter: logging.Formatter
    if use_colors:
        console_formatter = ColoredFormatter(console_format, DATE_FORMAT)
    else:
        console_formatter = logging.Formatter(console_format, DATE_FORMAT)

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        file_path: Optional[Path] = None
        if log_file:
            file_path = log_file
        elif log_dir:
            file_path = (
                log_dir / f"wa_group_sync_{datetime.now().strftime('%Y%m%d')}.log"
            )
        else:
            file_path = get_log_file_path()

        if file_path:
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)

                file_handler = logging.FileHandler(file_path, encoding="utf-8")
                file_handler.setLevel(logging.DEBUG)  # Always capture debug in file
                file_handler.setFormatter(
                    logging.Formatter(VERBOSE_FORMAT, DATE_FORMAT)
                )
                logger.addHandler(file_handler)

                logger.debug(f"Log file: {file_path}")
            except OSError as e:
                logger.warning(f"Could not create log file {file_path}: {e}")

    if log_dir:
        _configured_log_dir = log_dir
    elif log_file:
        _configured_log_dir = log_file.parent
    else:
        _configured_log_dir = None

    return logger


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Clean up old log files, keeping only the most recent ones.

    Removes old wa_group_sync_*.log and scan_*.log files from the log
    directory, keeping only the specified number of most recent files
    of each kind.

    Args:
        log_dir: Directory containing log files. If None, uses configured
                 directory or the default.
        keep_count: Number of log files to keep for each type. Default 10.
                    Set to 0 to disable cleanup.

    Returns:
        Number of files deleted.
    """
    if keep_count <= 0:
        return 0

    if log_dir:
        logs_dir = log_dir
    elif _configured_log_dir:
        logs_dir = _configured_log_dir
    else:
        logs_dir = _get_default_log_dir()

    if not logs_dir.exists():
        return 0

    deleted_count = 0

    for pattern in ("wa_group_sync_*.log", "scan_*.log"):
        logs = sorted(
            logs_dir.glob(pattern),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for old_log in logs[keep_count:]:
            try:
                old_log.unlink()
                deleted_count += 1
            except OSError:
                pass  # Best effort

    return deleted_count


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Returns a child logger of the wa_group_sync logger hierarchy.

    Args:
        name: Name of the module (typically __name__)

    Returns:
        Logger instance for the module
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def get_scan_log_path(log_dir: Optional[Path] = None) -> Path:
    """
    Get the path for a new scan log file.

    Args:
        log_dir: Optional directory for log files. If None, uses configured
                 directory from setup_logging() or the default.

    Returns:
        Path to a timestamped scan log file
    """
    if log_dir:
        logs_dir = log_dir
    elif _configured_log_dir:
        logs_dir = _configured_log_dir
    else:
        logs_dir = _get_default_log_dir()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return logs_dir / f"scan_{timestamp}.log"


def setup_scan_logger(
    log_file: Optional[Path] = None,
    level: int = logging.DEBUG,
) -> logging.Logger:
    """
    Set up the dedicated logger for group classification decisions.

    Every group handled during a sync run is logged here with the reason
    it was accepted or skipped, which makes "why is my group missing?"
    questions answerable after the fact.

    Args:
        log_file: Optional custom path for the log file
        level: Logging level (default: DEBUG)

    Returns:
        Logger instance for scan decisions
    """
    logger = logging.getLogger(SCAN_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    file_path = log_file if log_file else get_scan_log_path()

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(SCAN_LOG_FORMAT, SCAN_DATE_FORMAT))
        logger.addHandler(file_handler)

        logger.info("=" * 80)
        logger.info(f"Scan log session started at {datetime.now().isoformat()}")
        logger.info(f"Log file: {file_path}")
        logger.info("=" * 80)

    except OSError as e:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter(SCAN_LOG_FORMAT, SCAN_DATE_FORMAT)
        )
        logger.addHandler(console_handler)
        logger.warning(f"Could not create scan log file {file_path}: {e}")
        logger.warning("Falling back to console output for scan logs")

    return logger


def get_scan_logger() -> logging.Logger:
    """
    Get the scan logger instance.

    If setup_scan_logger() has not been called, records propagate to the
    package logger like any other module logger.
    """
    return logging.getLogger(SCAN_LOGGER_NAME)


__all__ = [
    "setup_logging",
    "get_logger",
    "cleanup_old_logs",
    "ColoredFormatter",
    "get_log_level_from_env",
    "get_log_file_path",
    "setup_scan_logger",
    "get_scan_logger",
    "get_scan_log_path",
    "ROOT_LOGGER_NAME",
    "SCAN_LOGGER_NAME",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
    "SCAN_LOG_FORMAT",
    "SCAN_DATE_FORMAT",
]
