r"""
Centralized logging configuration for POS Terminal.

This module provides the logging setup shared by every module:
- Structured JSON logging to a daily file for later analysis
- Automatic file rotation and cleanup of old logs (retention policy)
- Human-readable console output
- Context-aware entries (store_code, pos_no, transaction_id)

Log file location: value of [Logging] LogDir in config.ini,
default ~/.pos_terminal/logs
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2026-10-17T14:30:45.123", "level": "INFO", "tool": "pos_terminal",
     "store_code": "30", "pos_no": "90", "transaction_id": 7, "module": "purchase_orchestrator",
     "function": "execute", "line": 120, "message": "Wrote 2 detail(s) for transaction 7"}
"""

# Standard library imports
import logging
import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any
import configparser
from contextvars import ContextVar


# Context variables for structured logging
_store_code: ContextVar[Optional[str]] = ContextVar('store_code', default=None)
_pos_no: ContextVar[Optional[str]] = ContextVar('pos_no', default=None)
_transaction_id: ContextVar[Optional[int]] = ContextVar('transaction_id', default=None)

DEFAULT_LOG_DIR = Path(os.path.expanduser("~")) / ".pos_terminal" / "logs"


class StructuredJSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Outputs log records as JSON with fields:
    - timestamp: ISO 8601 format
    - level: Log level name
    - tool: Always "pos_terminal"
    - store_code / pos_no: Terminal identity (if set)
    - transaction_id: Current remote transaction (if set)
    - module, function, line: Origin of the record
    - message: Log message
    - exc_info: Exception information (if present)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': 'pos_terminal',
            'store_code': _store_code.get(),
            'pos_no': _pos_no.get(),
            'transaction_id': _transaction_id.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False)


class AppLogger:
    """
    Centralized application logger with file rotation and cleanup.

    Logging is configured once, on the first get_logger() call, no matter
    how many modules import it.

    The logging system is configured from config.ini:
        [Logging]
        LogLevel = INFO              # DEBUG, INFO, WARNING, ERROR, CRITICAL
        LogDir = C:\\pos\\logs       # optional, defaults to ~/.pos_terminal/logs
        MaxLogSizeMB = 10            # maximum file size before rotation
        LogRetentionDays = 30        # days to keep old logs

    Attributes:
        _initialized: Whether logging has been configured (class-level)
    """

    _initialized: bool = False
    config_path: Path = Path('config.ini')

    @classmethod
    def get_logger(cls, name: str = 'PosTerminal') -> logging.Logger:
        """
        Get or create a logger, configuring logging on first use.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Logger instance sharing the application handlers
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Setup logging configuration from config.ini.

        Configures a JSON file handler with rotation, a console handler and
        removes log files older than the retention period.
        """
        config = cls._load_config()

        log_dir = Path(config.get('Logging', 'LogDir', fallback=str(DEFAULT_LOG_DIR)))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Configured directory not writable, fall back to the user profile
            log_dir = DEFAULT_LOG_DIR
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not use configured log directory. Using: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"

        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        json_formatter = StructuredJSONFormatter()

        # Format: timestamp | module | level | function:line | message
        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(json_formatter)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(console_formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('PosTerminal')
        logger.info("=" * 80)
        logger.info("POS Terminal Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @classmethod
    def _load_config(cls) -> configparser.ConfigParser:
        """
        Load the [Logging] section from config.ini.

        Returns:
            ConfigParser object, empty if config.ini does not exist
            (callers use fallback defaults).
        """
        config = configparser.ConfigParser()

        if cls.config_path.exists():
            config.read(cls.config_path, encoding='utf-8')

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than the retention period.

        Args:
            log_dir: Directory containing log files
            retention_days: Number of days to keep logs.
                            0 or negative disables cleanup.
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('PosTerminal').debug(f"Deleted old log: {log_file.name}")

        except OSError as e:
            # File in use or permission issue; keep running
            logging.getLogger('PosTerminal').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'PosTerminal') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Starting checkout")
    """
    return AppLogger.get_logger(name)


def set_terminal_context(store_code: Optional[str], pos_no: Optional[str]) -> None:
    """
    Set the store code and register number included in every log entry.

    Example:
        >>> set_terminal_context("30", "90")
        >>> logger.info("Screen activated")  # includes store_code="30", pos_no="90"
    """
    _store_code.set(store_code)
    _pos_no.set(pos_no)


def set_transaction_context(transaction_id: Optional[int]) -> None:
    """
    Set the remote transaction id included in every log entry.

    Pass None when the transaction is closed.
    """
    _transaction_id.set(transaction_id)


def clear_logging_context() -> None:
    """Clear all logging context (store_code, pos_no, transaction_id)."""
    _store_code.set(None)
    _pos_no.set(None)
    _transaction_id.set(None)
