r"""
Centralized logging configuration for Scan Reconciler.

This module provides the logging system shared by every station module:
- Structured JSON logging for the log file (easy to grep and parse)
- Automatic file rotation (prevents log files from growing indefinitely)
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Automatic cleanup of old logs (retention policy)
- Both file and console output
- Context-aware logging (warehouse_id, document_id, operator_id)

Scan stations run unattended for whole shifts, so the log is the audit trail
for who scanned what against which document, and the first place to look
when a finalization was rejected by the backend.

Log file location: [Logging] LogDir from config.ini, or ~/.scan_reconciler/logs
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2026-10-19T14:30:45.123", "level": "INFO", "tool": "scan_reconciler",
     "warehouse_id": "ALM-01", "document_id": "A00001234", "module": "reconciliation_engine",
     "function": "process_scan", "line": 212, "message": "Scan accepted: A100 x1"}
"""

# Standard library imports
import logging  # Core logging framework
import json  # JSON formatting for structured logging
import os  # Home directory fallback
from datetime import datetime, timedelta  # Log file naming and cleanup
from pathlib import Path  # Path handling
from logging.handlers import RotatingFileHandler  # Automatic log rotation
from typing import Optional, Dict, Any  # Type hints
import configparser  # Reading config.ini settings
from contextvars import ContextVar  # Thread-safe context storage


# Context variables for structured logging
_warehouse_id: ContextVar[Optional[str]] = ContextVar('warehouse_id', default=None)
_document_id: ContextVar[Optional[str]] = ContextVar('document_id', default=None)
_operator_id: ContextVar[Optional[str]] = ContextVar('operator_id', default=None)


class StructuredJSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Outputs log records as JSON with fields:
    - timestamp: ISO 8601 format with milliseconds
    - level: Log level
    - tool: Always "scan_reconciler"
    - warehouse_id / document_id / operator_id: Current context (if set)
    - module, function, line: Origin of the record
    - message: Log message
    - exc_info: Exception information (if present)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': 'scan_reconciler',
            'warehouse_id': _warehouse_id.get(),
            'document_id': _document_id.get(),
            'operator_id': _operator_id.get(),
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

    Logging is configured once, on the first call to get_logger(), no matter
    how many modules import it. Settings come from the [Logging] section of
    config.ini:
    - LogLevel: DEBUG, INFO, WARNING, ERROR, CRITICAL
    - LogDir: Directory for daily log files
    - MaxLogSizeMB: Maximum size per log file before rotation
    - LogRetentionDays: How many days of logs to keep
    """

    _instance: Optional[logging.Logger] = None
    _initialized: bool = False
    config_path: str = 'config.ini'

    @classmethod
    def get_logger(cls, name: str = 'ScanReconciler') -> logging.Logger:
        """
        Get or create a logger, configuring the logging system on first use.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Configured logger instance for the specified name
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Setup logging configuration from config.ini.

        Configures the log directory, level, JSON file handler with rotation,
        console handler, and removes logs older than the retention period.
        """
        config = cls._load_config(cls.config_path)

        default_dir = Path(os.path.expanduser("~")) / ".scan_reconciler" / "logs"
        log_dir = Path(config.get('Logging', 'LogDir', fallback=str(default_dir)))

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Configured directory unavailable (network share down, permissions)
            log_dir = default_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not access configured logs directory. Using local: {log_dir}. Error: {e}")

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

        logger = logging.getLogger('ScanReconciler')
        logger.info("=" * 80)
        logger.info("Scan Reconciler Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @staticmethod
    def _load_config(config_path: str = 'config.ini') -> configparser.ConfigParser:
        """
        Load configuration from config.ini.

        Returns an empty ConfigParser when the file does not exist, so every
        setting falls back to its default (INFO level, 10MB, 30 days).
        """
        config = configparser.ConfigParser()
        path = Path(config_path)

        if path.exists():
            config.read(path, encoding='utf-8')

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than the retention period.

        Args:
            log_dir: Directory containing log files
            retention_days: Number of days to keep logs; 0 or negative keeps all
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('ScanReconciler').debug(f"Deleted old log: {log_file.name}")

        except OSError as e:
            # Non-fatal: file in use or permissions
            logging.getLogger('ScanReconciler').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'ScanReconciler') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Document loaded")
    """
    return AppLogger.get_logger(name)


def set_warehouse_context(warehouse_id: Optional[str]) -> None:
    """Set the warehouse included in all subsequent log entries."""
    _warehouse_id.set(warehouse_id)


def set_document_context(document_id: Optional[str]) -> None:
    """
    Set the document (folio) included in all subsequent log entries.

    Example:
        >>> set_document_context("A00001234")
        >>> logger.info("Scan accepted")  # Will include document_id="A00001234"
    """
    _document_id.set(document_id)


def set_operator_context(operator_id: Optional[str]) -> None:
    """Set the operator included in all subsequent log entries."""
    _operator_id.set(operator_id)


def clear_logging_context() -> None:
    """Clear all logging context (warehouse_id, document_id, operator_id)."""
    _warehouse_id.set(None)
    _document_id.set(None)
    _operator_id.set(None)
