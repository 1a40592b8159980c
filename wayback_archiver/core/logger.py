"""
Logging and Error Handling System

Central logging setup for the Wayback Archiver plus the per-batch error
tracker. Library modules only call ``logging.getLogger(__name__)``; the
handlers configured here sit on the ``wayback_archiver`` logger and are
inherited by every module logger below it.
"""

import logging
import logging.handlers
import os
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


APP_NAME = "wayback_archiver"

DETAILED_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


class ArchiverLogger:
    """
    Owns the handlers of the application logger: a full rotating log, a
    rotating errors-only log and a console stream.
    """

    def __init__(self, log_dir: str = "logs", app_name: str = APP_NAME):
        self.log_dir = Path(log_dir)
        self.app_name = app_name
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def setup_logger(self, level: int = logging.INFO) -> logging.Logger:
        """
        Attach handlers to the application logger (once).

        Args:
            level: Console logging level; the files always get DEBUG/ERROR

        Returns:
            The application logger
        """
        logger = logging.getLogger(self.app_name)
        logger.setLevel(logging.DEBUG)
        if logger.handlers:
            return logger

        detailed = logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))

        logger.addHandler(self._rotating(f"{self.app_name}.log", 10 * 1024 * 1024, 5, logging.DEBUG, detailed))
        logger.addHandler(console)
        logger.addHandler(self._rotating(f"{self.app_name}_errors.log", 5 * 1024 * 1024, 3, logging.ERROR,
                                         detailed))
        return logger

    def _rotating(self, filename: str, max_bytes: int, backups: int, level: int,
                  formatter: logging.Formatter) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename, maxBytes=max_bytes, backupCount=backups, encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    def get_logger(self, name: str) -> logging.Logger:
        """Child of the application logger for a component (e.g. 'gui')."""
        if name.startswith(self.app_name):
            return logging.getLogger(name)
        return logging.getLogger(f"{self.app_name}.{name}")

    def log_system_info(self):
        logger = self.get_logger('system')
        logger.info("=== Wayback Archiver Started ===")
        logger.info(f"Python {sys.version.split()[0]} on {sys.platform}")
        logger.info(f"Working directory: {os.getcwd()}")
        logger.info(f"Log directory: {self.log_dir.absolute()}")


class ErrorTracker:
    """
    Collects the faults and warnings of one batch. Each entry gets an ID
    (``ERR_<time>_<n>`` / ``WARN_<time>_<n>``) that is shown next to the
    affected address so the operator can find it in the log.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.errors: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []

    def log_error(self, error: Exception, context: Optional[str] = None, url: Optional[str] = None,
                  additional_info: Optional[Dict[str, Any]] = None) -> str:
        """
        Record an exception raised while handling an address.

        Returns:
            Error ID
        """
        entry = self._entry("ERR", len(self.errors), str(error), context, url)
        entry.update(
            type=type(error).__name__,
            traceback=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            additional_info=additional_info or {},
        )
        self.errors.append(entry)

        self.logger.error(self._describe(entry, f"{entry['type']}: {entry['message']}"))
        self.logger.debug(f"[{entry['id']}] Full traceback:\n{entry['traceback']}")
        return entry['id']

    def log_warning(self, message: str, context: Optional[str] = None, url: Optional[str] = None) -> str:
        """Record a non-fatal problem (e.g. a failed status lookup). Returns the warning ID."""
        entry = self._entry("WARN", len(self.warnings), message, context, url)
        self.warnings.append(entry)
        self.logger.warning(self._describe(entry, message))
        return entry['id']

    @staticmethod
    def _entry(prefix: str, index: int, message: str, context: Optional[str], url: Optional[str]) -> Dict[str, Any]:
        now = datetime.now()
        return {
            'id': f"{prefix}_{now.strftime('%Y%m%d_%H%M%S')}_{index:03d}",
            'timestamp': now,
            'message': message,
            'context': context,
            'url': url,
        }

    @staticmethod
    def _describe(entry: Dict[str, Any], text: str) -> str:
        line = f"[{entry['id']}] {text}"
        if entry['context']:
            line += f" (Context: {entry['context']})"
        if entry['url']:
            line += f" (URL: {entry['url']})"
        return line

    @property
    def has_entries(self) -> bool:
        return bool(self.errors or self.warnings)

    def get_error_summary(self) -> Dict[str, Any]:
        type_counts: Dict[str, int] = {}
        for error in self.errors:
            type_counts[error['type']] = type_counts.get(error['type'], 0) + 1
        return {
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings),
            'error_types': type_counts,
            'recent_errors': self.errors[-5:],
            'recent_warnings': self.warnings[-5:],
        }

    def save_error_report(self, output_path: str) -> bool:
        """
        Write every recorded error (with traceback) and warning to a text file.

        Returns:
            True if the report was written
        """
        lines = [
            "WAYBACK ARCHIVER ERROR REPORT",
            "=" * 50,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Total Errors: {len(self.errors)}",
            f"Total Warnings: {len(self.warnings)}",
        ]
        for title, entries in (("ERRORS", self.errors), ("WARNINGS", self.warnings)):
            if not entries:
                continue
            lines += ["", f"{title}:", "-" * 30]
            for entry in entries:
                lines.append(f"[{entry['id']}] {entry['timestamp']}")
                if 'type' in entry:
                    lines.append(f"Type: {entry['type']}")
                lines.append(f"Message: {entry['message']}")
                if entry['context']:
                    lines.append(f"Context: {entry['context']}")
                if entry['url']:
                    lines.append(f"URL: {entry['url']}")
                if 'traceback' in entry:
                    lines.append(f"Traceback:\n{entry['traceback']}")
                lines.append("-" * 30)

        try:
            path = Path(output_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(lines) + "\n", encoding='utf-8')
        except OSError as e:
            self.logger.error(f"Failed to save error report: {e}")
            return False
        self.logger.info(f"Error report saved to: {output_path}")
        return True


# Global logger instance
_logger_instance: Optional[ArchiverLogger] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Component logger; sets up default logging on first use."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = ArchiverLogger()
        _logger_instance.setup_logger()
    return _logger_instance.get_logger(name or 'main')


def initialize_logging(log_dir: str = "logs", level: int = logging.INFO) -> ArchiverLogger:
    """
    Configure the application logger. Called once by the GUI entry point.

    Args:
        log_dir: Directory for the rotating log files
        level: Console logging level
    """
    global _logger_instance
    _logger_instance = ArchiverLogger(log_dir)
    _logger_instance.setup_logger(level)
    _logger_instance.log_system_info()
    return _logger_instance
