"""
Log Service
===========

Leveled logging for every build component. Each component writes to its own
``<component>.log`` under the log directory (rotated by size) and mirrors the
record to stderr. Error text coming from external tools is classified and
logged together with remediation suggestions.
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import psutil

from modules.error_classifier import classify, suggestions_for
from modules.logging_config.logging_config import (
    ColoredFormatter,
    ComponentFileHandler,
    LoggingSettings,
    SimpleFormatter,
    StructuredFormatter,
    rotate_log_file,
    to_logging_level,
)
from utils import constants

LOGGER_NAMESPACE = "lxc_template"


class _ComponentDefaults(logging.Filter):
    """Stamp the owning component on records logged through a plain logger."""

    def __init__(self, component: str):
        super().__init__()
        self.component = component

    def filter(self, record):
        if not getattr(record, 'component', None):
            record.component = self.component
        return True


class LogService:
    """
    Centralized leveled logging with rotation and error classification.

    Loggers are owned by the service instance (they are not registered in the
    global ``logging`` manager), so two services with different settings never
    share handlers.
    """

    def __init__(self, settings: Optional[LoggingSettings] = None):
        self.settings = settings or LoggingSettings.from_env()
        self.log_dir = Path(self.settings.log_dir)
        self._loggers: Dict[str, logging.Logger] = {}
        self._file_logging = self._ensure_log_dir()
        self._console_handler = self._build_console_handler() if self.settings.console else None

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "LogService":
        return cls(LoggingSettings.from_env(environ, **overrides))

    # ------------------------------------------------------------------ #
    # Core primitive                                                     #
    # ------------------------------------------------------------------ #
    def log(self, level: str, component: str, message: str,
            context: Optional[Dict[str, Any]] = None,
            error_code: Optional[str] = None,
            suggestions: Optional[List[str]] = None,
            target_file: Optional[str] = None,
            *, stacklevel: int = 1) -> bool:
        """
        Emit one record for ``component``.

        The target file (default ``<component>.log``) is rotated first if it has
        grown past ``max_size``. FATAL records terminate the process with exit
        status 1 after being written.

        Returns:
            bool: True if the record passed the level filter.
        """
        level_label = str(level).strip().upper() or constants.DEFAULT_LOG_LEVEL
        levelno = to_logging_level(level_label)
        logger = self._logger_for(target_file or f"{component}{constants.LOG_FILE_SUFFIX}", component)

        emitted = logger.isEnabledFor(levelno)
        if emitted:
            logger.log(
                levelno,
                message,
                extra={
                    'component': component,
                    'level_name': level_label,
                    'context': dict(context or {}),
                    'error_code': str(error_code) if error_code is not None else None,
                    'suggestions': list(suggestions or []),
                },
                stacklevel=stacklevel + 1,
            )

        if levelno == logging.CRITICAL:
            sys.exit(1)
        return emitted

    def debug(self, component: str, message: str, context=None, *, stacklevel: int = 1) -> bool:
        return self.log("DEBUG", component, message, context, stacklevel=stacklevel + 1)

    def info(self, component: str, message: str, context=None, *, stacklevel: int = 1) -> bool:
        return self.log("INFO", component, message, context, stacklevel=stacklevel + 1)

    def warn(self, component: str, message: str, context=None, suggestions=None,
             *, stacklevel: int = 1) -> bool:
        return self.log("WARN", component, message, context, suggestions=suggestions,
                        stacklevel=stacklevel + 1)

    def error(self, component: str, message: str, context=None, error_code=None,
              suggestions=None, *, stacklevel: int = 1) -> bool:
        return self.log("ERROR", component, message, context, error_code, suggestions,
                        stacklevel=stacklevel + 1)

    def fatal(self, component: str, message: str, context=None, error_code=None,
              suggestions=None, *, stacklevel: int = 1) -> None:
        self.log("FATAL", component, message, context, error_code, suggestions,
                 stacklevel=stacklevel + 1)

    # ------------------------------------------------------------------ #
    # Error handling                                                     #
    # ------------------------------------------------------------------ #
    def handle(self, raw_error_text: str, component: str, exit_code: int = 1,
               context: Optional[Dict[str, Any]] = None) -> int:
        """
        Classify raw error output, log it at ERROR with suggestions attached,
        and return ``exit_code`` for the caller to propagate.
        """
        category = classify(raw_error_text)
        self.log("ERROR", component, raw_error_text, context,
                 error_code=category.value,
                 suggestions=suggestions_for(category),
                 stacklevel=2)
        return exit_code

    # ------------------------------------------------------------------ #
    # Performance                                                        #
    # ------------------------------------------------------------------ #
    def performance_log(self, component: str, operation: str, duration,
                        context: Optional[Dict[str, Any]] = None) -> bool:
        perf_context = dict(context or {})
        perf_context.update({'operation': operation, 'duration': duration})
        return self.log("INFO", component, f"Performance: {operation} took {duration}s",
                        perf_context, stacklevel=2)

    @contextmanager
    def timed(self, component: str, operation: str,
              context: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        """Measure the wrapped block and record it with performance_log."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.performance_log(component, operation, round(time.perf_counter() - start, 3), context)

    # ------------------------------------------------------------------ #
    # Maintenance                                                        #
    # ------------------------------------------------------------------ #
    def rotate(self, path) -> bool:
        """Rotate ``path`` (absolute, or relative to the log directory) if it is oversized."""
        path = Path(path)
        if not path.is_absolute():
            path = self.log_dir / path
        rotated = rotate_log_file(path, self.settings.max_size, self.settings.max_files)
        if rotated:
            self.info(constants.LOGGING_COMPONENT, f"Log file rotated: {path}")
        return rotated

    def stats(self, target_file: Optional[str] = None) -> Dict[str, Any]:
        """
        Statistics for one log file, or for the whole log directory when no
        (existing) file is given.
        """
        if target_file and (self.log_dir / target_file).is_file():
            path = self.log_dir / target_file
            st = path.stat()
            with open(path, 'rb') as f:
                line_count = sum(1 for _ in f)
            return {
                'path': str(path),
                'size_bytes': st.st_size,
                'lines': line_count,
                'modified': datetime.fromtimestamp(st.st_mtime).isoformat(timespec='seconds'),
            }

        files = sorted(p for p in self.log_dir.glob("*.log*") if p.is_file()) if self.log_dir.is_dir() else []
        return {
            'path': str(self.log_dir),
            'total_size_bytes': sum(p.stat().st_size for p in files),
            'file_count': len(files),
            'files': [p.name for p in files],
            'disk_free_bytes': psutil.disk_usage(str(self.log_dir)).free if self.log_dir.is_dir() else None,
        }

    def cleanup_older_than(self, days: int = constants.DEFAULT_CLEANUP_DAYS) -> List[Path]:
        """Delete rotated log files (``*.log.*``) last modified more than ``days`` days ago."""
        self.info(constants.LOGGING_COMPONENT, f"Cleaning up log files older than {days} days")
        cutoff = time.time() - days * 86400
        removed: List[Path] = []
        if self.log_dir.is_dir():
            for path in sorted(self.log_dir.glob("*.log.*")):
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed.append(path)
        self.info(constants.LOGGING_COMPONENT, f"Log cleanup complete: {len(removed)} file(s) removed")
        return removed

    def get_logger(self, component: str) -> logging.Logger:
        """Plain stdlib logger writing to ``<component>.log`` with this service's handlers."""
        return self._logger_for(f"{component}{constants.LOG_FILE_SUFFIX}", component)

    def close(self) -> None:
        for logger in self._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                if handler is not self._console_handler:
                    handler.close()
        self._loggers.clear()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #
    def _logger_for(self, target_file: str, component: str) -> logging.Logger:
        logger = self._loggers.get(target_file)
        if logger is not None:
            return logger

        logger = logging.Logger(f"{LOGGER_NAMESPACE}.{Path(target_file).stem}")
        logger.setLevel(self.settings.minimum_level)
        logger.propagate = False
        logger.addFilter(_ComponentDefaults(component))

        formatter = StructuredFormatter() if self.settings.structured else SimpleFormatter()
        if self._file_logging:
            file_handler = ComponentFileHandler(str(self.log_dir / target_file),
                                                self.settings.max_size,
                                                self.settings.max_files)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        if self._console_handler is not None:
            logger.addHandler(self._console_handler)
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())

        self._loggers[target_file] = logger
        return logger

    def _build_console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        if self.settings.structured:
            handler.setFormatter(StructuredFormatter())
        elif self.settings.colorful_console and _is_terminal(sys.stderr):
            handler.setFormatter(ColoredFormatter())
        else:
            handler.setFormatter(SimpleFormatter())
        return handler

    def _ensure_log_dir(self) -> bool:
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            sys.stderr.write(f"WARNING: log directory '{self.log_dir}' unavailable, "
                             f"logging to console only: {e}\n")
            return False


def _is_terminal(stream) -> bool:
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())
