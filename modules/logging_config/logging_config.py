import glob
import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Mapping, Optional

from colorama import Fore, Style, just_fix_windows_console

from utils import constants

just_fix_windows_console()

# Numeric rank used for filtering: DEBUG(0) < INFO(1) < WARN(2) < ERROR(3) < FATAL(4)
LEVEL_RANKS: Dict[str, int] = {name: rank for rank, name in enumerate(constants.LOG_LEVELS)}

_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "FATAL": logging.CRITICAL,
    "CRITICAL": logging.CRITICAL,
}

_LEVEL_NAMES: Dict[int, str] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "FATAL",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def to_logging_level(level: str) -> int:
    """Convert a level name to its stdlib constant. Unknown names filter as INFO."""
    if not level:
        return logging.INFO
    return _LEVEL_MAP.get(str(level).strip().upper(), logging.INFO)


def level_rank(level: str) -> int:
    return LEVEL_RANKS[level_name_for(to_logging_level(level))]


def level_name_for(levelno: int) -> str:
    return _LEVEL_NAMES.get(levelno, logging.getLevelName(levelno))


@dataclass(frozen=True)
class LoggingSettings:
    """
    Process-wide logging settings.

    Attributes:
        level: Minimum level name (DEBUG|INFO|WARN|ERROR|FATAL).
        fmt: 'simple' for one-line text records, 'structured' for JSON lines.
        log_dir: Directory holding the per-component log files.
        max_size: Size in bytes above which a log file is rotated before the next write.
        max_files: Number of rotated siblings (.1 .. .N) to keep.
        debug: Forces the minimum level down to DEBUG.
        console: Mirror every record to stderr.
        colorful_console: Colour simple console records when stderr is a terminal.
    """
    level: str = constants.DEFAULT_LOG_LEVEL
    fmt: str = constants.DEFAULT_LOG_FORMAT
    log_dir: str = constants.DEFAULT_LOG_DIR
    max_size: int = constants.DEFAULT_LOG_MAX_SIZE
    max_files: int = constants.DEFAULT_LOG_MAX_FILES
    debug: bool = False
    console: bool = True
    colorful_console: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "LoggingSettings":
        """Build settings from LOG_* / DEBUG environment variables; non-None overrides win."""
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            'level': env.get("LOG_LEVEL", constants.DEFAULT_LOG_LEVEL),
            'fmt': env.get("LOG_FORMAT", constants.DEFAULT_LOG_FORMAT),
            'log_dir': env.get("LOG_DIR", constants.DEFAULT_LOG_DIR),
            'max_size': _int_from_env(env, "LOG_MAX_SIZE", constants.DEFAULT_LOG_MAX_SIZE),
            'max_files': _int_from_env(env, "LOG_MAX_FILES", constants.DEFAULT_LOG_MAX_FILES),
            'debug': str(env.get("DEBUG", "false")).strip().lower() in _TRUE_VALUES,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def structured(self) -> bool:
        return str(self.fmt).strip().lower() == "structured"

    @property
    def minimum_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        return to_logging_level(self.level)


def _int_from_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        sys.stderr.write(f"WARNING: ignoring non-integer {key}={raw!r}, using {default}\n")
        return default


# ------------------------------------------------------------------ #
# Formatters                                                         #
# ------------------------------------------------------------------ #
def _fill_record_defaults(record: logging.LogRecord) -> None:
    """Give records logged through a plain logger the fields our formats expect."""
    if not getattr(record, 'level_name', None):
        record.level_name = level_name_for(record.levelno)
    if not getattr(record, 'component', None):
        record.component = record.name
    if not hasattr(record, 'context'):
        record.context = {}
    if not hasattr(record, 'error_code'):
        record.error_code = None
    if not hasattr(record, 'suggestions'):
        record.suggestions = []


class SimpleFormatter(logging.Formatter):
    """[timestamp] [LEVEL] [component] message"""

    def __init__(self):
        super().__init__('[%(asctime)s] [%(level_name)s] [%(component)s] %(message)s',
                         datefmt=constants.SIMPLE_LOG_DATEFMT)

    def format(self, record):
        _fill_record_defaults(record)
        return super().format(record)


class ColoredFormatter(SimpleFormatter):
    """Simple formatter with color support for console output."""
    COLORS = {
        'DEBUG': Fore.WHITE + Style.DIM,
        'INFO': Fore.CYAN,
        'WARN': Fore.YELLOW,
        'ERROR': Fore.RED,
        'FATAL': Fore.RED + Style.BRIGHT,
    }
    RESET = Style.RESET_ALL

    def format(self, record):
        _fill_record_defaults(record)
        plain_name = record.level_name
        if plain_name in self.COLORS:
            record.level_name = f"{self.COLORS[plain_name]}{plain_name}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.level_name = plain_name


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, timestamps in UTC."""
    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt=constants.STRUCTURED_LOG_DATEFMT)

    def format(self, record):
        _fill_record_defaults(record)
        entry = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.level_name,
            'component': record.component,
            'message': record.getMessage(),
            'context': record.context or {},
            'error_code': record.error_code,
            'caller': f"{record.filename}:{record.lineno}:{record.funcName}",
            'suggestions': list(record.suggestions or []),
        }
        if record.exc_info:
            entry['context'] = dict(entry['context'], exception=self.formatException(record.exc_info))
        return json.dumps(entry, ensure_ascii=False, default=str)


# ------------------------------------------------------------------ #
# Rotation                                                           #
# ------------------------------------------------------------------ #
def rotate_log_file(path, max_size: int, max_files: int, force: bool = False) -> bool:
    """
    Rotate ``path`` when it is larger than ``max_size`` bytes (or always with ``force``).

    ``path.1 .. path.(N-1)`` shift up by one suffix, anything at ``.N`` or beyond
    is deleted, and ``path`` itself becomes ``path.1``. The active file is left
    absent so the next write recreates it.

    Returns:
        bool: True if a rotation happened.
    """
    path = str(path)
    if not os.path.isfile(path):
        return False
    if not force and os.path.getsize(path) <= max_size:
        return False

    for sibling in glob.glob(glob.escape(path) + ".*"):
        suffix = sibling[len(path) + 1:]
        if suffix.isdigit() and int(suffix) >= max(max_files, 1):
            os.remove(sibling)

    if max_files <= 0:
        os.remove(path)
        return True

    for index in range(max_files - 1, 0, -1):
        source = f"{path}.{index}"
        if os.path.exists(source):
            os.replace(source, f"{path}.{index + 1}")
    os.replace(path, f"{path}.1")
    return True


class ComponentFileHandler(RotatingFileHandler):
    """
    RotatingFileHandler for one component log file.

    Rotation is decided on the on-disk size before each write, and the stream
    is released after every record so that files rotated by another process
    are picked up on the next append.
    """

    def __init__(self, filename: str, max_bytes: int, backup_count: int):
        super().__init__(filename, mode='a', maxBytes=max_bytes, backupCount=backup_count,
                         encoding='utf-8', delay=True)

    def shouldRollover(self, record) -> bool:
        if self.maxBytes <= 0:
            return False
        try:
            return os.path.getsize(self.baseFilename) > self.maxBytes
        except OSError:
            return False

    def doRollover(self) -> None:
        self._release_stream()
        rotate_log_file(self.baseFilename, self.maxBytes, self.backupCount, force=True)

    def emit(self, record):
        try:
            super().emit(record)
        finally:
            self._release_stream()

    def handleError(self, record):
        # Best-effort: a failed file write must not abort the caller
        exc = sys.exc_info()[1]
        sys.stderr.write(f"WARNING: could not write log record to '{self.baseFilename}': {exc}\n")

    def _release_stream(self) -> None:
        if self.stream:
            try:
                self.stream.close()
            finally:
                self.stream = None
