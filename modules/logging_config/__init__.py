"""
Logging Module
==============

Responsibility:
- Leveled (DEBUG < INFO < WARN < ERROR < FATAL) logging per build component.
- Simple text or structured JSON-line records, mirrored to the console.
- Size-based rotation of component log files.
- Classified error records with remediation suggestions.
"""

from .logging_config import LoggingSettings, rotate_log_file
from .log_service import LogService

__all__ = ['LogService', 'LoggingSettings', 'rotate_log_file']
