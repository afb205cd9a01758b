"""
Log Manager Module
==================

Responsibility:
- Listing, viewing and tailing component log files.
- Parsing simple and structured records for analysis (levels, error codes,
  performance entries) and search.
- Export to txt/csv/json and an HTML overview report.
"""

from .log_manager import LogManager, parse_log_line

__all__ = ['LogManager', 'parse_log_line']
