"""
Configuration Manager Module
============================

Responsibility:
- Loading of the template YAML configuration, cached per manager instance.
- Validation: YAML syntax, field formats, JSON schema and required keys.
- Dotted-path accessors with built-in defaults for well-known keys.
- Flat environment-variable export and human-readable reports.
"""

from .config_manager import ConfigurationManager, LoadResult, LoadStatus
from .config_validator import ConfigValidator, FormatRule

__all__ = ['ConfigurationManager', 'ConfigValidator', 'FormatRule', 'LoadResult', 'LoadStatus']
