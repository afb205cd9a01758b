"""
Error Classifier Module
=======================

Responsibility:
- Maps raw error text from external tools (apk, curl, tar, ...) to a fixed
  category taxonomy.
- Supplies ordered remediation suggestions per category.
"""

from .error_classifier import ErrorCategory, classify, suggestions_for

__all__ = ['ErrorCategory', 'classify', 'suggestions_for']
