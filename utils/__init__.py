"""
Shared utilities: constants, exception hierarchy and error-handling helpers.
"""
