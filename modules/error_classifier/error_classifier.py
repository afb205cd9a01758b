import re
from enum import Enum
from typing import List, Tuple, Union


class ErrorCategory(str, Enum):
    """Fixed taxonomy for failures reported by external tools."""
    NETWORK_ERROR = "NETWORK_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    GENERAL_ERROR = "GENERAL_ERROR"


# Checked in order; the first matching category wins.
_CLASSIFICATION_RULES: List[Tuple[ErrorCategory, re.Pattern]] = [
    (ErrorCategory.NETWORK_ERROR, re.compile(
        r"\bcurl\b|\bwget\b|download|failed to connect|connection (refused|reset|failed|failure)"
        r"|could not resolve|network is unreachable|name resolution",
        re.IGNORECASE,
    )),
    (ErrorCategory.PERMISSION_ERROR, re.compile(
        r"permission|access denied|\bdenied\b|operation not permitted",
        re.IGNORECASE,
    )),
    (ErrorCategory.STORAGE_ERROR, re.compile(
        r"no space left|disk full|disk quota|\bdisk\b|out of space",
        re.IGNORECASE,
    )),
    (ErrorCategory.TIMEOUT_ERROR, re.compile(
        r"timeout|timed out",
        re.IGNORECASE,
    )),
    (ErrorCategory.NOT_FOUND_ERROR, re.compile(
        r"not found|\b404\b|no such file",
        re.IGNORECASE,
    )),
]

_SUGGESTIONS = {
    ErrorCategory.NETWORK_ERROR: [
        "Check network connectivity",
        "Verify DNS resolution",
        "Try a proxy or a mirror",
    ],
    ErrorCategory.PERMISSION_ERROR: [
        "Check file permissions",
        "Confirm the current user's privileges",
        "Run with sudo or switch to the owning user",
    ],
    ErrorCategory.STORAGE_ERROR: [
        "Check available disk space",
        "Clean up temporary files",
        "Check permissions on the target disk",
    ],
    ErrorCategory.TIMEOUT_ERROR: [
        "Increase the timeout",
        "Check network stability",
        "Retry the operation",
    ],
    ErrorCategory.NOT_FOUND_ERROR: [
        "Check the file path",
        "Verify the URL is valid",
        "Confirm the resource exists",
    ],
}

_GENERIC_SUGGESTIONS = [
    "Review the detailed error output",
    "Check the system logs",
    "Contact support",
]


def classify(raw_error_text: str) -> ErrorCategory:
    """
    Map free-text error output to an ErrorCategory.

    Matching is case-insensitive and best-effort: unrecognised text falls
    through to GENERAL_ERROR.
    """
    text = raw_error_text or ""
    for category, pattern in _CLASSIFICATION_RULES:
        if pattern.search(text):
            return category
    return ErrorCategory.GENERAL_ERROR


def suggestions_for(category: Union[ErrorCategory, str]) -> List[str]:
    """Return ordered remediation hints for a category (generic hints if unknown)."""
    try:
        category = ErrorCategory(category)
    except ValueError:
        return list(_GENERIC_SUGGESTIONS)
    return list(_SUGGESTIONS.get(category, _GENERIC_SUGGESTIONS))
