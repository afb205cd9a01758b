import json
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from utils import constants
from utils.exceptions import (
    ConfigNotFoundError,
    ConfigParseError,
    ConfigSchemaViolation,
    ConfigurationError,
    MissingRequiredKeysError,
)


@dataclass(frozen=True)
class FormatRule:
    """A string field that must match ``pattern`` when present."""
    field: str
    pattern: str
    expected: str

    def matches(self, value: Any) -> bool:
        return re.match(self.pattern, str(value)) is not None


# Checked in order, first failure wins
FORMAT_RULES: List[FormatRule] = [
    FormatRule("template.version", constants.TEMPLATE_VERSION_PATTERN, "x.y.z"),
    FormatRule("k3s.version", constants.K3S_VERSION_PATTERN, "vx.y.z+k3sN"),
    FormatRule("template.base_image", constants.BASE_IMAGE_PATTERN, "alpine:x.y"),
    FormatRule("template.architecture",
               "^(" + "|".join(constants.SUPPORTED_ARCHITECTURES) + ")$",
               "one of " + ", ".join(constants.SUPPORTED_ARCHITECTURES)),
]


def lookup(document: Any, dotted_path: str) -> Any:
    """Walk a dot-separated key path through nested mappings; None if any step is missing."""
    node = document
    for segment in dotted_path.split("."):
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _required_below(dotted_path: str) -> List[str]:
    """A missing section stands for the required keys beneath it."""
    nested = [key for key in constants.REQUIRED_KEYS if key.startswith(dotted_path + ".")]
    return nested or [dotted_path]


def read_yaml(path) -> Any:
    """Parse a YAML file; ConfigNotFoundError / ConfigParseError on failure."""
    if not os.path.isfile(path):
        raise ConfigNotFoundError(str(path))
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML syntax in {path}: {e}") from e


class ConfigValidator:
    """
    Validates a template configuration in three stages:
    YAML syntax, field format rules, then the companion JSON Schema.
    """

    def __init__(self, schema: Optional[Dict[str, Any]] = None,
                 rules: Optional[List[FormatRule]] = None):
        self.schema = schema
        self.rules = list(FORMAT_RULES if rules is None else rules)

    @classmethod
    def from_schema_file(cls, schema_path) -> "ConfigValidator":
        if not os.path.isfile(schema_path):
            raise ConfigurationError(f"Schema file not found: {schema_path}")
        try:
            with open(schema_path, 'r', encoding='utf-8') as f:
                return cls(json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {schema_path}: {str(e)}")

    def check_syntax(self, path) -> Any:
        """Return the parsed document if ``path`` is well-formed YAML."""
        return read_yaml(path)

    def check_semantics(self, document: Any) -> None:
        """Apply FORMAT_RULES to the fields that are present."""
        if not isinstance(document, dict):
            raise ConfigSchemaViolation(
                "<root>",
                f"Configuration root must be a mapping, got {type(document).__name__}",
                expected="mapping",
            )
        for rule in self.rules:
            value = lookup(document, rule.field)
            if is_blank(value):
                continue
            if not rule.matches(value):
                raise ConfigSchemaViolation(
                    rule.field,
                    f"Invalid {rule.field} format: {value} (expected: {rule.expected})",
                    expected=rule.expected,
                )

    def check_schema(self, document: Any) -> None:
        """Validate against the JSON Schema; missing required properties are reported together."""
        if not self.schema:
            return
        validator_cls = jsonschema.validators.validator_for(self.schema)
        validator = validator_cls(self.schema)
        errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])

        missing = []
        for error in errors:
            if error.validator == "required":
                parent = ".".join(str(p) for p in error.absolute_path)
                for key in error.validator_value:
                    if not isinstance(error.instance, dict) or key not in error.instance:
                        missing.extend(_required_below(f"{parent}.{key}" if parent else key))
        if missing:
            raise MissingRequiredKeysError(missing)

        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.absolute_path) or "<root>"
            raise ConfigSchemaViolation(field, f"Schema validation failed at {field}: {first.message}")

    def validate(self, document: Any) -> None:
        self.check_semantics(document)
        self.check_schema(document)