import pytest

from modules.config_manager import ConfigValidator, FormatRule
from modules.config_manager.config_validator import lookup, is_blank
from utils.exceptions import ConfigurationError, ConfigSchemaViolation, MissingRequiredKeysError


@pytest.fixture
def document():
    return {
        "template": {"name": "alpine-k3s", "version": "1.0.0", "base_image": "alpine:3.18"},
        "k3s": {"version": "v1.28.4+k3s1"},
    }


@pytest.fixture
def schema():
    return {
        "type": "object",
        "required": ["template", "k3s"],
        "properties": {
            "template": {
                "type": "object",
                "required": ["name", "version", "base_image"],
                "properties": {"name": {"type": "string"}},
            },
            "k3s": {"type": "object", "required": ["version"]},
        },
    }


def test_lookup_walks_nested_mappings(document):
    assert lookup(document, "template.name") == "alpine-k3s"
    assert lookup(document, "template.name.extra") is None
    assert lookup(document, "missing") is None
    assert lookup(None, "template") is None


def test_is_blank():
    assert is_blank(None)
    assert is_blank("   ")
    assert not is_blank(0)
    assert not is_blank(False)
    assert not is_blank([])


def test_semantic_rules_pass(document):
    ConfigValidator().check_semantics(document)


def test_semantic_rules_skip_absent_values():
    """Missing fields are the job of the required-key check, not the format rules."""
    ConfigValidator().check_semantics({"template": {"name": "x"}})


def test_semantic_rules_fail_fast_in_order(document):
    """With several bad fields, template.version is reported first."""
    document["template"]["version"] = "1.0"
    document["k3s"]["version"] = "latest"

    with pytest.raises(ConfigSchemaViolation) as exc_info:
        ConfigValidator().check_semantics(document)

    assert exc_info.value.field == "template.version"
    assert str(exc_info.value) == "Invalid template.version format: 1.0 (expected: x.y.z)"


def test_architecture_rule(document):
    document["template"]["architecture"] = "x86"

    with pytest.raises(ConfigSchemaViolation) as exc_info:
        ConfigValidator().check_semantics(document)
    assert exc_info.value.field == "template.architecture"
    assert "amd64" in exc_info.value.expected


def test_custom_rules():
    rule = FormatRule("template.name", r"^[a-z]+$", "lower-case letters")
    validator = ConfigValidator(rules=[rule])

    with pytest.raises(ConfigSchemaViolation, match="lower-case letters"):
        validator.check_semantics({"template": {"name": "Alpine"}})


def test_schema_required_keys_are_collected(document, schema):
    del document["template"]["version"]
    del document["k3s"]

    with pytest.raises(MissingRequiredKeysError) as exc_info:
        ConfigValidator(schema).check_schema(document)

    assert sorted(exc_info.value.missing_keys) == ["k3s.version", "template.version"]


def test_schema_type_violation(document, schema):
    document["template"]["name"] = 42

    with pytest.raises(ConfigSchemaViolation) as exc_info:
        ConfigValidator(schema).check_schema(document)
    assert exc_info.value.field == "template.name"


def test_without_schema_only_rules_apply(document):
    ConfigValidator().validate(document)


def test_from_schema_file_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="Schema file not found"):
        ConfigValidator.from_schema_file(str(tmp_path / "missing.json"))

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        ConfigValidator.from_schema_file(str(bad))


def test_missing_section_names_required_keys(document, schema):
    """A missing section is reported as the required keys beneath it."""
    del document["template"]

    with pytest.raises(MissingRequiredKeysError) as exc_info:
        ConfigValidator(schema).check_schema(document)

    assert exc_info.value.missing_keys == ["template.name", "template.version", "template.base_image"]
