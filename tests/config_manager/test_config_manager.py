import pytest
import yaml
from unittest.mock import Mock
from pathlib import Path

from modules.config_manager import ConfigurationManager, LoadStatus
from utils.exceptions import (
    ConfigNotFoundError,
    ConfigParseError,
    ConfigSchemaViolation,
    MissingRequiredKeysError,
)

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "config" / "template-schema.json"


@pytest.fixture
def mock_logger():
    """Provides a mock logger instance."""
    return Mock()


@pytest.fixture
def valid_config():
    return {
        "template": {
            "name": "alpine-k3s",
            "version": "1.0.0",
            "base_image": "alpine:3.18",
            "architecture": "amd64",
        },
        "k3s": {
            "version": "v1.28.4+k3s1",
            "install_options": ["--disable=traefik", "--disable=servicelb"],
            "cluster_init": True,
        },
        "system": {"packages": [], "locale": ""},
        "security": {
            "firewall_rules": [
                {"port": "6443", "protocol": "tcp", "description": "K3s API Server"},
            ],
        },
    }


@pytest.fixture
def write_config(tmp_path):
    """Writes a document to a YAML file and returns its path."""
    def _write(document, name="template.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(document, sort_keys=False))
        return path
    return _write


@pytest.fixture
def manager(write_config, valid_config, mock_logger):
    config_path = write_config(valid_config)
    return ConfigurationManager(str(config_path), str(SCHEMA_PATH), logger=mock_logger)


# --- Loading & cache ---

def test_load_and_validate_success(manager):
    """A valid document loads, validates and serves its literal values."""
    config = manager.load_and_validate()

    assert config["template"]["name"] == "alpine-k3s"
    assert manager.get("template.name") == "alpine-k3s"
    manager.logger.info.assert_any_call("Configuration validation passed")


def test_load_cache_hit_and_reset(manager):
    """Second load is served from cache; reset() forces a fresh parse."""
    first = manager.load()
    second = manager.load()

    assert first.status is LoadStatus.LOADED
    assert second.status is LoadStatus.CACHED
    assert second.from_cache and not first.from_cache
    assert second.config == first.config
    manager.logger.info.assert_called_with("Configuration already loaded from cache")

    manager.reset()
    assert not manager.is_loaded
    third = manager.load()
    assert third.status is LoadStatus.LOADED


def test_cache_is_per_instance(write_config, valid_config, mock_logger):
    path = write_config(valid_config)
    one = ConfigurationManager(str(path), logger=mock_logger)
    two = ConfigurationManager(str(path), logger=mock_logger)

    assert one.load().status is LoadStatus.LOADED
    assert two.load().status is LoadStatus.LOADED


def test_loaded_document_is_not_shared(manager):
    """Mutating a returned document must not change the cached one."""
    result = manager.load()
    result.config["template"]["name"] = "changed"

    assert manager.get("template.name") == "alpine-k3s"


def test_load_missing_file(tmp_path, mock_logger):
    manager = ConfigurationManager(str(tmp_path / "absent.yaml"), logger=mock_logger)

    with pytest.raises(ConfigNotFoundError, match="Configuration file not found"):
        manager.load()
    mock_logger.error.assert_called_once()


def test_load_malformed_yaml(tmp_path, mock_logger):
    path = tmp_path / "broken.yaml"
    path.write_text("template:\n  name: [unclosed\n")
    manager = ConfigurationManager(str(path), logger=mock_logger)

    with pytest.raises(ConfigParseError, match="Invalid YAML syntax"):
        manager.load()


def test_config_path_from_environment(monkeypatch, write_config, valid_config, mock_logger):
    path = write_config(valid_config, name="from-env.yaml")
    monkeypatch.setenv("CONFIG_FILE", str(path))

    manager = ConfigurationManager(logger=mock_logger)

    assert manager.config_path == str(path)
    assert manager.load().config["k3s"]["version"] == "v1.28.4+k3s1"


# --- Accessors ---

def test_get_default_without_load(mock_logger):
    """get() never raises, even when nothing has been loaded."""
    manager = ConfigurationManager("unused.yaml", logger=mock_logger)

    assert manager.get("nonexistent.key", "default_value") == "default_value"
    assert manager.get("nonexistent.key") is None


def test_get_missing_key_returns_caller_default(manager):
    manager.load()
    assert manager.get("nonexistent.key", "default_value") == "default_value"
    assert manager.get("template.name.deeper", "default_value") == "default_value"


def test_get_builtin_defaults_for_well_known_keys(manager):
    """Absent, null and empty values fall back to the built-in default."""
    manager.load()

    assert manager.get("system.timezone") == "UTC"
    assert manager.get("system.locale") == "en_US.UTF-8"
    assert manager.get("build.parallel_jobs") == 2
    assert manager.get("build.cleanup_after_install") is True


def test_get_returns_native_types(manager):
    manager.load()
    assert manager.get("k3s.cluster_init") is True
    assert manager.get("k3s.install_options") == ["--disable=traefik", "--disable=servicelb"]


def test_get_array(manager):
    manager.load()

    assert manager.get_array("k3s.install_options") == ["--disable=traefik", "--disable=servicelb"]
    rules = manager.get_array("security.firewall_rules")
    assert rules[0]["port"] == "6443" and rules[0]["protocol"] == "tcp"
    # empty list, missing key and scalar value all give []
    assert manager.get_array("system.packages") == []
    assert manager.get_array("network.dns_servers") == []
    assert manager.get_array("template.name") == []


def test_get_keys(manager):
    manager.load()
    assert manager.get_keys("template") == ["name", "version", "base_image", "architecture"]
    assert manager.get_keys("template.name") == []
    assert manager.get_keys("absent") == []


def test_exists_ignores_defaults(manager):
    manager.load()

    assert manager.exists("template.name")
    assert not manager.exists("system.timezone")
    assert not manager.exists("system.locale")


# --- Validation ---

def test_validate_required_names_missing_keys(write_config, valid_config, mock_logger):
    del valid_config["template"]["version"]
    del valid_config["k3s"]
    manager = ConfigurationManager(str(write_config(valid_config)), logger=mock_logger)
    manager.load()

    with pytest.raises(MissingRequiredKeysError) as exc_info:
        manager.validate_required()

    assert exc_info.value.missing_keys == ["template.version", "k3s.version"]
    mock_logger.error.assert_any_call("  - template.version")


def test_validate_required_non_mapping_document(write_config, mock_logger):
    manager = ConfigurationManager(str(write_config(["a", "b"])), logger=mock_logger)
    manager.load()

    with pytest.raises(MissingRequiredKeysError) as exc_info:
        manager.validate_required()
    assert len(exc_info.value.missing_keys) == 4


def test_validate_schema_invalid_template_version(write_config, valid_config, mock_logger):
    valid_config["template"]["version"] = "invalid-version"
    path = write_config(valid_config)
    manager = ConfigurationManager(str(path), str(SCHEMA_PATH), logger=mock_logger)

    with pytest.raises(ConfigSchemaViolation) as exc_info:
        manager.validate_schema()

    assert exc_info.value.field == "template.version"
    assert exc_info.value.expected == "x.y.z"
    assert "template.version" in str(exc_info.value)


def test_validate_schema_rejects_non_alpine_image(write_config, valid_config, mock_logger):
    valid_config["template"]["base_image"] = "ubuntu:20.04"
    manager = ConfigurationManager(str(write_config(valid_config)), str(SCHEMA_PATH), logger=mock_logger)

    with pytest.raises(ConfigSchemaViolation) as exc_info:
        manager.validate_schema()
    assert exc_info.value.field == "template.base_image"


@pytest.mark.parametrize("k3s_version, valid", [
    ("v1.28.4+k3s1", True),
    ("latest", False),
])
def test_validate_schema_k3s_version(write_config, valid_config, mock_logger, k3s_version, valid):
    valid_config["k3s"]["version"] = k3s_version
    manager = ConfigurationManager(str(write_config(valid_config)), str(SCHEMA_PATH), logger=mock_logger)

    if valid:
        manager.validate_schema()
    else:
        with pytest.raises(ConfigSchemaViolation) as exc_info:
            manager.validate_schema()
        assert exc_info.value.field == "k3s.version"


def test_validate_schema_type_violation(write_config, valid_config, mock_logger):
    """Schema-only rules (here the firewall protocol enum) are still enforced."""
    valid_config["security"]["firewall_rules"][0]["protocol"] = "icmp"
    manager = ConfigurationManager(str(write_config(valid_config)), str(SCHEMA_PATH), logger=mock_logger)

    with pytest.raises(ConfigSchemaViolation, match="Schema validation failed"):
        manager.validate_schema()
    mock_logger.error.assert_called_once()


def test_validate_schema_malformed_yaml(tmp_path, mock_logger):
    path = tmp_path / "broken.yaml"
    path.write_text("template: {name: alpine\n")
    manager = ConfigurationManager(str(path), str(SCHEMA_PATH), logger=mock_logger)

    with pytest.raises(ConfigParseError):
        manager.validate_schema()


def test_validate_schema_rejects_wrong_top_level_shape(write_config, mock_logger):
    manager = ConfigurationManager(str(write_config("just a string")), str(SCHEMA_PATH), logger=mock_logger)
    manager.load()

    with pytest.raises(ConfigSchemaViolation) as exc_info:
        manager.validate_schema()
    assert exc_info.value.field == "<root>"


# --- Export & reports ---

def test_export_prefixed(manager):
    manager.load()
    environ = {}

    exported = manager.export_prefixed("TEMPLATE_", environ=environ)

    assert environ == exported
    assert exported["TEMPLATE_TEMPLATE_NAME"] == "alpine-k3s"
    assert exported["TEMPLATE_K3S_VERSION"] == "v1.28.4+k3s1"
    assert exported["TEMPLATE_K3S_CLUSTER_INIT"] == "true"
    # lists are not exported as scalars
    assert "TEMPLATE_K3S_INSTALL_OPTIONS" not in exported


def test_summary_report(manager):
    manager.load()
    summary = manager.summary_report()

    assert summary.startswith("Configuration Summary:")
    assert "  Template Name: alpine-k3s" in summary
    assert "  Timezone: UTC" in summary
    assert "  Cluster Init: true" in summary


def test_generate_report_writes_file(manager, tmp_path):
    manager.load()
    output = tmp_path / "reports" / "config-report.md"

    report = manager.generate_report(str(output))

    assert output.read_text(encoding="utf-8") == report
    assert report.startswith("# Configuration Report")
    assert "- Install Options: --disable=traefik, --disable=servicelb" in report
    manager.logger.info.assert_called_with(f"Configuration report saved to: {output}")


def test_validate_schema_missing_section(write_config, valid_config, mock_logger):
    del valid_config["template"]
    manager = ConfigurationManager(str(write_config(valid_config)), str(SCHEMA_PATH), logger=mock_logger)

    with pytest.raises(MissingRequiredKeysError) as exc_info:
        manager.load_and_validate()
    assert exc_info.value.missing_keys == ["template.name", "template.version", "template.base_image"]
