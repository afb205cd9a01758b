import copy
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

from utils import constants
from utils.exceptions import ConfigurationError, MissingRequiredKeysError
from modules.config_manager.config_validator import ConfigValidator, is_blank, lookup, read_yaml


class LoadStatus(str, Enum):
    LOADED = "loaded"
    CACHED = "cached"


@dataclass(frozen=True)
class LoadResult:
    """Outcome of ConfigurationManager.load()."""
    path: str
    status: LoadStatus
    config: Any

    @property
    def from_cache(self) -> bool:
        return self.status is LoadStatus.CACHED


class ConfigurationManager:
    """
    Loads, validates and serves the template configuration.
    Acts as the single source of truth for every build component.

    Parsed documents are cached per manager instance, keyed by absolute path,
    and never mutated; accessors hand out copies. ``reset()`` drops the cache.
    """

    def __init__(self, config_path: Optional[str] = None,
                 schema_path: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the ConfigurationManager.

        Args:
            config_path (str): Path to the template YAML. Falls back to
                $CONFIG_FILE, then config/template.yaml.
            schema_path (str): Path to the JSON schema definition.
            logger: Logger receiving progress and failure messages.
        """
        self.config_path = (config_path
                            or os.environ.get(constants.CONFIG_FILE_ENV)
                            or constants.DEFAULT_CONFIG_PATH)
        self.schema_path = schema_path or constants.DEFAULT_SCHEMA_PATH
        self.logger = logger or logging.getLogger("config_manager")
        self.active_path: Optional[str] = None
        self._active: Any = None
        self._cache: Dict[str, Any] = {}

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    def load(self, path: Optional[str] = None) -> LoadResult:
        """
        Parse the YAML configuration at ``path`` (default: config_path).

        Returns:
            LoadResult: status LOADED on a fresh parse, CACHED when the same
            path was already parsed by this manager.

        Raises:
            ConfigNotFoundError: If the file does not exist.
            ConfigParseError: If the YAML is malformed.
        """
        abs_path = os.path.abspath(path or self.config_path)

        if abs_path in self._cache:
            self.logger.info("Configuration already loaded from cache")
            self._activate(abs_path)
            return LoadResult(abs_path, LoadStatus.CACHED, self.config)

        self.logger.info(f"Loading configuration from: {abs_path}")
        try:
            document = read_yaml(abs_path)
        except ConfigurationError as e:
            self.logger.error(str(e))
            raise

        self._cache[abs_path] = document
        self._activate(abs_path)
        self.logger.info("Configuration loaded successfully")
        return LoadResult(abs_path, LoadStatus.LOADED, self.config)

    def reset(self) -> None:
        """Clear the cache so the next load() re-parses the file."""
        self._cache.clear()
        self._active = None
        self.active_path = None
        self.logger.info("Configuration cache reset")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Main entry point. Loads the config, then checks syntax, field formats,
        the JSON schema and the required keys.

        Returns:
            Dict[str, Any]: The validated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        result = self.load()
        self.validate_schema(result.path)
        self.validate_required()
        return result.config

    @property
    def config(self) -> Any:
        """Copy of the active document (None when nothing is loaded)."""
        return copy.deepcopy(self._active)

    @property
    def is_loaded(self) -> bool:
        return self.active_path is not None

    # ------------------------------------------------------------------ #
    # Accessors                                                          #
    # ------------------------------------------------------------------ #
    def get(self, dotted_path: str, default: Any = None) -> Any:
        """
        Value at ``dotted_path`` (e.g. "template.name").

        Missing, null or empty values fall back to the built-in default of a
        well-known key, then to ``default``. Never raises, even when no
        configuration has been loaded.
        """
        value = lookup(self._active, dotted_path)
        if not is_blank(value):
            return copy.deepcopy(value)
        if dotted_path in constants.CONFIG_DEFAULTS:
            return copy.deepcopy(constants.CONFIG_DEFAULTS[dotted_path])
        return default

    def get_array(self, dotted_path: str) -> List[Any]:
        """List value at ``dotted_path``; empty for missing or non-list values."""
        value = lookup(self._active, dotted_path)
        if isinstance(value, list):
            return copy.deepcopy(value)
        return []

    def get_keys(self, dotted_path: str) -> List[str]:
        """Keys of the mapping at ``dotted_path``; empty for anything else."""
        value = lookup(self._active, dotted_path)
        if isinstance(value, dict):
            return [str(key) for key in value.keys()]
        return []

    def exists(self, dotted_path: str) -> bool:
        """Presence check against the loaded document only (defaults are ignored)."""
        return not is_blank(lookup(self._active, dotted_path))

    # ------------------------------------------------------------------ #
    # Validation                                                         #
    # ------------------------------------------------------------------ #
    def validate_required(self) -> None:
        """Raise MissingRequiredKeysError naming every absent required key."""
        missing = [key for key in constants.REQUIRED_KEYS if not self.exists(key)]
        if missing:
            self.logger.error("Missing required configuration keys:")
            for key in missing:
                self.logger.error(f"  - {key}")
            raise MissingRequiredKeysError(missing)

    def validate_schema(self, path: Optional[str] = None,
                        schema_path: Optional[str] = None) -> None:
        """
        Validate a configuration file: YAML syntax first, then field formats
        (template.version, k3s.version, template.base_image, architecture),
        then the companion JSON schema. Stops at the first violation.
        """
        path = path or self.active_path or self.config_path
        schema_path = schema_path or self.schema_path

        try:
            validator = ConfigValidator.from_schema_file(schema_path)

            self.logger.info("Validating YAML syntax...")
            document = validator.check_syntax(path)
            self.logger.info("YAML syntax is valid")

            self.logger.info("Validating configuration against schema...")
            validator.validate(document)
        except ConfigurationError as e:
            self.logger.error(f"Configuration validation failed: {e}")
            raise

        self.logger.info("Configuration validation passed")

    # ------------------------------------------------------------------ #
    # Export & reports                                                   #
    # ------------------------------------------------------------------ #
    def export_prefixed(self, prefix: str = constants.DEFAULT_EXPORT_PREFIX,
                        environ: Optional[MutableMapping[str, str]] = None) -> Dict[str, str]:
        """
        Export every scalar in the loaded document as ``PREFIX_<PATH>``
        (path segments upper-cased, joined by underscores).

        Returns:
            Dict[str, str]: The exported variables.
        """
        target = os.environ if environ is None else environ
        head = prefix.rstrip("_") + "_" if prefix else ""

        exported: Dict[str, str] = {}
        for dotted_path, value in _scalar_leaves(self._active):
            name = head + "_".join(_env_segment(seg) for seg in dotted_path.split("."))
            exported[name] = _env_value(value)

        target.update(exported)
        self.logger.info(f"Configuration exported with prefix: {prefix}")
        return exported

    def summary_report(self) -> str:
        lines = [
            "Configuration Summary:",
            f"  Template Name: {self.get('template.name', '')}",
            f"  Template Version: {self.get('template.version', '')}",
            f"  Base Image: {self.get('template.base_image', '')}",
            f"  Architecture: {self.get('template.architecture')}",
            f"  K3s Version: {self.get('k3s.version', '')}",
            f"  Cluster Init: {_env_value(self.get('k3s.cluster_init'))}",
            f"  Timezone: {self.get('system.timezone')}",
            f"  Create K3s User: {_env_value(self.get('security.create_k3s_user'))}",
        ]
        return "\n".join(lines)

    def generate_report(self, output_path: Optional[str] = None) -> str:
        """
        Render a Markdown report of the active configuration.
        Written to ``output_path`` when given; always returned.
        """
        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        g = self.get

        report = "\n".join([
            "# Configuration Report",
            f"Generated: {generated}",
            "",
            "## Template Information",
            f"- Name: {g('template.name', '')}",
            f"- Version: {g('template.version', '')}",
            f"- Description: {g('template.description')}",
            f"- Author: {g('template.author')}",
            f"- Base Image: {g('template.base_image', '')}",
            f"- Architecture: {g('template.architecture')}",
            "",
            "## K3s Configuration",
            f"- Version: {g('k3s.version', '')}",
            f"- Cluster Init: {_env_value(g('k3s.cluster_init'))}",
            f"- Install Options: {', '.join(map(str, g('k3s.install_options')))}",
            "",
            "## System Configuration",
            f"- Timezone: {g('system.timezone')}",
            f"- Locale: {g('system.locale')}",
            f"- Packages to Install: {', '.join(map(str, g('system.packages')))}",
            f"- Packages to Remove: {', '.join(map(str, g('system.remove_packages')))}",
            "",
            "## Security Configuration",
            f"- Disable Root Login: {_env_value(g('security.disable_root_login'))}",
            f"- Create K3s User: {_env_value(g('security.create_k3s_user'))}",
            f"- K3s User: {g('security.k3s_user')}",
            f"- K3s UID: {g('security.k3s_uid')}",
            f"- K3s GID: {g('security.k3s_gid')}",
            "",
            "## Build Configuration",
            f"- Cleanup After Install: {_env_value(g('build.cleanup_after_install'))}",
            f"- Optimize Size: {_env_value(g('build.optimize_size'))}",
            f"- Include Docs: {_env_value(g('build.include_docs'))}",
            f"- Parallel Jobs: {g('build.parallel_jobs')}",
            "",
        ])

        if output_path:
            out = Path(output_path)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(report, encoding='utf-8')
            self.logger.info(f"Configuration report saved to: {out}")
        return report

    def _activate(self, abs_path: str) -> None:
        self.active_path = abs_path
        self._active = self._cache[abs_path]


def _scalar_leaves(node: Any, parent: str = ""):
    """Yield (dotted_path, value) for every non-null scalar under nested mappings."""
    if not isinstance(node, dict):
        return
    for key, value in node.items():
        path = f"{parent}.{key}" if parent else str(key)
        if isinstance(value, dict):
            yield from _scalar_leaves(value, path)
        elif value is not None and not isinstance(value, list):
            yield path, value


def _env_segment(segment: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", str(segment)).upper()


def _env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)
