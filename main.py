#!/usr/bin/env python
"""
PVE LXC K3s Template - Configuration & Log Tooling Entry Point
Validates and queries the template configuration and manages build logs.
"""
import sys
import json
import shlex
import argparse
import traceback
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from modules.config_manager import ConfigurationManager
from modules.logging_config import LogService
from modules.log_manager import LogManager
from utils import constants
from utils.error_handling import handle_operation_errors
from utils.exceptions import ConfigNotFoundError, TemplateBuildError, OperationError


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="PVE LXC K3s Template - configuration and log tooling",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Path to the template YAML (falls back to $CONFIG_FILE, then config/template.yaml)")
    parser.add_argument("--schema", type=str, default=constants.DEFAULT_SCHEMA_PATH,
                        help="Path to the JSON schema for the template configuration")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--log-format", choices=constants.LOG_FORMATS, default=None,
                        help="Log record format (defaults to $LOG_FORMAT or structured)")
    parser.add_argument("--log-dir", type=str, default=None,
                        help="Directory for component log files (defaults to $LOG_DIR or logs)")

    areas = parser.add_subparsers(dest="area", required=True)

    # --- config ---
    config_parser = areas.add_parser("config", help="Validate and query the template configuration")
    config_cmds = config_parser.add_subparsers(dest="command", required=True)
    config_cmds.add_parser("validate", help="Validate syntax, formats, schema and required keys")
    config_cmds.add_parser("summary", help="Print a short configuration summary")
    report = config_cmds.add_parser("report", help="Generate a Markdown configuration report")
    report.add_argument("output", nargs="?", default=None)
    get = config_cmds.add_parser("get", help="Print the value at a dotted key path")
    get.add_argument("key")
    get.add_argument("default", nargs="?", default=None)
    array = config_cmds.add_parser("array", help="Print list items, one per line")
    array.add_argument("key")
    keys = config_cmds.add_parser("keys", help="Print the keys of a mapping")
    keys.add_argument("key")
    exists = config_cmds.add_parser("exists", help="Exit 0 if the key is present")
    exists.add_argument("key")
    export = config_cmds.add_parser("export", help="Print shell export lines for every scalar key")
    export.add_argument("prefix", nargs="?", default=constants.DEFAULT_EXPORT_PREFIX)

    # --- logs ---
    logs_parser = areas.add_parser("logs", help="Inspect and maintain component log files")
    log_cmds = logs_parser.add_subparsers(dest="command", required=True)
    log_cmds.add_parser("list", help="List all log files")
    show = log_cmds.add_parser("show", help="Print a log file")
    show.add_argument("file")
    tail = log_cmds.add_parser("tail", help="Print the last lines of a log file")
    tail.add_argument("file")
    tail.add_argument("lines", nargs="?", type=int, default=20)
    stats = log_cmds.add_parser("stats", help="Statistics for one file or the whole log directory")
    stats.add_argument("file", nargs="?", default=None)
    rotate = log_cmds.add_parser("rotate", help="Rotate a log file if it exceeds LOG_MAX_SIZE")
    rotate.add_argument("file")
    cleanup = log_cmds.add_parser("cleanup", help="Delete rotated log files older than N days")
    cleanup.add_argument("days", nargs="?", type=int, default=constants.DEFAULT_CLEANUP_DAYS)
    analyze = log_cmds.add_parser("analyze", help="Summarize levels, error codes and performance records")
    analyze.add_argument("file")
    search = log_cmds.add_parser("search", help="Regex search in one or all log files")
    search.add_argument("pattern")
    search.add_argument("file", nargs="?", default=None)
    log_export = log_cmds.add_parser("export", help="Export a log file as txt, csv or json")
    log_export.add_argument("file")
    log_export.add_argument("format", nargs="?", choices=["txt", "csv", "json"], default="txt")
    log_report = log_cmds.add_parser("report", help="Generate an HTML log report")
    log_report.add_argument("output", nargs="?", default=None)

    return parser.parse_args(argv)


class TemplateToolCLI:
    """Dispatches parsed arguments to the configuration and log services."""

    def __init__(self, args: argparse.Namespace, log_service: LogService, out=None):
        self.args = args
        self.log_service = log_service
        self.out = out or sys.stdout
        if args.area == "logs":
            self.component = constants.LOG_MANAGER_COMPONENT
        elif args.command == "validate":
            self.component = constants.VALIDATOR_COMPONENT
        else:
            self.component = constants.CONFIG_COMPONENT

    def run(self) -> int:
        if self.args.area == "config":
            return self.run_config()
        return self.run_logs()

    @handle_operation_errors("Configuration command")
    def run_config(self) -> int:
        args = self.args
        manager = ConfigurationManager(
            config_path=args.config,
            schema_path=args.schema,
            logger=self.log_service.get_logger(self.component),
        )

        if args.command == "validate":
            with self.log_service.timed(self.component, "config validation"):
                manager.load_and_validate()
            self._print(manager.summary_report())
            self.log_service.info(self.component, "Configuration validation completed successfully")
            return 0

        if args.command in ("get", "array", "keys", "exists"):
            # Queries fall back to built-in defaults without a config file
            try:
                manager.load()
            except ConfigNotFoundError as e:
                self.log_service.warn(self.component, f"{e}; using built-in defaults")
        else:
            manager.load()

        if args.command == "summary":
            self._print(manager.summary_report())
        elif args.command == "report":
            report = manager.generate_report(args.output)
            if not args.output:
                self._print(report)
        elif args.command == "get":
            self._print(_render(manager.get(args.key, args.default)))
        elif args.command == "array":
            for item in manager.get_array(args.key):
                self._print(_render(item))
        elif args.command == "keys":
            for key in manager.get_keys(args.key):
                self._print(key)
        elif args.command == "exists":
            present = manager.exists(args.key)
            self._print("true" if present else "false")
            return 0 if present else 1
        elif args.command == "export":
            exported = manager.export_prefixed(args.prefix, environ={})
            for name, value in exported.items():
                self._print(f"export {name}={shlex.quote(value)}")
        return 0

    @handle_operation_errors("Log command")
    def run_logs(self) -> int:
        args = self.args
        manager = LogManager(self.log_service.log_dir, logger=self.log_service.get_logger(self.component))

        if args.command == "list":
            listing = manager.list_logs()
            self._print(listing.to_string(index=False) if not listing.empty else "No log files found")
        elif args.command == "show":
            self._print(manager.show(args.file), end="")
        elif args.command == "tail":
            for line in manager.tail(args.file, args.lines):
                self._print(line)
        elif args.command == "stats":
            self._print(json.dumps(self.log_service.stats(args.file), indent=2))
        elif args.command == "rotate":
            rotated = self.log_service.rotate(args.file)
            self._print("rotated" if rotated else "not rotated (below LOG_MAX_SIZE or missing)")
        elif args.command == "cleanup":
            removed = self.log_service.cleanup_older_than(args.days)
            self._print(f"Removed {len(removed)} file(s)")
        elif args.command == "analyze":
            self._print(json.dumps(manager.analyze(args.file), indent=2))
        elif args.command == "search":
            matches = manager.search(args.pattern, args.file)
            for file_name, line_no, line in matches:
                self._print(f"{file_name}:{line_no}: {line}")
            if not matches:
                self._print("No matches found")
        elif args.command == "export":
            self._print(str(manager.export(args.file, args.format)))
        elif args.command == "report":
            self._print(str(manager.generate_report(args.output)))
        return 0

    def _print(self, text: str, end: str = "\n") -> None:
        self.out.write(f"{text}{end}")


def _render(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return "" if value is None else str(value)


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        int: Exit code (0 for success, 1 for errors, 130 on interrupt)
    """
    log_service = None
    component = constants.CONFIG_COMPONENT

    try:
        args = parse_arguments(argv)
        log_service = LogService.from_env(
            debug=True if args.debug else None,
            fmt=args.log_format,
            log_dir=args.log_dir,
        )
        cli = TemplateToolCLI(args, log_service)
        component = cli.component
        return cli.run()

    except OperationError:
        # Already classified and logged with suggestions
        return 1

    except TemplateBuildError as e:
        # Known toolchain errors
        if log_service:
            log_service.error(component, str(e), error_code=type(e).__name__)
        else:
            print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        if log_service:
            log_service.warn(component, "Interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        # Unexpected errors
        if log_service:
            log_service.handle(f"Unexpected error: {e}", component)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
