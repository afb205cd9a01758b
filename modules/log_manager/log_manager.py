import html
import json
import logging
import re
import shutil
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from utils import constants
from utils.exceptions import LogFileNotFoundError

_SIMPLE_LINE = re.compile(r"^\[([^\]]+)\] \[([^\]]+)\] \[([^\]]+)\] (.*)$")

RECORD_COLUMNS = ['timestamp', 'level', 'component', 'message', 'error_code', 'operation', 'duration']


def parse_log_line(line: str) -> Optional[Dict[str, Any]]:
    """Parse one simple or structured log line; None for anything else."""
    line = line.strip()
    if not line:
        return None

    if line.startswith("{"):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            return None
        if not isinstance(entry, dict):
            return None
        context = entry.get('context') or {}
        return {
            'timestamp': entry.get('timestamp'),
            'level': entry.get('level'),
            'component': entry.get('component'),
            'message': entry.get('message'),
            'error_code': entry.get('error_code') or None,
            'operation': context.get('operation') if isinstance(context, dict) else None,
            'duration': context.get('duration') if isinstance(context, dict) else None,
        }

    match = _SIMPLE_LINE.match(line)
    if match:
        timestamp, level, component, message = match.groups()
        return {
            'timestamp': timestamp, 'level': level, 'component': component, 'message': message,
            'error_code': None, 'operation': None, 'duration': None,
        }
    return None


class LogManager:
    """
    Inspection and housekeeping over the log directory: listing, viewing,
    analysis, search, export and an HTML overview report.
    """

    def __init__(self, log_dir, logger: Optional[logging.Logger] = None):
        self.log_dir = Path(log_dir)
        self.logger = logger or logging.getLogger("log_manager")

    # ------------------------------------------------------------------ #
    # Viewing                                                            #
    # ------------------------------------------------------------------ #
    def list_logs(self) -> pd.DataFrame:
        """Every log file (active and rotated) with size and modification time."""
        rows = []
        if self.log_dir.is_dir():
            for path in sorted(self.log_dir.glob("*.log*")):
                if path.is_file():
                    st = path.stat()
                    rows.append({
                        'name': path.name,
                        'size_bytes': st.st_size,
                        'modified': datetime.fromtimestamp(st.st_mtime).isoformat(timespec='seconds'),
                    })
        return pd.DataFrame(rows, columns=['name', 'size_bytes', 'modified'])

    def show(self, name: str) -> str:
        return self._resolve(name).read_text(encoding='utf-8', errors='replace')

    def tail(self, name: str, lines: int = 20) -> List[str]:
        with open(self._resolve(name), 'r', encoding='utf-8', errors='replace') as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]

    def read_records(self, name: str) -> pd.DataFrame:
        """Parsed records of one log file (unparseable lines are skipped)."""
        with open(self._resolve(name), 'r', encoding='utf-8', errors='replace') as f:
            records = [rec for rec in (parse_log_line(line) for line in f) if rec]
        return pd.DataFrame(records, columns=RECORD_COLUMNS)

    # ------------------------------------------------------------------ #
    # Analysis                                                           #
    # ------------------------------------------------------------------ #
    def analyze(self, name: str) -> Dict[str, Any]:
        """
        Summarize a log file.

        Returns:
            dict with 'level_counts' (every level, zero-filled), 'recent_issues'
            (last 10 WARN/ERROR/FATAL messages), 'error_codes' (top 5 with
            counts) and 'performance' (last 5 operation/duration pairs).
        """
        df = self.read_records(name)

        level_counts = (df['level'].value_counts()
                        .reindex(constants.LOG_LEVELS, fill_value=0))

        issues = df[df['level'].isin(["WARN", "ERROR", "FATAL"])].tail(10)
        recent_issues = [
            f"[{row.timestamp}] [{row.level}] [{row.component}] {row.message}"
            for row in issues.itertuples(index=False)
        ]

        error_codes = df['error_code'].dropna().value_counts().head(5)

        perf = df.dropna(subset=['operation']).tail(5)
        performance = [
            {'operation': row.operation, 'duration': row.duration}
            for row in perf.itertuples(index=False)
        ]

        return {
            'file': name,
            'level_counts': {level: int(count) for level, count in level_counts.items()},
            'recent_issues': recent_issues,
            'error_codes': {code: int(count) for code, count in error_codes.items()},
            'performance': performance,
        }

    def search(self, pattern: str, name: Optional[str] = None) -> List[Tuple[str, int, str]]:
        """Regex search in one file or in every active ``*.log``; returns (file, line_no, line)."""
        regex = re.compile(pattern)
        paths = [self._resolve(name)] if name else sorted(self.log_dir.glob("*" + constants.LOG_FILE_SUFFIX))

        matches: List[Tuple[str, int, str]] = []
        for path in paths:
            with open(path, 'r', encoding='utf-8', errors='replace') as f:
                for line_no, line in enumerate(f, start=1):
                    if regex.search(line):
                        matches.append((path.name, line_no, line.rstrip("\n")))
        return matches

    # ------------------------------------------------------------------ #
    # Export & reports                                                   #
    # ------------------------------------------------------------------ #
    def export(self, name: str, fmt: str = "txt") -> Path:
        """
        Export a log file next to it as ``<name>_export.<fmt>``, dots in the
        name replaced so the export never matches the log globs.

        txt copies the file, csv writes timestamp/level/component/message of
        every parsed record, json writes the structured entries as one array.
        """
        source = self._resolve(name)
        fmt = fmt.lower()
        output = self.log_dir / f"{Path(name).name.replace('.', '_')}_export.{fmt}"

        if fmt == "txt":
            shutil.copyfile(source, output)
        elif fmt == "csv":
            df = self.read_records(name)
            df[['timestamp', 'level', 'component', 'message']].to_csv(output, index=False)
        elif fmt == "json":
            entries = []
            with open(source, 'r', encoding='utf-8', errors='replace') as f:
                for line in f:
                    if line.lstrip().startswith("{"):
                        try:
                            entries.append(json.loads(line))
                        except json.JSONDecodeError:
                            continue
            output.write_text(json.dumps(entries, indent=2, ensure_ascii=False), encoding='utf-8')
        else:
            raise ValueError(f"Unsupported export format: {fmt}")

        self.logger.info(f"Log exported to: {output}")
        return output

    def generate_report(self, output_path: Optional[str] = None) -> Path:
        """HTML overview of the active log files and their error/warning counts."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output = Path(output_path) if output_path else self.log_dir / f"log_report_{stamp}.html"

        overview_rows, issue_rows = [], []
        for path in sorted(self.log_dir.glob("*" + constants.LOG_FILE_SUFFIX)):
            if not path.is_file():
                continue
            st = path.stat()
            records = self.read_records(path.name)
            with open(path, 'rb') as f:
                line_count = sum(1 for _ in f)
            overview_rows.append({
                'File': path.name,
                'Size (bytes)': st.st_size,
                'Modified': datetime.fromtimestamp(st.st_mtime).isoformat(timespec='seconds'),
                'Lines': line_count,
            })
            issue_rows.append({
                'File': path.name,
                'Errors': int((records['level'] == "ERROR").sum()),
                'Warnings': int((records['level'] == "WARN").sum()),
            })

        overview = pd.DataFrame(overview_rows, columns=['File', 'Size (bytes)', 'Modified', 'Lines'])
        issues = pd.DataFrame(issue_rows, columns=['File', 'Errors', 'Warnings'])

        document = "\n".join([
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            "    <meta charset=\"utf-8\">",
            "    <title>Log Analysis Report</title>",
            "    <style>",
            "        body { font-family: Arial, sans-serif; margin: 20px; }",
            "        .header { background: #f0f0f0; padding: 10px; border-radius: 5px; }",
            "        table { border-collapse: collapse; width: 100%; }",
            "        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }",
            "        th { background-color: #f2f2f2; }",
            "    </style>",
            "</head>",
            "<body>",
            "    <div class=\"header\">",
            "        <h1>Log Analysis Report</h1>",
            f"        <p>Generated: {datetime.now().isoformat(timespec='seconds')}</p>",
            f"        <p>Log directory: {html.escape(str(self.log_dir))}</p>",
            "    </div>",
            "    <h2>Log Files</h2>",
            overview.to_html(index=False),
            "    <h2>Errors and Warnings</h2>",
            issues.to_html(index=False),
            "</body>",
            "</html>",
        ])

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(document, encoding='utf-8')
        self.logger.info(f"Log report generated: {output}")
        return output

    def _resolve(self, name: str) -> Path:
        path = self.log_dir / name
        if not path.is_file():
            raise LogFileNotFoundError(f"Log file not found: {path}")
        return path
