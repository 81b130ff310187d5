"""Output formatting for command results.

Separates display concerns from workflow logic. Commands print either
human-readable lines or a single JSON document.
"""

import json
import sys

STATUS_MARKS = {
    "ok": "[OK]  ",
    "warn": "[WARN]",
    "error": "[FAIL]",
    "skip": "[SKIP]",
    "pending": "[ .. ]",
}


def print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def status_line(status: str, message: str) -> None:
    print(f"  {STATUS_MARKS.get(status, '      ')} {message}")


def header(title: str) -> None:
    print(f"\n{title}")
    print("-" * len(title))


def detail_lines(lines, indent: int = 8) -> None:
    for line in lines:
        print(" " * indent + str(line))


def error(message: str) -> None:
    print(f"ERROR: {message}", file=sys.stderr)


def report_error(message: str, as_json: bool = False) -> None:
    """Emit an error as JSON on stdout or as text on stderr."""
    if as_json:
        print_json({"ok": False, "error": message})
    else:
        error(message)
