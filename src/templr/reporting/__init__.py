"""
Lint report output.

Formats findings for people, machines and CI annotations, and maps the
run outcome to an exit status.
"""

from templr.reporting.reporter import (
    EXIT_CODES,
    FORMAT_ALIASES,
    ExitStatus,
    OutputFormat,
    exit_status,
    format_github,
    format_json,
    format_report,
    format_text,
    resolve_format,
)

__all__ = [
    "EXIT_CODES",
    "ExitStatus",
    "FORMAT_ALIASES",
    "OutputFormat",
    "exit_status",
    "format_github",
    "format_json",
    "format_report",
    "format_text",
    "resolve_format",
]
