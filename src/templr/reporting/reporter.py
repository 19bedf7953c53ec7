"""
Lint report formatting.

Pure projections of an ordered finding list into text, JSON or GitHub
Actions annotations, plus the mapping from Outcome to a categorical exit
status. Nothing here inspects templates or data.
"""

import json
from collections.abc import Callable, Sequence
from enum import Enum
from itertools import groupby

from templr.lint.findings import Finding, Outcome, Severity

RUN_LEVEL_LABEL = "(configuration)"


class OutputFormat(Enum):
    TEXT = "text"
    JSON = "json"
    GITHUB = "github"


# Names accepted for each format, including the older CLI spelling
FORMAT_ALIASES = {
    "text": OutputFormat.TEXT,
    "json": OutputFormat.JSON,
    "github": OutputFormat.GITHUB,
    "github-actions": OutputFormat.GITHUB,
}


class ExitStatus(Enum):
    """Categorical exit status of a lint run."""

    OK = "ok"
    WARN_ONLY = "warn_only"
    WARN_FAILURE = "warn_failure"
    ERROR = "error"


EXIT_CODES = {
    ExitStatus.OK: 0,
    ExitStatus.WARN_ONLY: 0,
    ExitStatus.WARN_FAILURE: 6,
    ExitStatus.ERROR: 7,
}


def exit_status(outcome: Outcome, findings: Sequence[Finding]) -> ExitStatus:
    """
    Map an outcome to an exit status.

    A failing run is ERROR when any finding is an error, and WARN_FAILURE
    when it failed only because warnings are treated as failures.
    """
    if outcome == Outcome.OK:
        return ExitStatus.OK
    if outcome == Outcome.WARN_ONLY:
        return ExitStatus.WARN_ONLY
    if any(finding.is_error for finding in findings):
        return ExitStatus.ERROR
    return ExitStatus.WARN_FAILURE


def resolve_format(name: str | OutputFormat) -> OutputFormat:
    """
    Look up an output format by name.

    Raises:
        ValueError: If the name is not a known format
    """
    if isinstance(name, OutputFormat):
        return name
    try:
        return FORMAT_ALIASES[name.strip().lower()]
    except KeyError:
        known = ", ".join(sorted(FORMAT_ALIASES))
        raise ValueError(f"unknown output format {name!r} (expected one of: {known})") from None


def _counts(findings: Sequence[Finding]) -> tuple[int, int]:
    errors = sum(1 for finding in findings if finding.is_error)
    return errors, len(findings) - errors


def _location_label(finding: Finding) -> str:
    label = finding.file or RUN_LEVEL_LABEL
    if finding.location is not None:
        label += f":{finding.location.line}:{finding.location.column}"
    return label


def format_text(findings: Sequence[Finding], outcome: Outcome) -> str:
    """
    Human-readable report grouped by file.

    Each finding is printed as `[lint:<severity>:<category>] file:line:col: message`
    followed by an indented hint when it has a suggestion.
    """
    if not findings:
        return "✓ No issues found\n"

    lines: list[str] = []
    for file, group in groupby(findings, key=lambda finding: finding.file):
        lines.append(f"{file or RUN_LEVEL_LABEL}:")
        for finding in group:
            severity = "error" if finding.is_error else "warn"
            prefix = f"[lint:{severity}:{finding.code.category}]"
            lines.append(f"  {prefix} {_location_label(finding)}: {finding.message}")
            if finding.suggestion:
                lines.append(f"      hint: {finding.suggestion}")
        lines.append("")

    errors, warnings = _counts(findings)
    if errors:
        lines.append(f"✗ Found {errors} error(s)")
    if warnings:
        lines.append(f"⚠ Found {warnings} warning(s)")
    lines.append(f"Outcome: {outcome.value}")
    return "\n".join(lines) + "\n"


def format_json(findings: Sequence[Finding], outcome: Outcome) -> str:
    """Machine-readable document with one record per finding."""
    errors, warnings = _counts(findings)
    document = {
        "outcome": outcome.value,
        "errors": errors,
        "warnings": warnings,
        "findings": [finding.to_dict() for finding in findings],
    }
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def _escape_annotation(value: str, is_property: bool = False) -> str:
    value = value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    if is_property:
        value = value.replace(":", "%3A").replace(",", "%2C")
    return value


def format_github(findings: Sequence[Finding], outcome: Outcome) -> str:
    """One `::error`/`::warning` workflow command per finding."""
    lines = []
    for finding in findings:
        level = "error" if finding.severity == Severity.ERROR else "warning"
        properties = []
        if finding.file:
            properties.append(f"file={_escape_annotation(finding.file, True)}")
        if finding.location is not None:
            properties.append(f"line={finding.location.line}")
            properties.append(f"col={finding.location.column}")
        properties.append(f"title={finding.code.value}")
        message = finding.message
        if finding.suggestion:
            message += f" ({finding.suggestion})"
        lines.append(f"::{level} {','.join(properties)}::{_escape_annotation(message)}")
    return "".join(line + "\n" for line in lines)


_FORMATTERS: dict[OutputFormat, Callable[[Sequence[Finding], Outcome], str]] = {
    OutputFormat.TEXT: format_text,
    OutputFormat.JSON: format_json,
    OutputFormat.GITHUB: format_github,
}


def format_report(
    findings: Sequence[Finding],
    outcome: Outcome,
    output_format: str | OutputFormat = OutputFormat.TEXT,
) -> str:
    """
    Render findings in the requested format.

    Params:
        findings: Ordered findings of the run
        outcome: Aggregate outcome
        output_format: "text", "json", "github" (or "github-actions")

    Returns:
        The formatted report

    Raises:
        ValueError: If the format is unknown
    """
    return _FORMATTERS[resolve_format(output_format)](findings, outcome)
