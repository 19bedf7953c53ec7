"""
Lint finding model.

A Finding is one classified problem in one template (or, for required
variables, in the run's data). The aggregate Outcome of a run is a pure
function of its findings and the fail-on-warn policy.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from templr.parsing import Location


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class FindingCode(Enum):
    """Classification of a finding."""

    SYNTAX_ERROR = "SyntaxError"
    UNDEFINED_REFERENCE = "UndefinedReference"
    DISALLOWED_FUNCTION = "DisallowedFunction"
    MISSING_REQUIRED_VAR = "MissingRequiredVar"

    @property
    def category(self) -> str:
        """Short category label used in text and annotation output."""
        return _CATEGORIES[self]


_CATEGORIES = {
    FindingCode.SYNTAX_ERROR: "parse",
    FindingCode.UNDEFINED_REFERENCE: "undefined",
    FindingCode.DISALLOWED_FUNCTION: "function",
    FindingCode.MISSING_REQUIRED_VAR: "required",
}


class Outcome(Enum):
    """Aggregate result of a lint run."""

    OK = "ok"
    WARN_ONLY = "warn_only"
    FAIL = "fail"


@dataclass(frozen=True)
class Finding:
    """
    One lint finding.

    Params:
        code: What kind of problem this is
        severity: Error or warning
        message: Short human-readable description
        file: Template file, "" for run-level findings
        location: Position in the file, None when not derived from a directive
        subject: Canonical path or function name the finding is about
        suggestion: Actionable hint for fixing the problem
    """

    code: FindingCode
    severity: Severity
    message: str
    file: str = ""
    location: Location | None = None
    subject: str = ""
    suggestion: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    @property
    def dedup_key(self) -> tuple:
        return (self.file, self.code, self.subject, self.location)

    @property
    def sort_key(self) -> tuple[int, int]:
        if self.location is None:
            return (0, 0)
        return (self.location.line, self.location.column)

    def to_dict(self) -> dict:
        """Return a JSON-compatible record with every field."""
        return {
            "code": self.code.value,
            "category": self.code.category,
            "severity": self.severity.value,
            "file": self.file,
            "line": self.location.line if self.location else None,
            "column": self.location.column if self.location else None,
            "subject": self.subject,
            "message": self.message,
            "suggestion": self.suggestion,
        }


def deduplicate(findings: Iterable[Finding]) -> list[Finding]:
    """Drop repeated findings, keeping the first occurrence of each key."""
    seen: set[tuple] = set()
    unique: list[Finding] = []
    for finding in findings:
        key = finding.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique


def compute_outcome(findings: Iterable[Finding], fail_on_warn: bool = False) -> Outcome:
    """
    Aggregate findings into an Outcome.

    Params:
        findings: All findings of the run
        fail_on_warn: Treat warnings as failures

    Returns:
        OK when there are no findings, WARN_ONLY when there are only warnings
        and fail_on_warn is off, FAIL otherwise
    """
    findings = list(findings)
    if not findings:
        return Outcome.OK
    if any(finding.is_error for finding in findings) or fail_on_warn:
        return Outcome.FAIL
    return Outcome.WARN_ONLY
