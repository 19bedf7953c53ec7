"""
Lint policy model.

The Policy is the finished, immutable set of lint rules for one run. It is
validated with pydantic; use `make_policy` to get ConfigurationError instead
of pydantic's ValidationError on bad input.
"""

from pathlib import PurePath
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from templr.core.path_utils import matches_any, validate_path_format
from templr.exceptions import ConfigurationError
from templr.lint.findings import Severity


class Policy(BaseModel):
    """
    Lint rules for one run.

    Params:
        required_vars: Canonical paths that must exist in the value tree
        disallow_functions: Function names that must not be called
        exclude_globs: Glob patterns matched against template files and
            referenced paths; matches are skipped
        undefined_check_enabled: Report references missing from the tree
        fail_on_warn: Treat warnings as failures in the outcome
        fail_on_undefined: Report undefined references as errors
        strict_mode: Same escalation as fail_on_undefined
        refine_includes: Re-analyze sub-templates with the data their
            include sites pass
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    required_vars: tuple[str, ...] = ()
    disallow_functions: tuple[str, ...] = ()
    exclude_globs: tuple[str, ...] = ()
    undefined_check_enabled: bool = True
    fail_on_warn: bool = False
    fail_on_undefined: bool = False
    strict_mode: bool = False
    refine_includes: bool = False

    @field_validator("required_vars")
    @classmethod
    def _check_required_vars(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for path in value:
            validate_path_format(path, "required variable")
        return value

    @field_validator("disallow_functions", "exclude_globs")
    @classmethod
    def _strip_entries(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(entry.strip() for entry in value)
        if any(not entry for entry in cleaned):
            raise ValueError("entries must be non-empty strings")
        return cleaned

    @property
    def undefined_severity(self) -> Severity:
        if self.fail_on_undefined or self.strict_mode:
            return Severity.ERROR
        return Severity.WARNING

    def is_disallowed(self, function: str) -> bool:
        return function in self.disallow_functions

    def excludes_path(self, path: str) -> bool:
        """Return True if a referenced canonical path is excluded."""
        return matches_any(path, self.exclude_globs)

    def excludes_file(self, file: str) -> bool:
        """Return True if a template file is excluded by path or basename."""
        if not file or not self.exclude_globs:
            return False
        return matches_any(file, self.exclude_globs) or matches_any(
            PurePath(file).name, self.exclude_globs
        )


def make_policy(**values: Any) -> Policy:
    """
    Build a Policy, converting validation failures to ConfigurationError.

    Raises:
        ConfigurationError: If any value is invalid
    """
    try:
        return Policy(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid lint policy: {exc}") from exc


DEFAULT_POLICY = Policy()
