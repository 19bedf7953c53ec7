"""
Lint engine and finding model.

Cross-references extracted references and calls against the value tree
and a Policy, producing ordered findings and an aggregate outcome.
"""

from templr.lint.engine import (
    LintEngine,
    LintReport,
    TemplateSource,
    lint_sources,
    suggest_for_path,
)
from templr.lint.findings import (
    Finding,
    FindingCode,
    Outcome,
    Severity,
    compute_outcome,
    deduplicate,
)
from templr.lint.policy import DEFAULT_POLICY, Policy, make_policy

__all__ = [
    "DEFAULT_POLICY",
    "Finding",
    "FindingCode",
    "LintEngine",
    "LintReport",
    "Outcome",
    "Policy",
    "Severity",
    "TemplateSource",
    "compute_outcome",
    "deduplicate",
    "lint_sources",
    "make_policy",
    "suggest_for_path",
]
