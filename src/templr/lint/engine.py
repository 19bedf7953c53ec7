"""
Lint engine for templr.

Runs the static-analysis pipeline for a batch of templates: parse every
source, collect named sub-templates into a registry, extract references
and calls per file, and cross-reference them against the value tree and
the policy. Files are analyzed one after another in input order.
"""

import difflib
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from templr.analysis import (
    Extraction,
    FunctionCall,
    ReferenceExtractor,
    ReferencePath,
    TemplateRegistry,
)
from templr.core.path_utils import join_path, parent_path, split_path_components
from templr.core.value_tree import ValueTree
from templr.lint.findings import (
    Finding,
    FindingCode,
    Outcome,
    Severity,
    compute_outcome,
    deduplicate,
)
from templr.lint.policy import DEFAULT_POLICY, Policy
from templr.parsing import Delimiters, ParseResult, SyntaxIssue, TemplateParser

logger = logging.getLogger(__name__)

SUGGESTION_CUTOFF = 0.6


@dataclass(frozen=True)
class TemplateSource:
    """A template file supplied by the caller: path plus raw text."""

    path: str
    text: str

    @classmethod
    def from_file(cls, path: str | Path) -> "TemplateSource":
        return cls(str(path), Path(path).read_text(encoding="utf-8"))


@dataclass
class LintReport:
    """Ordered findings and aggregate outcome of one lint run."""

    findings: list[Finding]
    outcome: Outcome
    files: list[str] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return sum(1 for finding in self.findings if finding.severity == Severity.ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for finding in self.findings if finding.severity == Severity.WARNING)

    def by_code(self, code: FindingCode) -> list[Finding]:
        return [finding for finding in self.findings if finding.code == code]


def suggest_for_path(tree: ValueTree, path: str) -> str:
    """
    Build the hint for an undefined reference.

    Suggests the closest sibling key when one exists, otherwise how to
    supply the value.
    """
    parts = split_path_components(path)
    parent = parent_path(path)
    siblings = tree.keys(parent)
    close = difflib.get_close_matches(parts[-1], siblings, n=1, cutoff=SUGGESTION_CUTOFF)
    if close:
        return f"did you mean '{join_path(parent, [close[0]])}'?"
    return f"define '{path}' in a data file or override it with '{path}=<value>'"


class LintEngine:
    """
    Cross-references templates against a value tree and a policy.

    Example:
        engine = LintEngine(ValueTree.from_python({"name": "x"}))
        report = engine.run([TemplateSource("hello.tpl", "Hello {{ .name }}")])
        assert report.outcome == Outcome.OK
    """

    def __init__(
        self,
        tree: ValueTree,
        policy: Policy = DEFAULT_POLICY,
        delimiters: Delimiters | None = None,
        helpers: Sequence[TemplateSource] = (),
        known_functions: Iterable[str] | None = None,
    ):
        """
        Initialize the engine.

        Params:
            tree: Merged value tree, read-only for the whole run
            policy: Lint rules
            delimiters: Action delimiters of the templates
            helpers: Sources only used for their named sub-templates
            known_functions: When given, unknown function names are syntax errors
        """
        self.tree = tree
        self.policy = policy
        self.helpers = list(helpers)
        self.parser = TemplateParser(delimiters, known_functions)

    def run(self, sources: Sequence[TemplateSource]) -> LintReport:
        """
        Lint a batch of templates.

        Params:
            sources: Templates to lint, in reporting order

        Returns:
            LintReport with run-level findings first, then each file's
            findings in input order, each file ordered by location

        Raises:
            ScopeStackError: On an internal scope tracking defect
        """
        targets = []
        for source in sources:
            if self.policy.excludes_file(source.path):
                logger.debug("skipping excluded template %s", source.path)
                continue
            targets.append(source)

        parsed = [self.parser.parse(source.text, source.path) for source in targets]
        helper_results = [self.parser.parse(helper.text, helper.path) for helper in self.helpers]
        for result in helper_results:
            if not result.ok:
                logger.warning("helper %s has %d syntax issue(s)", result.file, len(result.errors))
        registry = TemplateRegistry.from_results([*helper_results, *parsed])

        findings = self.check_required_vars()
        for result in parsed:
            findings.extend(self.diagnose_file(result, registry))

        findings = deduplicate(findings)
        outcome = compute_outcome(findings, self.policy.fail_on_warn)
        logger.debug("linted %d file(s): %d finding(s), outcome %s", len(parsed), len(findings), outcome.value)
        return LintReport(findings, outcome, [source.path for source in targets])

    def diagnose_file(self, result: ParseResult, registry: TemplateRegistry | None = None) -> list[Finding]:
        """
        Produce the findings of one parsed template.

        Params:
            result: Parsed template
            registry: Sub-templates visible to include sites

        Returns:
            Findings ordered by ascending location
        """
        findings = [self._syntax_finding(result.file, issue) for issue in result.errors]
        extraction = ReferenceExtractor(registry, self.policy.refine_includes).extract(result)
        findings.extend(self.check_references(extraction))
        findings.extend(self.check_calls(extraction))
        findings.sort(key=lambda finding: finding.sort_key)
        return findings

    def check_references(self, extraction: Extraction) -> list[Finding]:
        if not self.policy.undefined_check_enabled:
            return []
        findings = []
        for ref in extraction.references:
            if self.policy.excludes_path(ref.path) or self.tree.exists(ref.path):
                continue
            findings.append(self._undefined_finding(ref))
        return findings

    def check_calls(self, extraction: Extraction) -> list[Finding]:
        return [
            self._disallowed_finding(call)
            for call in extraction.calls
            if self.policy.is_disallowed(call.name)
        ]

    def check_required_vars(self) -> list[Finding]:
        """Report required paths missing from the tree, whether or not any template uses them."""
        return [
            Finding(
                code=FindingCode.MISSING_REQUIRED_VAR,
                severity=Severity.ERROR,
                message=f"required variable {path} is not defined",
                subject=path,
                suggestion=f"set '{path}' in a data file or with '{path}=<value>'",
            )
            for path in self.policy.required_vars
            if not self.tree.exists(path)
        ]

    # Finding construction

    def _syntax_finding(self, file: str, issue: SyntaxIssue) -> Finding:
        return Finding(
            code=FindingCode.SYNTAX_ERROR,
            severity=Severity.ERROR,
            message=issue.message,
            file=file,
            location=issue.location,
            subject=issue.message,
        )

    def _undefined_finding(self, ref: ReferencePath) -> Finding:
        message = f"variable {ref.path} is undefined"
        if ref.via:
            message += f" (via template {ref.via!r})"
        return Finding(
            code=FindingCode.UNDEFINED_REFERENCE,
            severity=self.policy.undefined_severity,
            message=message,
            file=ref.file,
            location=ref.location,
            subject=ref.path,
            suggestion=suggest_for_path(self.tree, ref.path),
        )

    def _disallowed_finding(self, call: FunctionCall) -> Finding:
        return Finding(
            code=FindingCode.DISALLOWED_FUNCTION,
            severity=Severity.ERROR,
            message=f"disallowed function {call.name!r} is used",
            file=call.file,
            location=call.location,
            subject=call.name,
            suggestion=f"remove the call to '{call.name}' or drop it from disallow_functions",
        )


def lint_sources(
    sources: Sequence[TemplateSource],
    tree: ValueTree,
    policy: Policy = DEFAULT_POLICY,
    delimiters: Delimiters | None = None,
    helpers: Sequence[TemplateSource] = (),
) -> LintReport:
    """Lint templates with a one-off LintEngine; see LintEngine.run."""
    engine = LintEngine(tree, policy, delimiters, helpers)
    return engine.run(sources)
