"""
Tests for findings, deduplication and outcome aggregation.
"""

from templr.lint import Finding, FindingCode, Outcome, Severity, compute_outcome, deduplicate
from templr.parsing import Location


def warning(subject="a", location=Location(1, 1), file="t.tpl"):
    return Finding(
        FindingCode.UNDEFINED_REFERENCE, Severity.WARNING, f"variable {subject} is undefined", file, location, subject
    )


def error(subject="env"):
    return Finding(FindingCode.DISALLOWED_FUNCTION, Severity.ERROR, "disallowed", "t.tpl", Location(1, 1), subject)


class TestFinding:
    """Tests for the finding record."""

    def test_categories(self):
        """Test each code has a short category label."""
        assert [code.category for code in FindingCode] == ["parse", "undefined", "function", "required"]

    def test_sort_key(self):
        """Test run-level findings sort before located ones."""
        assert warning(location=None).sort_key == (0, 0)
        assert warning(location=Location(3, 2)).sort_key == (3, 2)

    def test_is_error(self):
        """Test severity helper."""
        assert error().is_error
        assert not warning().is_error


class TestDeduplicate:
    """Tests for finding deduplication."""

    def test_identical_keys_collapse(self):
        """Test findings with the same file, code, subject and location collapse."""
        first = warning()
        duplicate = Finding(
            FindingCode.UNDEFINED_REFERENCE, Severity.WARNING, "other text", "t.tpl", Location(1, 1), "a"
        )
        assert deduplicate([first, duplicate]) == [first]

    def test_distinct_keys_kept(self):
        """Test any differing key component keeps both findings in order."""
        findings = [
            warning(),
            warning(location=Location(2, 1)),
            warning(subject="b"),
            warning(file="u.tpl"),
            error(subject="a"),
        ]
        assert deduplicate(findings) == findings


class TestComputeOutcome:
    """Tests for outcome aggregation."""

    def test_no_findings(self):
        """Test a clean run is OK even with fail_on_warn."""
        assert compute_outcome([]) == Outcome.OK
        assert compute_outcome([], fail_on_warn=True) == Outcome.OK

    def test_warnings_only(self):
        """Test warnings alone give WARN_ONLY."""
        assert compute_outcome([warning()]) == Outcome.WARN_ONLY

    def test_fail_on_warn(self):
        """Test warnings fail when requested."""
        assert compute_outcome([warning()], fail_on_warn=True) == Outcome.FAIL

    def test_any_error(self):
        """Test a single error fails the run."""
        assert compute_outcome([warning(), error()]) == Outcome.FAIL
