"""
Unit tests for the summary aggregator.
"""

from sut_compliance.core.enums import (
    ComplianceStatus,
    MatchConfidence,
    RuleKind,
    RuleSource,
    ViolationCode,
)
from sut_compliance.schemas.compliance import ComplianceResult, Violation
from sut_compliance.services.summary import summarize


def _violation(kind: RuleKind, code: ViolationCode) -> Violation:
    return Violation(
        code=code,
        explanation="test",
        source=RuleSource.EK_2B,
        clause="test",
        rule_kind=kind,
    )


class TestSummarize:
    """Tests for summarize."""

    def test_empty(self):
        """Test an empty result set has zero counts for every kind."""
        summary = summarize([])
        assert summary.total == 0
        assert set(summary.violations_by_kind) == set(RuleKind)
        assert all(count == 0 for count in summary.violations_by_kind.values())

    def test_counts(self, make_entry):
        """Test per-status counts add up and violations are tallied per kind."""
        entry = make_entry("700100")
        results = [
            ComplianceResult(row_index=0, status=ComplianceStatus.COMPLIANT, confidence=MatchConfidence.HIGH, entry=entry),
            ComplianceResult(
                row_index=1,
                status=ComplianceStatus.NON_COMPLIANT,
                confidence=MatchConfidence.HIGH,
                entry=entry,
                violations=[
                    _violation(RuleKind.TIER_RESTRICTION, ViolationCode.TIER),
                    _violation(RuleKind.FREQUENCY_LIMIT, ViolationCode.FREQUENCY),
                ],
            ),
            ComplianceResult(
                row_index=2,
                status=ComplianceStatus.NEEDS_REVIEW,
                confidence=MatchConfidence.MEDIUM,
                entry=entry,
                violations=[_violation(RuleKind.DIAGNOSIS_CONDITION, ViolationCode.DIAGNOSIS)],
            ),
            ComplianceResult(row_index=3, status=ComplianceStatus.UNMATCHED, confidence=MatchConfidence.LOW),
        ]

        summary = summarize(results, elapsed_ms=12.5)

        assert (summary.compliant, summary.non_compliant, summary.needs_review, summary.unmatched) == (1, 1, 1, 1)
        assert summary.total == 4
        assert summary.compliant + summary.non_compliant + summary.needs_review + summary.unmatched == summary.total
        assert summary.matched == 3
        assert summary.total_violations == 3
        assert summary.violations_by_kind[RuleKind.TIER_RESTRICTION] == 1
        assert summary.violations_by_kind[RuleKind.AGE_RESTRICTION] == 0
        assert summary.elapsed_ms == 12.5

    def test_exempt_rows(self, make_entry):
        """Test matched rows with a frequency-exempt code are counted."""
        results = [
            ComplianceResult(
                row_index=0,
                status=ComplianceStatus.COMPLIANT,
                confidence=MatchConfidence.HIGH,
                entry=make_entry("520021"),
            )
        ]
        assert summarize(results).exempt_rows == 1
