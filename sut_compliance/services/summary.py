"""
Summary Aggregator.

Pure fold over compliance results.
"""

from typing import Iterable

from sut_compliance.core.enums import ComplianceStatus, RuleKind
from sut_compliance.schemas.compliance import ComplianceResult, ComplianceSummary
from sut_compliance.services.exemptions import DEFAULT_EXEMPTIONS, ExemptionTable


def summarize(
    results: Iterable[ComplianceResult],
    elapsed_ms: float = 0.0,
    exemptions: ExemptionTable = DEFAULT_EXEMPTIONS,
) -> ComplianceSummary:
    """
    Tally results per status and per violation kind.

    Args:
        results: Final results (after the cross-row pass)
        elapsed_ms: Wall time of the run, reported as-is
        exemptions: Table deciding which matched codes count as exempt

    Returns:
        ComplianceSummary; the four status counts always add up to total
    """
    summary = ComplianceSummary(
        elapsed_ms=elapsed_ms,
        violations_by_kind={kind: 0 for kind in RuleKind},
    )
    for result in results:
        summary.total += 1
        if result.status == ComplianceStatus.COMPLIANT:
            summary.compliant += 1
        elif result.status == ComplianceStatus.NON_COMPLIANT:
            summary.non_compliant += 1
        elif result.status == ComplianceStatus.UNMATCHED:
            summary.unmatched += 1
        else:
            summary.needs_review += 1

        if result.entry is not None:
            summary.matched += 1
            if exemptions.skips_frequency(result.entry.code):
                summary.exempt_rows += 1

        summary.total_violations += len(result.violations)
        for violation in result.violations:
            summary.violations_by_kind[violation.rule_kind] += 1
    return summary
