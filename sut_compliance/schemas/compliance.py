"""
Pydantic Schemas for Compliance Verdicts.

Violations, per-row results, the run summary and the progress protocol.
"""

from typing import Optional

from pydantic import BaseModel, Field

from sut_compliance.core.enums import (
    ComplianceStatus,
    MatchConfidence,
    ProgressPhase,
    RuleKind,
    RuleSource,
    ViolationCode,
)
from sut_compliance.schemas.rules import RuleMasterEntry


class RelatedRow(BaseModel):
    """Another billed line cited as justification for a violation."""

    row_index: int
    procedure_code: str
    procedure_name: str = ""
    date: str = ""
    physician: str = ""
    operation_number: Optional[str] = None


class Violation(BaseModel):
    """One broken rule on one billed line."""

    code: ViolationCode
    explanation: str
    source: RuleSource
    clause: str  # verbatim regulatory text shown as justification
    rule_kind: RuleKind
    from_section_header: bool = False
    rule_confidence: float = 1.0
    related_rows: list[RelatedRow] = Field(default_factory=list)


class ComplianceResult(BaseModel):
    """Verdict for one billed line, same position as the input row."""

    row_index: int
    status: ComplianceStatus
    confidence: MatchConfidence
    confidence_reason: str = ""
    violations: list[Violation] = Field(default_factory=list)
    entry: Optional[RuleMasterEntry] = None
    point_delta: Optional[float] = None
    price_delta: Optional[float] = None
    exempt: bool = False

    @property
    def matched(self) -> bool:
        return self.entry is not None

    def add_violation(self, violation: Violation) -> None:
        """Attach a cross-row violation, upgrading a clean verdict."""
        self.violations.append(violation)
        if self.status == ComplianceStatus.COMPLIANT:
            self.status = ComplianceStatus.NON_COMPLIANT


class ComplianceSummary(BaseModel):
    """Tallies over a full result set."""

    total: int = 0
    compliant: int = 0
    non_compliant: int = 0
    needs_review: int = 0
    unmatched: int = 0
    matched: int = 0
    total_violations: int = 0
    violations_by_kind: dict[RuleKind, int] = Field(default_factory=dict)
    exempt_rows: int = 0
    elapsed_ms: float = 0.0


class ProgressEvent(BaseModel):
    """Single progress message shape shared by every long-running phase."""

    phase: ProgressPhase
    current: int = 0
    total: int = 0
    message: str = ""


class AnalysisOutcome(BaseModel):
    """Full result set of one analysis run."""

    results: list[ComplianceResult]
    summary: ComplianceSummary
