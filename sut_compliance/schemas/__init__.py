"""
Pydantic Schemas for the SUT Compliance Engine.
"""

from sut_compliance.schemas.billing import BillingRow, InstitutionInfo
from sut_compliance.schemas.compliance import (
    AnalysisOutcome,
    ComplianceResult,
    ComplianceSummary,
    ProgressEvent,
    RelatedRow,
    Violation,
)
from sut_compliance.schemas.oracle import (
    AuditEntry,
    MissedPattern,
    OracleItemResult,
    OracleRawItem,
    OracleRawRule,
    OracleRequestItem,
    RuleAuditReport,
    RuleDifference,
)
from sut_compliance.schemas.rules import (
    AgeParams,
    BuildStats,
    CrossReference,
    DentalParams,
    DiagnosisParams,
    FrequencyParams,
    GeneralNoteParams,
    MutualExclusionParams,
    ParsedRule,
    RuleMasterEntry,
    RuleParams,
    RuleTable,
    SourceDocument,
    SourceRecord,
    SpecialtyParams,
    SutArticle,
    TierParams,
)
from sut_compliance.schemas.snapshot import (
    RuleSnapshot,
    SnapshotMetadata,
    SnapshotStats,
    SourceProvenance,
)

__all__ = [
    "AgeParams",
    "AnalysisOutcome",
    "AuditEntry",
    "BillingRow",
    "BuildStats",
    "ComplianceResult",
    "ComplianceSummary",
    "CrossReference",
    "DentalParams",
    "DiagnosisParams",
    "FrequencyParams",
    "GeneralNoteParams",
    "InstitutionInfo",
    "MissedPattern",
    "MutualExclusionParams",
    "OracleItemResult",
    "OracleRawItem",
    "OracleRawRule",
    "OracleRequestItem",
    "ParsedRule",
    "ProgressEvent",
    "RelatedRow",
    "RuleAuditReport",
    "RuleDifference",
    "RuleMasterEntry",
    "RuleParams",
    "RuleSnapshot",
    "RuleTable",
    "SnapshotMetadata",
    "SnapshotStats",
    "SourceDocument",
    "SourceProvenance",
    "SourceRecord",
    "SpecialtyParams",
    "SutArticle",
    "TierParams",
    "Violation",
]
