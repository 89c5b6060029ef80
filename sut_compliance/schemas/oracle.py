"""
Pydantic Schemas for the Rule-Extraction Oracle Boundary.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from sut_compliance.core.enums import AuditStatus, RuleKind, RuleSource
from sut_compliance.schemas.rules import ParsedRule


class OracleRequestItem(BaseModel):
    """One description sent to the oracle; local_index is batch-relative."""

    local_index: int
    code: str
    source: RuleSource
    description: str


class OracleRawRule(BaseModel):
    """A rule exactly as the oracle replied, before typing."""

    kind: str
    params: dict[str, Any] = Field(default_factory=dict)
    confidence: Optional[float] = None
    explanation: Optional[str] = None


class OracleRawItem(BaseModel):
    """Reply value for one local index."""

    rules: list[OracleRawRule] = Field(default_factory=list)
    cross_refs: list[str] = Field(default_factory=list, alias="crossRefs")
    explanation: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class OracleItemResult(BaseModel):
    """Typed oracle output for one description."""

    rules: list[ParsedRule] = Field(default_factory=list)
    cross_refs: list[str] = Field(default_factory=list)
    explanation: Optional[str] = None


# =============================================================================
# Regex vs Oracle Audit
# =============================================================================


class RuleDifference(BaseModel):
    """Comparison of the regex and oracle rule of one kind for one entry."""

    kind: RuleKind
    status: AuditStatus
    regex_rule: Optional[ParsedRule] = None
    oracle_rule: Optional[ParsedRule] = None


class AuditEntry(BaseModel):
    """Per-code audit line; entries where both sides are empty are not kept."""

    code: str
    name: str = ""
    source: RuleSource
    description: str
    section_header: Optional[str] = None
    regex_rules: list[ParsedRule] = Field(default_factory=list)
    oracle_rules: list[ParsedRule] = Field(default_factory=list)
    differences: list[RuleDifference] = Field(default_factory=list)
    status: AuditStatus


class MissedPattern(BaseModel):
    """A kind/mode the oracle found and the regex extractor did not."""

    pattern: str
    count: int = 0
    examples: list[str] = Field(default_factory=list)


class RuleAuditReport(BaseModel):
    """Result of comparing the regex rule set with the oracle rule set."""

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_entries: int = 0
    entries_with_description: int = 0
    texts_analyzed: int = 0
    match_count: int = 0
    regex_only_count: int = 0
    oracle_only_count: int = 0
    conflict_count: int = 0
    both_empty_count: int = 0
    entries: list[AuditEntry] = Field(default_factory=list)
    missed_patterns: list[MissedPattern] = Field(default_factory=list)
