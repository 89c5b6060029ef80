"""
Pydantic Schemas for Regulatory Rules.

Typed rule payloads (one per rule kind), the parsed rule itself, the
per-code rule master entry and the raw regulatory source records the
builder consumes.
"""

import re
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from sut_compliance.core.enums import (
    AgeMode,
    ExtractionMethod,
    FrequencyPeriod,
    RuleKind,
    RuleSource,
    SpecialtyMode,
    TierMode,
)


# =============================================================================
# Rule Parameter Payloads
# =============================================================================


class TierParams(BaseModel):
    """Allowed institution tiers."""

    kind: Literal["tier_restriction"] = "tier_restriction"
    tiers: list[int] = Field(min_length=1)
    mode: TierMode = TierMode.EXACT


class SpecialtyParams(BaseModel):
    """Specialties a procedure is restricted to (or excluded from)."""

    kind: Literal["specialty_restriction"] = "specialty_restriction"
    specialties: list[str] = Field(min_length=1)
    mode: SpecialtyMode = SpecialtyMode.INCLUDED


class DiagnosisParams(BaseModel):
    """ICD-10 codes (or a free-text condition) required for billing."""

    kind: Literal["diagnosis_condition"] = "diagnosis_condition"
    codes: list[str] = Field(default_factory=list)
    condition: Optional[str] = None


class MutualExclusionParams(BaseModel):
    """Codes that cannot be billed in the same session."""

    kind: Literal["mutual_exclusion"] = "mutual_exclusion"
    codes: list[str] = Field(default_factory=list)
    any_other: bool = False  # conflicts with every other code in the session
    same_tooth: bool = False


class FrequencyParams(BaseModel):
    """Count-per-period or minimum-interval limit."""

    kind: Literal["frequency_limit"] = "frequency_limit"
    period: FrequencyPeriod
    limit: int = Field(ge=1)
    same_specialty: bool = False
    same_tooth: bool = False

    @property
    def interval_days(self) -> Optional[int]:
        """Minimum gap in days for interval limits, None for count limits."""
        if self.period == FrequencyPeriod.DAY_INTERVAL:
            return self.limit
        if self.period == FrequencyPeriod.MONTH_INTERVAL:
            return self.limit * 30
        return None


class DentalParams(BaseModel):
    """Dental treatment clause; the evaluator only needs its presence."""

    kind: Literal["dental_treatment"] = "dental_treatment"
    note: str = ""


class AgeParams(BaseModel):
    """Patient age bounds."""

    kind: Literal["age_restriction"] = "age_restriction"
    mode: AgeMode
    min_age: Optional[int] = None
    max_age: Optional[int] = None

    def describe(self) -> str:
        if self.mode == AgeMode.UNDER:
            return f"{self.max_age} yaş altı"
        if self.mode == AgeMode.OVER:
            return f"{self.min_age} yaş üstü"
        return f"{self.min_age}-{self.max_age} yaş arası"


class GeneralNoteParams(BaseModel):
    """Catch-all note, optionally the text of a legislation article."""

    kind: Literal["general_note"] = "general_note"
    text: str = ""
    article_no: Optional[str] = None
    article_title: Optional[str] = None


RuleParams = Annotated[
    Union[
        TierParams,
        SpecialtyParams,
        DiagnosisParams,
        MutualExclusionParams,
        FrequencyParams,
        DentalParams,
        AgeParams,
        GeneralNoteParams,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# Parsed Rule
# =============================================================================


class ParsedRule(BaseModel):
    """One structured rule derived from one regulatory clause."""

    params: RuleParams
    source_text: str
    origin_source: Optional[RuleSource] = None
    from_section_header: bool = False
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    extraction_method: ExtractionMethod = ExtractionMethod.REGEX
    explanation: Optional[str] = None

    @property
    def kind(self) -> RuleKind:
        return RuleKind(self.params.kind)


# =============================================================================
# Regulatory Source Records
# =============================================================================


def parse_turkish_number(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Parse a point/price cell.

    Accepts plain numbers and Turkish formatted strings such as
    ``"1.234,50 TL"``. Returns None for empty or unparseable cells.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = re.sub(r"\s*TL\s*", "", str(value), flags=re.IGNORECASE).strip()
    if not text:
        return None
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return None


class SourceRecord(BaseModel):
    """One row of a procedure list as delivered by the ingestion layer."""

    code: str = ""
    name: str = ""
    description: str = ""
    points: Optional[float] = None
    price: Optional[float] = None
    group: str = ""

    @field_validator("code", "name", "description", "group", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("points", "price", mode="before")
    @classmethod
    def coerce_number(cls, v: object) -> Optional[float]:
        return parse_turkish_number(v)  # type: ignore[arg-type]

    @property
    def is_header(self) -> bool:
        """Section heading rows carry text but neither code nor points."""
        if self.code or self.points is not None:
            return False
        return bool(self.name or self.description)

    @property
    def header_text(self) -> str:
        return " - ".join(part for part in (self.name, self.description) if part)


class SourceDocument(BaseModel):
    """All records of one regulatory source plus provenance."""

    source: RuleSource
    file_name: str = ""
    records: list[SourceRecord] = Field(default_factory=list)


class SutArticle(BaseModel):
    """One numbered article of the prose legislation."""

    number: str
    title: str
    content: str


class CrossReference(BaseModel):
    """A pointer from one entry's text to another code or article."""

    source_code: str
    target: str
    target_type: Literal["code", "article"]
    resolved: bool = False


# =============================================================================
# Rule Master
# =============================================================================


class RuleMasterEntry(BaseModel):
    """Authoritative record for one normalized procedure code."""

    code: str
    name: str = ""
    sources: list[RuleSource] = Field(default_factory=list)
    primary_source: RuleSource
    points: float = 0.0
    price: float = 0.0
    gil_points: Optional[float] = None
    gil_price: Optional[float] = None
    descriptions: dict[RuleSource, str] = Field(default_factory=dict)
    procedure_group: Optional[str] = None
    surgery_group: Optional[str] = None
    section_header: Optional[str] = None
    rules: list[ParsedRule] = Field(default_factory=list)

    @property
    def description(self) -> str:
        """Description of the primary source, falling back to any other."""
        text = self.descriptions.get(self.primary_source, "")
        if text:
            return text
        return next((d for d in self.descriptions.values() if d), "")

    def rules_of(self, kind: RuleKind) -> list[ParsedRule]:
        return [rule for rule in self.rules if rule.kind == kind]

    def has_rule(self, kind: RuleKind) -> bool:
        return any(rule.kind == kind for rule in self.rules)

    @property
    def structured_rules(self) -> list[ParsedRule]:
        """Rules other than general notes; notes carry text, not a checkable constraint."""
        return [rule for rule in self.rules if rule.kind != RuleKind.GENERAL_NOTE]


class BuildStats(BaseModel):
    """Counters reported by one rule master build."""

    records_by_source: dict[RuleSource, int] = Field(default_factory=dict)
    entry_count: int = 0
    entries_with_rules: int = 0
    rule_count: int = 0  # structured rules, general notes excluded
    description_count: int = 0
    article_rules: int = 0
    recovered_rules: int = 0
    oracle_entries: int = 0
    degraded: bool = False  # descriptions present but no structured rule extracted


class RuleTable(BaseModel):
    """Result of a rule master build: entries keyed by normalized code."""

    entries: dict[str, RuleMasterEntry] = Field(default_factory=dict)
    cross_references: list[CrossReference] = Field(default_factory=list)
    stats: BuildStats = Field(default_factory=BuildStats)

    def get(self, code: str) -> Optional[RuleMasterEntry]:
        return self.entries.get(code)

    def structured_rule_count(self) -> int:
        return sum(len(entry.structured_rules) for entry in self.entries.values())

    def refresh_counts(self) -> None:
        """Recompute entry and rule counters after the entries changed."""
        stats = self.stats
        stats.entry_count = len(self.entries)
        stats.entries_with_rules = sum(1 for e in self.entries.values() if e.structured_rules)
        stats.rule_count = self.structured_rule_count()
        stats.degraded = stats.rule_count == 0 and stats.description_count > 0

    def __len__(self) -> int:
        return len(self.entries)
