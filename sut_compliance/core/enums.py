"""
Core Enumerations for the SUT Compliance Engine.

Rule kinds, regulatory sources, verdict labels and the parameter
vocabularies carried by the typed rule payloads.
"""

from enum import Enum


# =============================================================================
# Rule Enums
# =============================================================================


class RuleKind(str, Enum):
    """The eight structured rule kinds extracted from regulation text."""

    TIER_RESTRICTION = "tier_restriction"  # basamak kısıtı
    SPECIALTY_RESTRICTION = "specialty_restriction"  # branş kısıtı
    DIAGNOSIS_CONDITION = "diagnosis_condition"  # tanı koşulu
    MUTUAL_EXCLUSION = "mutual_exclusion"  # birlikte yapılamaz
    FREQUENCY_LIMIT = "frequency_limit"  # sıklık limiti
    DENTAL_TREATMENT = "dental_treatment"  # diş tedavisi
    AGE_RESTRICTION = "age_restriction"  # yaş kısıtı
    GENERAL_NOTE = "general_note"  # genel açıklama


class RuleSource(str, Enum):
    """Regulatory documents a rule or price can come from."""

    EK_2B = "EK-2B"  # General price list
    EK_2C = "EK-2C"  # Procedure-group (diagnosis based) price list
    EK_2CD = "EK-2Ç"  # Dental price list
    GIL = "GİL"  # General procedures list
    SUT = "SUT"  # Prose legislation


class ExtractionMethod(str, Enum):
    """How a rule was produced."""

    REGEX = "regex"
    ORACLE = "oracle"


class TierMode(str, Enum):
    """Tier restriction semantics."""

    EXACT = "exact"  # Only the listed tiers
    AT_LEAST = "at_least"  # Listed tier and above


class SpecialtyMode(str, Enum):
    """Specialty restriction semantics."""

    ONLY = "only"  # sadece / yalnızca
    INCLUDED = "included"  # performed by the listed specialties
    EXCLUDED = "excluded"  # everyone except the listed specialties


class FrequencyPeriod(str, Enum):
    """Period or interval unit of a frequency limit."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"  # Whole data range / lifetime
    DAY_INTERVAL = "day_interval"  # At least N days apart
    MONTH_INTERVAL = "month_interval"  # At least N months apart

    @property
    def is_interval(self) -> bool:
        return self in (FrequencyPeriod.DAY_INTERVAL, FrequencyPeriod.MONTH_INTERVAL)


class AgeMode(str, Enum):
    """Age restriction semantics."""

    UNDER = "under"
    OVER = "over"
    BETWEEN = "between"


# =============================================================================
# Verdict Enums
# =============================================================================


class ComplianceStatus(str, Enum):
    """Classification of a billed line."""

    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    UNMATCHED = "UNMATCHED"


class MatchConfidence(str, Enum):
    """Confidence label attached to a verdict."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ViolationCode(str, Enum):
    """Stable violation identifiers used in exports."""

    TIER = "BASAMAK_001"
    SPECIALTY = "BRANS_002"
    MUTUAL_EXCLUSION = "BIRLIKTE_003"
    DIAGNOSIS = "TANI_004"
    DENTAL = "DIS_005"
    FREQUENCY = "SIKLIK_006"
    EXCLUDED_SPECIALTY = "BRANS_007"
    AGE = "YAS_008"


class ProgressPhase(str, Enum):
    """Phases reported through the progress protocol."""

    LOADING = "loading"
    BUILDING_RULES = "building-rules"
    ORACLE_EXTRACTION = "oracle-extraction"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


class AuditStatus(str, Enum):
    """How the regex and oracle rules of one kind (or one entry) compare."""

    MATCH = "match"
    REGEX_ONLY = "regex_only"
    ORACLE_ONLY = "oracle_only"
    CONFLICT = "conflict"
    BOTH_EMPTY = "both_empty"


# =============================================================================
# Infrastructure Enums
# =============================================================================


class SnapshotBackend(str, Enum):
    """Where rule snapshots are persisted."""

    FILE = "file"
    MINIO = "minio"
