"""
Procedure Code Exemptions.

Hard-coded code lists that bypass parts of the compliance checks. Kept in
one table so every exemption is visible and testable in one place.
"""

from dataclasses import dataclass, fields
from typing import Iterable, Mapping

from sut_compliance.services.turkish_text import normalize_code


@dataclass(frozen=True)
class ExemptionTable:
    """
    Named exemption lists, keyed by normalized procedure code.

    Attributes:
        mutual_exclusion_exempt: Codes whose "cannot be billed together"
            clauses are never enforced (examination codes billed alongside
            almost everything)
        frequency_exempt: Legitimately repeatable codes skipped by the
            frequency pass
        operation_unique_codes: Codes that may be billed at most once per
            operation number, independent of any extracted frequency rule
    """

    mutual_exclusion_exempt: frozenset[str] = frozenset({"520020", "520021"})
    frequency_exempt: frozenset[str] = frozenset(
        {"520020", "520021", "520022", "520023", "520024"}
    )
    operation_unique_codes: frozenset[str] = frozenset({"520046"})

    def skips_mutual_exclusion(self, code: str) -> bool:
        return normalize_code(code) in self.mutual_exclusion_exempt

    def skips_frequency(self, code: str) -> bool:
        return normalize_code(code) in self.frequency_exempt

    def is_operation_unique(self, code: str) -> bool:
        return normalize_code(code) in self.operation_unique_codes

    def to_dict(self) -> dict[str, list[str]]:
        """Sorted code lists, JSON ready."""
        return {f.name: sorted(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Iterable[str]]) -> "ExemptionTable":
        return cls(**{name: frozenset(normalize_code(c) for c in codes) for name, codes in data.items()})


DEFAULT_EXEMPTIONS = ExemptionTable()
