"""
Cross-Row Post-Processor.

Adds the violations that only show up when rows are compared with each
other:

- same-session mutual exclusions (patient + date)
- the operation-number duplicate rule for operation-unique codes
- frequency limits, count per period bucket or minimum interval

Grouping maps are built fresh on every call; results are updated in place.
"""

import logging
from collections import defaultdict
from typing import Callable, Optional, Sequence, cast

from sut_compliance.core.enums import FrequencyPeriod, RuleKind, RuleSource, ViolationCode
from sut_compliance.schemas.billing import BillingRow
from sut_compliance.schemas.compliance import ComplianceResult, Violation
from sut_compliance.schemas.rules import FrequencyParams, ParsedRule, RuleTable
from sut_compliance.services.exemptions import DEFAULT_EXEMPTIONS, ExemptionTable
from sut_compliance.services.row_evaluator import check_mutual_exclusion, to_related_row
from sut_compliance.services.turkish_text import (
    normalize_code,
    normalize_date,
    parse_date,
    period_bucket,
    turkish_lower,
)

logger = logging.getLogger(__name__)

EMPTY_GROUP_KEY = "__bos__"
MAX_RELATED_ROWS = 10

PERIOD_LABELS = {
    FrequencyPeriod.DAY: "günde",
    FrequencyPeriod.WEEK: "haftada",
    FrequencyPeriod.MONTH: "ayda",
    FrequencyPeriod.YEAR: "yılda",
}

OPERATION_UNIQUE_NAMES = {
    "520046": "Yatan hasta taburculuk değerlendirmesi",
}

Indexed = list[tuple[int, BillingRow]]


def _date_order(item: tuple[int, BillingRow]) -> tuple[str, int]:
    index, row = item
    return (normalize_date(row.date), index)


def _day_gap(earlier: BillingRow, later: BillingRow) -> Optional[int]:
    first, second = parse_date(earlier.date), parse_date(later.date)
    if first is None or second is None:
        return None
    return (second - first).days


class CrossRowPostProcessor:
    """Whole-row-set checks layered on top of per-row results."""

    def __init__(self, exemptions: ExemptionTable = DEFAULT_EXEMPTIONS):
        self.exemptions = exemptions

    def apply(
        self,
        rows: Sequence[BillingRow],
        results: Sequence[ComplianceResult],
        table: RuleTable,
    ) -> None:
        """
        Run every cross-row pass.

        Args:
            rows: All billed lines, in input order
            results: Row-level results, same order as ``rows``
            table: Rule table the rows were evaluated against
        """
        if len(rows) != len(results):
            raise ValueError(f"{len(rows)} rows but {len(results)} results")

        added = self.apply_mutual_exclusions(rows, results)
        added += self.apply_operation_duplicates(rows, results)
        added += self.apply_frequency_limits(rows, results, table)
        logger.info("Cross-row checks added %d violation(s) over %d rows", added, len(rows))

    # =========================================================================
    # Mutual Exclusion
    # =========================================================================

    def apply_mutual_exclusions(
        self, rows: Sequence[BillingRow], results: Sequence[ComplianceResult]
    ) -> int:
        """Add same-session conflicts the row pass did not already report."""
        sessions: dict[tuple[str, str], Indexed] = defaultdict(list)
        for index, row in enumerate(rows):
            sessions[row.session_key].append((index, row))

        added = 0
        for index, row in enumerate(rows):
            result = results[index]
            entry = result.entry
            if entry is None:
                continue
            session = sessions[row.session_key]
            if len(session) <= 1:
                continue
            for rule in entry.rules_of(RuleKind.MUTUAL_EXCLUSION):
                violation = check_mutual_exclusion(
                    index, row, entry, rule, session, self.exemptions
                )
                if violation is None or self._already_reported(result, violation):
                    continue
                result.add_violation(violation)
                added += 1
        return added

    @staticmethod
    def _already_reported(result: ComplianceResult, violation: Violation) -> bool:
        return any(
            v.rule_kind == violation.rule_kind and v.clause == violation.clause
            for v in result.violations
        )

    # =========================================================================
    # Operation Number Duplicates
    # =========================================================================

    def apply_operation_duplicates(
        self, rows: Sequence[BillingRow], results: Sequence[ComplianceResult]
    ) -> int:
        """Flag every repeat of an operation-unique code within one operation number."""
        groups: dict[tuple[str, str, str], Indexed] = defaultdict(list)
        for index, row in enumerate(rows):
            code = normalize_code(row.procedure_code)
            if not self.exemptions.is_operation_unique(code):
                continue
            groups[(code, row.patient_id, (row.operation_number or "").strip())].append((index, row))

        added = 0
        for (code, _, operation_no), members in groups.items():
            if len(members) <= 1:
                continue
            ordered = sorted(members, key=_date_order)
            _, first = ordered[0]
            name = OPERATION_UNIQUE_NAMES.get(code, first.procedure_name)
            for position, (index, _) in enumerate(ordered[1:], start=1):
                result = results[index]
                others = [item for i, item in enumerate(ordered) if i != position]
                result.add_violation(
                    Violation(
                        code=ViolationCode.FREQUENCY,
                        explanation=(
                            f"Bu işlem ({code} - {name}) aynı işlem numarası ({operation_no}) ile "
                            f"birden fazla faturalandırılamaz. Bu işlem numarasında {len(ordered)} adet bulundu. "
                            f"(İlk giriş: {first.date} tarihinde {first.physician} tarafından girilmiş)"
                        ),
                        source=result.entry.primary_source if result.entry else RuleSource.GIL,
                        clause=f"Aynı işlem numarası ile birden fazla {code} faturalandırılamaz (özel kural).",
                        rule_kind=RuleKind.FREQUENCY_LIMIT,
                        from_section_header=True,
                        related_rows=[to_related_row(i, r) for i, r in others[:MAX_RELATED_ROWS]],
                    )
                )
                added += 1
        return added

    # =========================================================================
    # Frequency Limits
    # =========================================================================

    def apply_frequency_limits(
        self,
        rows: Sequence[BillingRow],
        results: Sequence[ComplianceResult],
        table: RuleTable,
    ) -> int:
        """Apply each code's first frequency rule per patient."""
        keyed: dict[tuple[str, str], Indexed] = defaultdict(list)
        for index, row in enumerate(rows):
            keyed[(row.patient_id, normalize_code(row.procedure_code))].append((index, row))

        added = 0
        for (_, code), members in keyed.items():
            if len(members) <= 1:
                continue
            if self.exemptions.is_operation_unique(code) or self.exemptions.skips_frequency(code):
                continue
            entry = table.get(code)
            if entry is None:
                continue
            frequency_rules = entry.rules_of(RuleKind.FREQUENCY_LIMIT)
            if not frequency_rules:
                continue
            rule = frequency_rules[0]
            params = cast(FrequencyParams, rule.params)

            for group in self._scope_groups(members, params):
                if len(group) <= 1:
                    continue
                if params.period.is_interval:
                    added += self._check_interval(group, results, rule, params)
                else:
                    added += self._check_count(group, results, rule, params)
        return added

    @staticmethod
    def _scope_groups(members: Indexed, params: FrequencyParams) -> list[Indexed]:
        groups = [members]
        if params.same_specialty:
            groups = CrossRowPostProcessor._split(
                groups, lambda row: turkish_lower(row.specialty.strip())
            )
        if params.same_tooth:
            groups = CrossRowPostProcessor._split(groups, lambda row: (row.tooth_number or "").strip())
        return groups

    @staticmethod
    def _split(groups: list[Indexed], key_of: Callable[[BillingRow], str]) -> list[Indexed]:
        split: list[Indexed] = []
        for group in groups:
            buckets: dict[str, Indexed] = defaultdict(list)
            for index, row in group:
                buckets[key_of(row) or EMPTY_GROUP_KEY].append((index, row))
            split.extend(buckets.values())
        return split

    @staticmethod
    def _scope_text(params: FrequencyParams) -> str:
        return ("aynı branşta " if params.same_specialty else "") + (
            "aynı diş için " if params.same_tooth else ""
        )

    def _check_interval(
        self,
        group: Indexed,
        results: Sequence[ComplianceResult],
        rule: ParsedRule,
        params: FrequencyParams,
    ) -> int:
        required_days = params.interval_days or 0
        unit = "ay" if params.period == FrequencyPeriod.MONTH_INTERVAL else "gün"
        ordered = sorted(group, key=_date_order)

        added = 0
        for (prev_index, prev), (index, row) in zip(ordered, ordered[1:]):
            gap = _day_gap(prev, row)
            if gap is None or gap >= required_days:
                continue
            result = results[index]
            result.add_violation(
                self._frequency_violation(
                    result,
                    rule,
                    f"Bu işlem {self._scope_text(params)}en az {params.limit} {unit} arayla yapılabilir. "
                    f"Önceki işlemden {gap} gün sonra yapılmış. "
                    f"(Önceki: {prev.date} tarihinde {prev.physician} tarafından "
                    f"{prev.procedure_code} {prev.procedure_name[:40]} olarak girilmiş)",
                    [(prev_index, prev)],
                )
            )
            added += 1
        return added

    def _check_count(
        self,
        group: Indexed,
        results: Sequence[ComplianceResult],
        rule: ParsedRule,
        params: FrequencyParams,
    ) -> int:
        buckets: dict[str, Indexed] = defaultdict(list)
        for index, row in sorted(group, key=_date_order):
            buckets[period_bucket(row.date, params.period.value)].append((index, row))

        label = PERIOD_LABELS.get(params.period, "")
        added = 0
        for members in buckets.values():
            if len(members) <= params.limit:
                continue
            allowed = members[: params.limit]
            _, first = allowed[0]
            reference = f"{first.date} {first.physician} {first.procedure_code}"
            if len(allowed) > 1:
                reference += f" ve {len(allowed) - 1} diğer"
            explanation = (
                f"Bu işlem {self._scope_text(params)}{label + ' ' if label else ''}"
                f"en fazla {params.limit} kez yapılabilir. Toplam: {len(members)} (İlk giriş: {reference})"
            )
            for index, _ in members[params.limit:]:
                result = results[index]
                result.add_violation(self._frequency_violation(result, rule, explanation, allowed))
                added += 1
        return added

    @staticmethod
    def _frequency_violation(
        result: ComplianceResult,
        rule: ParsedRule,
        explanation: str,
        related: Indexed,
    ) -> Violation:
        source = rule.origin_source or (result.entry.primary_source if result.entry else RuleSource.GIL)
        return Violation(
            code=ViolationCode.FREQUENCY,
            explanation=explanation,
            source=source,
            clause=rule.source_text,
            rule_kind=RuleKind.FREQUENCY_LIMIT,
            from_section_header=rule.from_section_header,
            rule_confidence=rule.confidence,
            related_rows=[to_related_row(i, r) for i, r in related[:MAX_RELATED_ROWS]],
        )

