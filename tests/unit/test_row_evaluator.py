"""
Unit tests for the per-row compliance evaluator.
"""

import pytest

from sut_compliance.core.enums import (
    AgeMode,
    ComplianceStatus,
    ExtractionMethod,
    MatchConfidence,
    RuleKind,
    RuleSource,
    SpecialtyMode,
    TierMode,
    ViolationCode,
)
from sut_compliance.schemas.rules import (
    AgeParams,
    DentalParams,
    DiagnosisParams,
    GeneralNoteParams,
    MutualExclusionParams,
    SpecialtyParams,
    TierParams,
)
from sut_compliance.services.row_evaluator import LOW_CONFIDENCE_SUFFIX, check_mutual_exclusion
from sut_compliance.services.rule_extractor import RuleExtractor

THIRD_TIER_ONLY = "Bu işlem yalnızca 3. basamak hastanelerde yapılabilir."
OBSTETRICS_ONLY = "Kadın Hastalıkları ve Doğum uzmanı tarafından yapılır."
MULTI_TIER = (
    "Bu işlem ikinci basamak sağlık kuruluşlarında günübirlik, "
    "üçüncü basamak sağlık kuruluşlarında yatarak yapılır."
)
THIRD_TIER_INCREMENT = "Üçüncü basamak sağlık kuruluşlarında yapıldığında işlem puanına %30 ilave edilir."


def evaluate(evaluator, row, entry, session=None):
    return evaluator.evaluate(row, 0, entry, session if session is not None else [(0, row)])


class TestUnmatched:
    """Tests for rows without a rule master entry."""

    def test_unknown_code(self, make_evaluator, make_row):
        """Test an unknown code is UNMATCHED with low confidence."""
        result = make_evaluator().evaluate(make_row("999999"), 3, None)

        assert result.status == ComplianceStatus.UNMATCHED
        assert result.confidence == MatchConfidence.LOW
        assert result.row_index == 3
        assert result.matched is False
        assert result.violations == []

    def test_empty_code_reason(self, make_evaluator, make_row):
        """Test an empty code gets its own reason."""
        result = make_evaluator().evaluate(make_row(""), 0, None)
        assert result.confidence_reason == "GİL kodu boş"


class TestStatusAndConfidence:
    """Tests for verdict classification."""

    def test_no_rules_is_compliant_medium(self, make_evaluator, make_row, make_entry):
        """Test a matched code without rules."""
        result = evaluate(make_evaluator(), make_row(), make_entry())
        assert result.status == ComplianceStatus.COMPLIANT
        assert result.confidence == MatchConfidence.MEDIUM

    def test_article_note_only_is_medium(self, make_evaluator, make_row, make_entry, make_rule):
        """Test an attached legislation article alone does not count as parsed rules."""
        note = make_rule(
            GeneralNoteParams(text="Madde metni", article_no="2.4.4.D", article_title="Görüntüleme"),
            "SUT 2.4.4.D - Görüntüleme\nMadde metni",
            source=RuleSource.SUT,
        )
        result = evaluate(make_evaluator(), make_row(), make_entry(rules=[note]))

        assert result.status == ComplianceStatus.COMPLIANT
        assert result.confidence == MatchConfidence.MEDIUM

    def test_clean_rules_are_compliant_high(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a matched code whose rules all pass."""
        entry = make_entry(rules=[make_rule(TierParams(tiers=[3]), THIRD_TIER_ONLY)])
        result = evaluate(make_evaluator(tier=3), make_row(), entry)
        assert result.status == ComplianceStatus.COMPLIANT
        assert result.confidence == MatchConfidence.HIGH

    def test_low_confidence_violation_needs_review(self, make_evaluator, make_row, make_entry, make_rule):
        """Test violations below the threshold are marked and only need review."""
        entry = make_entry(rules=[make_rule(TierParams(tiers=[3]), THIRD_TIER_ONLY, confidence=0.5)])
        result = evaluate(make_evaluator(tier=2), make_row(), entry)

        assert result.status == ComplianceStatus.NEEDS_REVIEW
        assert result.violations[0].explanation.endswith(LOW_CONFIDENCE_SUFFIX)
        assert result.violations[0].rule_confidence == 0.5

    def test_soft_violation_needs_review(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a dental violation alone does not make a row non-compliant."""
        entry = make_entry(rules=[make_rule(DentalParams(note="Her diş için"), "Her diş için ayrı faturalandırılır.")])
        row = make_row(specialty="Diş Hekimliği", tooth_number=None)
        result = evaluate(make_evaluator(), row, entry)

        assert result.status == ComplianceStatus.NEEDS_REVIEW
        assert result.violations[0].code == ViolationCode.DENTAL

    def test_deltas(self, make_evaluator, make_row, make_entry):
        """Test point and price differences against the table."""
        entry = make_entry(points=100.0, price=59.3)
        result = evaluate(make_evaluator(), make_row(points=110.0, price=59.3), entry)
        assert result.point_delta == 10.0
        assert result.price_delta == 0.0

    def test_no_deltas_without_table_values(self, make_evaluator, make_row, make_entry):
        """Test deltas are omitted when the table has no point or price."""
        result = evaluate(make_evaluator(), make_row(), make_entry())
        assert result.point_delta is None
        assert result.price_delta is None

    def test_exempt_code(self, make_evaluator, make_row, make_entry):
        """Test frequency-exempt codes are flagged on the result."""
        result = evaluate(make_evaluator(), make_row("520021"), make_entry("520021"))
        assert result.exempt is True

    def test_evaluation_is_pure(self, make_evaluator, make_row, make_entry, make_rule):
        """Test evaluating twice gives the same result and leaves the entry untouched."""
        entry = make_entry(rules=[make_rule(TierParams(tiers=[3]), THIRD_TIER_ONLY)])
        before = entry.model_dump()
        evaluator = make_evaluator()
        first = evaluate(evaluator, make_row(), entry)
        second = evaluate(evaluator, make_row(), entry)

        assert first.model_dump() == second.model_dump()
        assert entry.model_dump() == before


class TestTierCheck:
    """Tests for tier restrictions."""

    def test_third_tier_only_at_second_tier(self, make_evaluator, make_row, make_entry, make_rule):
        """Test the canonical tier violation."""
        entry = make_entry(rules=[make_rule(TierParams(tiers=[3]), THIRD_TIER_ONLY)])
        result = evaluate(make_evaluator(tier=2), make_row(), entry)

        assert result.status == ComplianceStatus.NON_COMPLIANT
        violation = result.violations[0]
        assert violation.code == ViolationCode.TIER
        assert violation.source == RuleSource.EK_2B
        assert violation.clause == THIRD_TIER_ONLY
        assert "Kurum basamağı: 2" in violation.explanation

    def test_at_least(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a minimum tier accepts higher tiers only."""
        rule = make_rule(TierParams(tiers=[2], mode=TierMode.AT_LEAST), "2. basamak ve üzeri")
        entry = make_entry(rules=[rule])

        assert evaluate(make_evaluator(tier=3), make_row(), entry).status == ComplianceStatus.COMPLIANT
        assert evaluate(make_evaluator(tier=1), make_row(), entry).status == ComplianceStatus.NON_COMPLIANT

    def test_point_increment_clause_ignored(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a stored tier rule whose clause is a point increase is not enforced."""
        rule = make_rule(TierParams(tiers=[3]), "Üçüncü basamakta %30 ilave edilir.")
        result = evaluate(make_evaluator(tier=2), make_row(), make_entry(rules=[rule]))
        assert result.status == ComplianceStatus.COMPLIANT

    def test_recovered_from_general_note(self, make_evaluator, make_row, make_entry, make_rule):
        """Test third-tier wording left in a general note still applies."""
        text = "Üçüncü basamak sağlık hizmeti sunucuları tarafından yapılır."
        entry = make_entry(rules=[make_rule(GeneralNoteParams(text=text), text)])
        result = evaluate(make_evaluator(tier=2), make_row(), entry)

        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert result.violations[0].code == ViolationCode.TIER
        assert result.violations[0].rule_kind == RuleKind.TIER_RESTRICTION

        assert evaluate(make_evaluator(tier=3), make_row(), entry).violations == []

    @pytest.mark.parametrize("tier", [2, 3])
    def test_note_naming_several_tiers_not_recovered(self, make_evaluator, make_row, make_entry, make_rule, tier):
        """Test an oracle note allowing both tiers is not read as third-tier only."""
        text = MULTI_TIER
        note = make_rule(GeneralNoteParams(text=text), text).model_copy(
            update={"extraction_method": ExtractionMethod.ORACLE}
        )
        result = evaluate(make_evaluator(tier=tier), make_row(), make_entry(rules=[note]))
        assert result.status == ComplianceStatus.COMPLIANT
        assert result.violations == []


class TestSpecialtyCheck:
    """Tests for specialty restrictions."""

    @pytest.fixture
    def obstetrics_entry(self, make_entry, make_rule):
        rule = make_rule(SpecialtyParams(specialties=["kadın hastalıkları ve doğum"]), OBSTETRICS_ONLY)
        return make_entry(rules=[rule])

    def test_other_specialty_violates(self, make_evaluator, make_row, obstetrics_entry):
        """Test a urologist billing an obstetrics-only procedure."""
        result = evaluate(make_evaluator(), make_row(specialty="Üroloji"), obstetrics_entry)

        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert result.violations[0].code == ViolationCode.SPECIALTY
        assert "Üroloji" in result.violations[0].explanation

    def test_alias_is_accepted(self, make_evaluator, make_row, obstetrics_entry):
        """Test the colloquial name of the required specialty passes."""
        result = evaluate(make_evaluator(), make_row(specialty="Kadın Doğum"), obstetrics_entry)
        assert result.status == ComplianceStatus.COMPLIANT

    def test_empty_specialty_violates(self, make_evaluator, make_row, obstetrics_entry):
        """Test an empty physician specialty does not satisfy a restriction."""
        result = evaluate(make_evaluator(), make_row(specialty=""), obstetrics_entry)
        assert result.violations[0].code == ViolationCode.SPECIALTY

    def test_excluded_specialty(self, make_evaluator, make_row, make_entry, make_rule):
        """Test "haricindeki" flags only the excluded specialty."""
        rule = make_rule(
            SpecialtyParams(specialties=["radyoloji"], mode=SpecialtyMode.EXCLUDED),
            "Radyoloji uzmanı haricindeki hekimlerce yapılan US puanlandırılır.",
        )
        entry = make_entry(rules=[rule])

        excluded = evaluate(make_evaluator(), make_row(specialty="Radyoloji"), entry)
        assert excluded.violations[0].code == ViolationCode.EXCLUDED_SPECIALTY

        allowed = evaluate(make_evaluator(), make_row(specialty="Kardiyoloji"), entry)
        assert allowed.violations == []

    def test_expansive_clause_not_enforced(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a stored restriction whose clause only widens the performers."""
        rule = make_rule(
            SpecialtyParams(specialties=["genel cerrahi"]),
            "Genel cerrahi uzmanları tarafından da faturalandırılır.",
        )
        result = evaluate(make_evaluator(), make_row(specialty="Üroloji"), make_entry(rules=[rule]))
        assert result.violations == []

    def test_absence_clause_depends_on_dataset(self, make_evaluator, make_row, make_entry, make_rule):
        """Test "X bulunmadığında" only binds when an X physician is on staff."""
        rule = make_rule(
            SpecialtyParams(specialties=["nöroloji"]),
            "Nöroloji uzmanı bulunmadığında acil tıp uzmanı tarafından yapılır.",
        )
        entry = make_entry(rules=[rule])
        row = make_row(specialty="Aile Hekimliği")

        without_neurologist = make_evaluator(dataset_specialties=["Aile Hekimliği"])
        assert evaluate(without_neurologist, row, entry).violations == []

        with_neurologist = make_evaluator(dataset_specialties=["Aile Hekimliği", "Nöroloji"])
        violations = evaluate(with_neurologist, row, entry).violations
        assert violations[0].code == ViolationCode.SPECIALTY
        assert "Kurumda ilgili branş hekimi mevcut" in violations[0].explanation


class TestAgeCheck:
    """Tests for age restrictions."""

    @pytest.fixture
    def under_18(self, make_entry, make_rule):
        rule = make_rule(AgeParams(mode=AgeMode.UNDER, max_age=18), "18 yaş altı hastalarda faturalandırılır.")
        return make_entry(rules=[rule])

    def test_too_old(self, make_evaluator, make_row, under_18):
        """Test an adult billed for a pediatric procedure."""
        result = evaluate(make_evaluator(), make_row(patient_age=20), under_18)
        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert result.violations[0].code == ViolationCode.AGE

    def test_within_range(self, make_evaluator, make_row, under_18):
        """Test a child passes."""
        assert evaluate(make_evaluator(), make_row(patient_age=10), under_18).violations == []

    def test_missing_age(self, make_evaluator, make_row, under_18):
        """Test a missing age is reported."""
        result = evaluate(make_evaluator(), make_row(patient_age=None), under_18)
        assert "Yaş bilgisi mevcut değil" in result.violations[0].explanation

    def test_between(self, make_evaluator, make_row, make_entry, make_rule):
        """Test both bounds of an age range."""
        rule = make_rule(AgeParams(mode=AgeMode.BETWEEN, min_age=2, max_age=6), "2-6 yaş arası çocuklarda.")
        entry = make_entry(rules=[rule])
        assert evaluate(make_evaluator(), make_row(patient_age=1), entry).violations
        assert not evaluate(make_evaluator(), make_row(patient_age=4), entry).violations
        assert evaluate(make_evaluator(), make_row(patient_age=7), entry).violations


class TestDiagnosisCheck:
    """Tests for diagnosis conditions."""

    @pytest.fixture
    def diabetes_entry(self, make_entry, make_rule):
        rule = make_rule(DiagnosisParams(codes=["E11"]), "E11 tanısı olan hastalarda faturalandırılır.")
        return make_entry(rules=[rule])

    def test_missing_diagnosis(self, make_evaluator, make_row, diabetes_entry):
        """Test a missing diagnosis needs review with medium confidence."""
        result = evaluate(make_evaluator(), make_row(diagnosis=None), diabetes_entry)

        assert result.status == ComplianceStatus.NEEDS_REVIEW
        assert result.confidence == MatchConfidence.MEDIUM
        assert result.violations[0].code == ViolationCode.DIAGNOSIS

    def test_matching_diagnosis(self, make_evaluator, make_row, diabetes_entry):
        """Test a sub-code of the required diagnosis passes."""
        assert evaluate(make_evaluator(), make_row(diagnosis="E11.9"), diabetes_entry).violations == []

    def test_diagnosis_from_extra_column(self, make_evaluator, make_row, diabetes_entry):
        """Test the diagnosis can come from a pass-through column."""
        row = make_row(diagnosis=None, extra={"Tanı": "E11.65"})
        assert evaluate(make_evaluator(), row, diabetes_entry).violations == []


class TestDentalCheck:
    """Tests for dental treatment rules."""

    def test_tooth_number_present(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a dental row with a tooth number passes."""
        entry = make_entry(rules=[make_rule(DentalParams(), "Her diş için ayrı faturalandırılır.")])
        row = make_row(specialty="Diş Hekimliği", tooth_number="36")
        assert evaluate(make_evaluator(), row, entry).violations == []

    def test_non_dental_specialty(self, make_evaluator, make_row, make_entry, make_rule):
        """Test the tooth number is only required from dental specialties."""
        entry = make_entry(rules=[make_rule(DentalParams(), "Her diş için ayrı faturalandırılır.")])
        assert evaluate(make_evaluator(), make_row(specialty="Genel Cerrahi"), entry).violations == []


class TestMutualExclusionCheck:
    """Tests for same-session conflicts."""

    def test_listed_code_in_session(self, make_evaluator, make_row, make_entry, make_rule):
        """Test a listed code billed the same day conflicts."""
        rule = make_rule(
            MutualExclusionParams(codes=["530020"]), "530020 ile birlikte faturalandırılamaz."
        )
        entry = make_entry("530010", rules=[rule])
        own, other = make_row("530010"), make_row("530020")
        result = make_evaluator().evaluate(own, 0, entry, [(0, own), (1, other)])

        violation = result.violations[0]
        assert violation.code == ViolationCode.MUTUAL_EXCLUSION
        assert [r.row_index for r in violation.related_rows] == [1]
        assert result.status == ComplianceStatus.NON_COMPLIANT

    def test_any_other_lists_conflicting_codes(self, make_row, make_entry, make_rule):
        """Test the wildcard rule names every conflicting code."""
        rule = make_rule(MutualExclusionParams(any_other=True), "Başka bir işlemle birlikte faturalandırılamaz.")
        entry = make_entry("700100", rules=[rule])
        own, other = make_row("700100"), make_row("700200")

        violation = check_mutual_exclusion(0, own, entry, rule, [(0, own), (1, other)])
        assert "700200" in violation.explanation
        assert violation.related_rows[0].procedure_code == "700200"

    def test_alone_in_session(self, make_row, make_entry, make_rule):
        """Test no conflict when nothing else was billed."""
        rule = make_rule(MutualExclusionParams(any_other=True), "Başka bir işlemle birlikte faturalandırılamaz.")
        row = make_row("700100")
        assert check_mutual_exclusion(0, row, make_entry(rules=[rule]), rule, [(0, row)]) is None

    def test_same_tooth_scope(self, make_row, make_entry, make_rule):
        """Test a same-tooth rule ignores other teeth."""
        rule = make_rule(
            MutualExclusionParams(codes=["401010"], same_tooth=True),
            "Aynı diş için 401010 ile birlikte faturalandırılamaz.",
        )
        entry = make_entry("401020", rules=[rule])
        own = make_row("401020", tooth_number="36")

        other_tooth = make_row("401010", tooth_number="37")
        assert check_mutual_exclusion(0, own, entry, rule, [(0, own), (1, other_tooth)]) is None

        same_tooth = make_row("401010", tooth_number="36")
        assert check_mutual_exclusion(0, own, entry, rule, [(0, own), (1, same_tooth)]) is not None

    def test_exempt_examination_code(self, make_row, make_entry, make_rule):
        """Test examination codes never raise conflicts."""
        rule = make_rule(MutualExclusionParams(any_other=True), "Başka bir işlemle birlikte faturalandırılamaz.")
        own, other = make_row("520020"), make_row("700200")
        entry = make_entry("520020", rules=[rule])
        assert check_mutual_exclusion(0, own, entry, rule, [(0, own), (1, other)]) is None


class TestExtractThenEvaluate:
    """Tests running description text through the extractor and then the evaluator."""

    @pytest.fixture
    def entry_for(self, make_entry):
        extractor = RuleExtractor(confidence=0.9)

        def _make(text):
            return make_entry(rules=extractor.extract(text, RuleSource.EK_2B))

        return _make

    @pytest.mark.parametrize("tier", [2, 3])
    def test_several_tiers_allow_both(self, make_evaluator, make_row, entry_for, tier):
        """Test text naming second and third tier care is compliant at either tier."""
        result = evaluate(make_evaluator(tier=tier), make_row(), entry_for(MULTI_TIER))

        assert result.status == ComplianceStatus.COMPLIANT
        assert result.violations == []
        assert result.confidence == MatchConfidence.MEDIUM

    @pytest.mark.parametrize("tier", [2, 3])
    def test_point_increment_is_not_a_restriction(self, make_evaluator, make_row, entry_for, tier):
        """Test a third-tier point increase does not restrict lower tiers."""
        result = evaluate(make_evaluator(tier=tier), make_row(), entry_for(THIRD_TIER_INCREMENT))
        assert result.status == ComplianceStatus.COMPLIANT
        assert result.violations == []

    def test_only_third_tier_still_enforced(self, make_evaluator, make_row, entry_for):
        """Test a genuine third-tier-only clause still fails at tier 2."""
        entry = entry_for(THIRD_TIER_ONLY)

        result = evaluate(make_evaluator(tier=2), make_row(), entry)
        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert [v.code for v in result.violations] == [ViolationCode.TIER]

        assert evaluate(make_evaluator(tier=3), make_row(), entry).status == ComplianceStatus.COMPLIANT
