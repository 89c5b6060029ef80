"""
Row Evaluator.

Evaluates one billed line against its matched rule master entry.

Every rule kind has exactly one check registered in a dispatch table;
construction fails if a kind is left without one. Frequency limits need
the whole row set and are handled by the cross-row post-processor, so
their check here is a deliberate no-op.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence, cast

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.core.enums import (
    AgeMode,
    ComplianceStatus,
    MatchConfidence,
    RuleKind,
    SpecialtyMode,
    TierMode,
    ViolationCode,
)
from sut_compliance.schemas.billing import BillingRow, InstitutionInfo
from sut_compliance.schemas.compliance import ComplianceResult, RelatedRow, Violation
from sut_compliance.schemas.rules import (
    AgeParams,
    DiagnosisParams,
    MutualExclusionParams,
    ParsedRule,
    RuleMasterEntry,
    SpecialtyParams,
    TierParams,
)
from sut_compliance.services.exemptions import DEFAULT_EXEMPTIONS, ExemptionTable
from sut_compliance.services.rule_extractor import names_several_tiers
from sut_compliance.services.specialty_matcher import SpecialtyMatcher
from sut_compliance.services.turkish_text import normalize_code, title_case_tr, turkish_lower

logger = logging.getLogger(__name__)

SessionRows = Sequence[tuple[int, BillingRow]]

# Kinds whose violations make a row non-compliant rather than reviewable
HARD_VIOLATION_KINDS = frozenset({
    RuleKind.TIER_RESTRICTION,
    RuleKind.MUTUAL_EXCLUSION,
    RuleKind.SPECIALTY_RESTRICTION,
    RuleKind.AGE_RESTRICTION,
})

MAX_CONFLICT_CODES_SHOWN = 5
MAX_RELATED_ROWS = 10
LOW_CONFIDENCE_SUFFIX = " (düşük güven)"

# =============================================================================
# Clause Vocabulary
# =============================================================================

_TIER_INCREMENT = re.compile(r"(?:ilave|art[ıi]r[ıi]m|%\s*\d+|ek\s*puan|fark[ıi]|fazla\s*puan)")

_EXCLUDED_SUBJECT = re.compile(
    r"(?:uzman[ıi]|hekim[i]?|dal\s+uzman[ıi]?|bran[sş][ıi]?)\s*(?:\)|,)?\s*$"
)
_PERFORMER_SIGNAL = re.compile(r"(?:tarafından|raporu\s+ile|uzmanı\s+tarafından|raporlandığında)")
_SPECIALTY_EXPANSIVE = re.compile(
    r"\b(?:i[cç]in\s+de|taraf[ıi]ndan\s+da|uzman[ıi]\s+hekimler\s+i[cç]in\s+de|"
    r"da\s+yapabilir|da\s+yapılabilir|de\s+puanland[ıi]r[ıi]l[ıi]r|"
    r"da\s+faturaland[ıi]r[ıi]l[ıi]r|da\s+uygulanabilir|"
    r"durumunda\s+da\s+puanland[ıi]r[ıi]l[ıi]r|durumunda\s+da\s+faturaland[ıi]r[ıi]l[ıi]r)"
)
_ABSENCE_CLAUSE = re.compile(
    r"bulunmadığında|bulunmadiginda|yokluğunda|yoklugunda|olmadığında|olmadiginda|bulunmayan|yoksa"
)
_AGE_UNDER_SCOPE = re.compile(r"(\d+)\s*ya[sş]\s*(?:alt[ıi]|altında|altındaki)")
_AGE_OVER_SCOPE = re.compile(r"(\d+)\s*ya[sş]\s*(?:[uü]st[uü]|üzerinde|üstündeki|ve\s+[uü]zeri)")
_AGE_SCOPE_INCREMENT = re.compile(r"art[ıi]r[ıi]m|%\s*\d+|ek\s*puan|fazla\s*puan")
_ANESTHESIA_METHOD_BEFORE = re.compile(r"(?:genel|lokal|rejyonel|spinal|epidural|sedasyon)\s*$")
_ANESTHESIA_METHOD_AFTER = re.compile(r"^(?:alt[ıi]nda|ile\b|uygulan)")
_ICD_LIKE = re.compile(r"^['\"]?[a-z]\d+\.\d", re.IGNORECASE)
_OTHER_OR_UNDEFINED = re.compile(r"^(?:di[gğ]er|tan[ıi]mlanmam[ıi][sş])$", re.IGNORECASE)

SPECIALTY_FILTER_STOP_WORDS = frozenset({
    "için", "icin", "olan", "olarak", "ile", "bir", "her", "bu", "şu", "de", "da",
    "den", "dan", "dir", "dır", "ise", "gibi", "kadar", "sonra", "önce", "once",
    "ancak", "sadece", "bizzat", "tarafından", "tarafindan", "halinde", "yapılır",
    "faturalandırılır", "puanlandırılır", "uygulanır", "gerekir", "gerekmektedir",
})

# Units of a hospital, not physician specialties
SERVICE_NAMES = frozenset({
    "palyatif bakım", "palyatif bakim", "yoğun bakım", "yogun bakim",
    "acil servis", "yataklı servis", "yatakli servis", "poliklinik",
    "ameliyathane", "laboratuvar", "eczane",
})

# Specialties named in a clause but missed by extraction are added back
SUPPLEMENT_SPECIALTIES = (
    "kadın doğum", "kadın hastalıkları", "çocuk cerrahisi", "çocuk üroloji",
    "plastik cerrahi", "çocuk endokrinoloji", "genel cerrahi", "ortopedi",
    "üroloji", "göz hastalıkları", "kulak burun boğaz", "nöroloji",
    "beyin cerrahisi", "kalp damar cerrahisi", "göğüs cerrahisi",
    "kardiyoloji", "gastroenteroloji", "dermatoloji", "endokrinoloji",
    "nefroloji", "hematoloji", "onkoloji", "perinatoloji",
    "adli tıp", "ruh sağlığı ve hastalıkları", "çocuk ve ergen ruh sağlığı",
    "fiziksel tıp ve rehabilitasyon", "enfeksiyon hastalıkları",
    "anesteziyoloji", "acil tıp", "aile hekimliği", "radyoloji",
    "nükleer tıp", "romatoloji", "göğüs hastalıkları",
)

_P_CODE = re.compile(r"\b[Pp]\d{5,7}\b")
_ANY_OTHER_PROCEDURE = re.compile(r"ba[sş]ka\s+(?:bir\s+)?i[sş]lem|di[gğ]er\s+i[sş]lem|tek\s+ba[sş][ıi]na")
_SAME_TOOTH = re.compile(r"ayn[ıi]\s*di[sş]")

_NUM_WORD = r"(?:\d+|bir|iki|üç|uc|dört|dort|beş|bes|altı|alti|yedi|sekiz|dokuz|on|yirmi|otuz)"
_DIAGNOSIS_FREQUENCY = re.compile(
    r"tan[ıi]lar[ıi]nda.{0,80}(?:en fazla|adet|kez|kere)\s*(?:faturaland|puan)"
)
_GENERAL_FREQUENCY = re.compile(
    rf"{_NUM_WORD}\s*(?:günde|g[uü]nde|haftada|ayda|y[ıi]lda)\s+(?:bir|1|en fazla|{_NUM_WORD})\s+(?:adet|kez|kere)"
)
_DIAGNOSIS_FREQUENCY_ONLY = re.compile(
    r"tan[ıi]lar[ıi]nda.{0,120}(?:en fazla|en çok|en cok)\s+"
    r"(?:\d+|bir|iki|üç|uc|dört|dort|beş|bes)\s+(?:adet|kez|kere)"
)
DIAGNOSIS_EXTRA_KEYS = (
    "TANI", "Tani", "Tanı", "tani", "tanı", "TANI KODU", "Tani Kodu", "Tanı Kodu",
)

_AGE_INCREMENT = re.compile(
    r"art[ıi]r[ıi]ml[ıi]|ilave|fark[ıi]|ek\s*puan|ek\s*ücret|%\s*\d+\s*art[ıi]r[ıi]m|\bfazla\s+puan"
)
_AGE_EXPANSIVE = re.compile(r"\b(?:da\s+uygulan|de\s+puanland|da\s+yap[ıi]l|i[cç]in\s+de\s+puanland)")

_NOTE_THIRD_TIER = re.compile(
    r"(?:yalnızca|sadece|ancak)?\s*(?:üçüncü|3\.?)\s*basamak.*?(?:tarafından|yapılır|sunulur|faturalandır)"
)
_NOTE_SECOND_TIER = re.compile(
    r"(?:yalnızca|sadece|ancak)?\s*(?:ikinci|2\.?)\s*basamak.*?(?:tarafından|yapılır|sunulur|faturalandır)"
)
_NOTE_INCREMENT = re.compile(r"(?:ilave|artırım|%\d+|ek\s*puan|fark)")


# =============================================================================
# Shared Helpers
# =============================================================================


def to_related_row(index: int, row: BillingRow) -> RelatedRow:
    """Compact reference to another billed line."""
    return RelatedRow(
        row_index=index,
        procedure_code=row.procedure_code,
        procedure_name=row.procedure_name,
        date=row.date,
        physician=row.physician,
        operation_number=row.operation_number,
    )


def _same_tooth(a: Optional[str], b: Optional[str]) -> bool:
    left, right = (a or "").strip(), (b or "").strip()
    if left and right:
        return left == right
    # both empty counts as the same tooth, one empty does not
    return not left and not right


def check_mutual_exclusion(
    index: int,
    row: BillingRow,
    entry: RuleMasterEntry,
    rule: ParsedRule,
    session_rows: SessionRows,
    exemptions: ExemptionTable = DEFAULT_EXEMPTIONS,
) -> Optional[Violation]:
    """
    Check one mutual-exclusion rule against the other rows of a session.

    Shared by the row evaluator and the cross-row pass.

    Args:
        index: Position of ``row`` in the full row set
        row: The billed line carrying the rule
        entry: Rule master entry matched by ``row``
        rule: A mutual-exclusion rule of ``entry``
        session_rows: (index, row) pairs sharing the row's session key
        exemptions: Exemption table

    Returns:
        A BIRLIKTE_003 violation, or None when nothing conflicts
    """
    own_code = normalize_code(row.procedure_code)
    if exemptions.skips_mutual_exclusion(own_code):
        return None

    params = cast(MutualExclusionParams, rule.params)
    lower = turkish_lower(rule.source_text)
    codes = list(params.codes)
    if not codes:
        codes = [found[1:] for found in _P_CODE.findall(rule.source_text)]

    any_other = not codes and (params.any_other or bool(_ANY_OTHER_PROCEDURE.search(lower)))
    if any_other:
        conflicts = [
            (i, other)
            for i, other in session_rows
            if i != index and normalize_code(other.procedure_code) != own_code
        ]
        if not conflicts:
            return None
        shown = list(dict.fromkeys(other.procedure_code for _, other in conflicts))
        shown = shown[:MAX_CONFLICT_CODES_SHOWN]
        more = len(conflicts) - MAX_CONFLICT_CODES_SHOWN
        suffix = f" ve {more} diğer işlem" if more > 0 else ""
        explanation = (
            f"Bu işlem başka işlemlerle birlikte faturalandırılamaz. "
            f"Çakışan: {', '.join(shown)}{suffix}"
        )
    elif codes:
        forbidden = {re.sub(r"^P", "", code.replace(".", ""), flags=re.IGNORECASE) for code in codes}
        same_tooth = params.same_tooth or bool(_SAME_TOOTH.search(lower))
        conflicts = [
            (i, other)
            for i, other in session_rows
            if i != index
            and normalize_code(other.procedure_code) in forbidden
            and (not same_tooth or _same_tooth(row.tooth_number, other.tooth_number))
        ]
        if not conflicts:
            return None
        scope = "aynı diş için " if same_tooth else ""
        explanation = (
            f"Bu işlem {scope}şu kodlarla birlikte faturalandırılamaz: "
            f"{', '.join(other.procedure_code for _, other in conflicts)}"
        )
    else:
        return None

    return Violation(
        code=ViolationCode.MUTUAL_EXCLUSION,
        explanation=explanation,
        source=rule.origin_source or entry.primary_source,
        clause=rule.source_text,
        rule_kind=RuleKind.MUTUAL_EXCLUSION,
        from_section_header=rule.from_section_header,
        rule_confidence=rule.confidence,
        related_rows=[to_related_row(i, other) for i, other in conflicts[:MAX_RELATED_ROWS]],
    )


# =============================================================================
# Row Evaluator
# =============================================================================


@dataclass
class RowContext:
    """Everything one rule check may look at."""

    index: int
    row: BillingRow
    entry: RuleMasterEntry
    session_rows: SessionRows = field(default_factory=list)


RuleCheck = Callable[[RowContext, ParsedRule], list[Violation]]


class RowEvaluator:
    """
    Per-row compliance evaluator.

    Holds only read-only context (institution, matcher, dataset
    specialties, thresholds); ``evaluate`` has no side effects.
    """

    def __init__(
        self,
        institution: InstitutionInfo,
        matcher: SpecialtyMatcher,
        dataset_specialties: Iterable[str] = (),
        settings: Optional[ComplianceSettings] = None,
        exemptions: ExemptionTable = DEFAULT_EXEMPTIONS,
    ):
        self.institution = institution
        self.matcher = matcher
        self.dataset_specialties = frozenset(
            turkish_lower(s).strip() for s in dataset_specialties if s and s.strip()
        )
        self.settings = settings or get_compliance_settings()
        self.exemptions = exemptions

        self._checks: dict[RuleKind, RuleCheck] = {
            RuleKind.TIER_RESTRICTION: self._check_tier,
            RuleKind.SPECIALTY_RESTRICTION: self._check_specialty,
            RuleKind.DIAGNOSIS_CONDITION: self._check_diagnosis,
            RuleKind.MUTUAL_EXCLUSION: self._check_mutual_exclusion,
            RuleKind.FREQUENCY_LIMIT: self._check_frequency,
            RuleKind.DENTAL_TREATMENT: self._check_dental,
            RuleKind.AGE_RESTRICTION: self._check_age,
            RuleKind.GENERAL_NOTE: self._check_general_note,
        }
        missing = set(RuleKind) - self._checks.keys()
        if missing:
            raise ValueError(f"No check registered for rule kinds: {sorted(k.value for k in missing)}")

    @property
    def tier(self) -> int:
        return self.institution.tier

    def evaluate(
        self,
        row: BillingRow,
        index: int,
        entry: Optional[RuleMasterEntry],
        session_rows: SessionRows = (),
    ) -> ComplianceResult:
        """
        Classify one billed line.

        Args:
            row: The billed line
            index: Its position in the input (kept on the result)
            entry: Matched rule master entry, None when the code is unknown
            session_rows: (index, row) pairs of the same patient and date,
                the row itself included

        Returns:
            ComplianceResult for the row
        """
        if entry is None:
            reason = (
                "GİL kodu kural veritabanında bulunamadı"
                if normalize_code(row.procedure_code)
                else "GİL kodu boş"
            )
            return ComplianceResult(
                row_index=index,
                status=ComplianceStatus.UNMATCHED,
                confidence=MatchConfidence.LOW,
                confidence_reason=reason,
            )

        ctx = RowContext(index=index, row=row, entry=entry, session_rows=session_rows)
        violations: list[Violation] = []
        for rule in entry.rules:
            violations.extend(self._checks[rule.kind](ctx, rule))

        threshold = self.settings.LOW_CONFIDENCE_THRESHOLD
        for violation in violations:
            if violation.rule_confidence < threshold:
                violation.explanation += LOW_CONFIDENCE_SUFFIX

        confidence, reason = self._confidence(entry, violations)
        return ComplianceResult(
            row_index=index,
            status=self._status(violations),
            confidence=confidence,
            confidence_reason=reason,
            violations=violations,
            entry=entry,
            point_delta=round(row.points - entry.points, 2) if entry.points > 0 else None,
            price_delta=round(row.price - entry.price, 2) if entry.price > 0 else None,
            exempt=self.exemptions.skips_frequency(entry.code),
        )

    def _status(self, violations: list[Violation]) -> ComplianceStatus:
        if not violations:
            return ComplianceStatus.COMPLIANT
        threshold = self.settings.LOW_CONFIDENCE_THRESHOLD
        if all(v.rule_confidence < threshold for v in violations):
            return ComplianceStatus.NEEDS_REVIEW
        if any(v.rule_kind in HARD_VIOLATION_KINDS for v in violations):
            return ComplianceStatus.NON_COMPLIANT
        return ComplianceStatus.NEEDS_REVIEW

    @staticmethod
    def _confidence(
        entry: RuleMasterEntry, violations: list[Violation]
    ) -> tuple[MatchConfidence, str]:
        if any(v.rule_kind == RuleKind.DIAGNOSIS_CONDITION for v in violations):
            return MatchConfidence.MEDIUM, "Tanı koşulu ihlali, tanı kodları otomatik doğrulanamıyor"
        if not entry.structured_rules:
            return MatchConfidence.MEDIUM, "Kural eşleşti ancak mevzuat metninden kural çıkarılamadı"
        return MatchConfidence.HIGH, "Kural eşleşti ve kurallar başarıyla çıkarıldı"

    @staticmethod
    def _violation(
        ctx: RowContext,
        rule: ParsedRule,
        code: ViolationCode,
        explanation: str,
        kind: Optional[RuleKind] = None,
    ) -> Violation:
        return Violation(
            code=code,
            explanation=explanation,
            source=rule.origin_source or ctx.entry.primary_source,
            clause=rule.source_text,
            rule_kind=kind or rule.kind,
            from_section_header=rule.from_section_header,
            rule_confidence=rule.confidence,
        )

    # =========================================================================
    # Rule Checks
    # =========================================================================

    def _check_tier(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        params = cast(TierParams, rule.params)
        if _TIER_INCREMENT.search(turkish_lower(rule.source_text)):
            return []

        if params.mode == TierMode.AT_LEAST:
            violated = self.tier < min(params.tiers)
        else:
            violated = self.tier not in params.tiers
        if not violated:
            return []

        if params.mode == TierMode.AT_LEAST:
            allowed = f"{min(params.tiers)}. basamak ve üzeri"
        else:
            allowed = ". ve ".join(str(t) for t in params.tiers) + ". basamak"
        return [
            self._violation(
                ctx,
                rule,
                ViolationCode.TIER,
                f"Bu işlem yalnızca {allowed} hastanelerde yapılabilir. Kurum basamağı: {self.tier}",
            )
        ]

    def _check_specialty(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        params = cast(SpecialtyParams, rule.params)
        text = turkish_lower(rule.source_text)
        mode = params.mode

        if mode == SpecialtyMode.EXCLUDED:
            excluded_at = text.find("hariç")
            if excluded_at >= 0:
                before = text[max(0, excluded_at - 60):excluded_at].strip()
                # "acil haller hariç" excludes a situation, not a specialty
                if not _EXCLUDED_SUBJECT.search(before):
                    if not _PERFORMER_SIGNAL.search(text):
                        return []
                    mode = SpecialtyMode.INCLUDED

        specialties = [s for s in params.specialties if self._is_specialty_name(s, text)]

        if mode == SpecialtyMode.INCLUDED and _SPECIALTY_EXPANSIVE.search(text):
            return []
        if specialties and all(self._followed_by_example(s, text) for s in specialties):
            return []
        if self._outside_age_scope(text, ctx.row.patient_age):
            return []

        if specialties:
            present = {turkish_lower(s) for s in specialties}
            for name in SUPPLEMENT_SPECIALTIES:
                if name in text and name not in present:
                    specialties.append(name)
                    present.add(name)
        if not specialties:
            return []

        physician = ctx.row.specialty
        names = ", ".join(title_case_tr(s) for s in specialties)
        matched = any(self.matcher.matches(physician, s) for s in specialties)

        if mode == SpecialtyMode.EXCLUDED:
            if not matched:
                return []
            return [
                self._violation(
                    ctx,
                    rule,
                    ViolationCode.EXCLUDED_SPECIALTY,
                    f"Bu işlem {names} branşları HARİCİNDEKİ hekimler tarafından yapılabilir. "
                    f"Hekim branşı ({physician}) hariç tutulan listede.",
                )
            ]

        if matched:
            return []
        explanation = f"Bu işlem şu branşlara kısıtlıdır: {names}. Hekim branşı: {physician}"
        if _ABSENCE_CLAUSE.search(text):
            # "X bulunmadığında" only binds when the institution has an X physician
            if not any(
                self.matcher.matches(available, turkish_lower(s))
                for s in specialties
                for available in sorted(self.dataset_specialties)
            ):
                return []
            explanation += ". Kurumda ilgili branş hekimi mevcut."
        return [self._violation(ctx, rule, ViolationCode.SPECIALTY, explanation)]

    @staticmethod
    def _is_specialty_name(name: str, text: str) -> bool:
        stripped = name.strip()
        lower = turkish_lower(name)
        if len(name) <= 2 or lower in SPECIALTY_FILTER_STOP_WORDS or lower in SERVICE_NAMES:
            return False
        if _ICD_LIKE.search(stripped) or _OTHER_OR_UNDEFINED.search(stripped):
            return False
        if len(stripped) <= 4 and len(stripped.split()) == 1:
            return False
        if lower == "anestezi" and RowEvaluator._anesthesia_is_method(text):
            return False
        return True

    @staticmethod
    def _anesthesia_is_method(text: str) -> bool:
        """True when every "anestezi" in the clause names a method, not a specialty."""
        start = 0
        while True:
            idx = text.find("anestezi", start)
            if idx < 0:
                return True
            before = text[max(0, idx - 20):idx].strip()
            after = text[idx + 8:idx + 25].strip()
            if not (_ANESTHESIA_METHOD_BEFORE.search(before) or _ANESTHESIA_METHOD_AFTER.search(after)):
                return False
            start = idx + 8

    @staticmethod
    def _followed_by_example(name: str, text: str) -> bool:
        lower = turkish_lower(name)
        idx = text.find(lower)
        if idx < 0:
            return False
        after = text[idx + len(lower):idx + len(lower) + 20].strip()
        return re.match(r"gibi\b", after) is not None

    @staticmethod
    def _outside_age_scope(text: str, age: Optional[int]) -> bool:
        """Does the clause only concern an age group the patient is not in?"""
        if not age:
            return False
        under = _AGE_UNDER_SCOPE.search(text)
        if under and not _AGE_SCOPE_INCREMENT.search(text[max(0, under.start() - 20):under.start() + 60]):
            if age >= int(under.group(1)):
                return True
        over = _AGE_OVER_SCOPE.search(text)
        if over and not _AGE_SCOPE_INCREMENT.search(text[max(0, over.start() - 20):over.start() + 60]):
            if age < int(over.group(1)):
                return True
        return False

    def _check_mutual_exclusion(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        violation = check_mutual_exclusion(
            ctx.index, ctx.row, ctx.entry, rule, ctx.session_rows, self.exemptions
        )
        return [violation] if violation else []

    def _check_frequency(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        return []

    def _check_diagnosis(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        params = cast(DiagnosisParams, rule.params)
        text = turkish_lower(rule.source_text)
        # "X tanılarında en fazla N adet" raises a frequency, it does not require X
        if _DIAGNOSIS_FREQUENCY.search(text) and _GENERAL_FREQUENCY.search(text):
            return []
        if _DIAGNOSIS_FREQUENCY_ONLY.search(text):
            return []
        if not params.codes:
            return []

        required = ", ".join(params.codes)
        diagnosis = self._diagnosis_of(ctx.row)
        if not diagnosis:
            explanation = f"Bu işlem belirli tanı kodu gerektirir: {required}. Tanı bilgisi mevcut değil."
        elif any(code.upper() in diagnosis.upper() for code in params.codes):
            return []
        else:
            explanation = f"Bu işlem belirli tanı kodu gerektirir: {required}. Mevcut tanı: {diagnosis}"
        return [self._violation(ctx, rule, ViolationCode.DIAGNOSIS, explanation)]

    @staticmethod
    def _diagnosis_of(row: BillingRow) -> str:
        if row.diagnosis:
            return row.diagnosis.strip()
        for key in DIAGNOSIS_EXTRA_KEYS:
            value = row.extra.get(key)
            if value:
                return str(value).strip()
        return ""

    def _check_dental(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        row = ctx.row
        if (row.tooth_number or "").strip() or "diş" not in turkish_lower(row.specialty):
            return []
        return [
            self._violation(
                ctx, rule, ViolationCode.DENTAL, "Diş tedavi kuralı mevcut ancak diş numarası boş."
            )
        ]

    def _check_age(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        params = cast(AgeParams, rule.params)
        text = turkish_lower(rule.source_text)
        if _AGE_INCREMENT.search(text) or _AGE_EXPANSIVE.search(text):
            return []

        age = ctx.row.patient_age
        if age is None or age <= 0:
            if not (params.min_age or params.max_age):
                return []
            return [
                self._violation(
                    ctx,
                    rule,
                    ViolationCode.AGE,
                    f"Bu işlem yaş kısıtı içeriyor ({params.describe()}). Yaş bilgisi mevcut değil.",
                )
            ]

        if params.mode == AgeMode.UNDER:
            violated = bool(params.max_age) and age >= params.max_age
        elif params.mode == AgeMode.OVER:
            violated = bool(params.min_age) and age < params.min_age
        else:
            violated = bool(params.min_age and age < params.min_age) or bool(
                params.max_age and age > params.max_age
            )
        if not violated:
            return []
        return [
            self._violation(
                ctx,
                rule,
                ViolationCode.AGE,
                f"Bu işlem {params.describe()} hastalar için uygulanabilir. Hasta yaşı: {age}",
            )
        ]

    def _check_general_note(self, ctx: RowContext, rule: ParsedRule) -> list[Violation]:
        """Recover a tier restriction an oracle or article note states in prose."""
        if ctx.entry.has_rule(RuleKind.TIER_RESTRICTION):
            return []
        text = turkish_lower(rule.source_text)
        if _NOTE_INCREMENT.search(text) or names_several_tiers(text):
            return []

        third = _NOTE_THIRD_TIER.search(text)
        if third:
            if self.tier >= 3:
                return []
            allowed = "3. basamak"
        elif _NOTE_SECOND_TIER.search(text):
            if self.tier >= 2:
                return []
            allowed = "2. basamak ve üzeri"
        else:
            return []

        logger.debug("Tier restriction recovered from general note of %s", ctx.entry.code)
        return [
            self._violation(
                ctx,
                rule,
                ViolationCode.TIER,
                f"Bu işlem yalnızca {allowed} hastanelerde yapılabilir. "
                f"Kurum basamağı: {self.tier} (açıklamadan tespit)",
                kind=RuleKind.TIER_RESTRICTION,
            )
        ]
