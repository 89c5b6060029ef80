"""
Regex Rule Extractor.

Turns one free-text regulatory description into typed ParsedRule objects.

Provides:
- Tier restrictions (with price-increment suppression)
- Specialty restrictions (only / included / excluded)
- Mutual exclusions (explicit code list, any-other wildcard, same tooth)
- Frequency limits (count per period and minimum interval forms)
- Diagnosis conditions (ICD-10 codes or free-text condition)
- Dental treatment flags
- Age restrictions (with expansive-phrase suppression)

Text with none of these wordings yields no rules; general notes come
only from the rule oracle and from attached legislation articles.

All matching runs against a Turkish-lowercased copy of the text; the
original text is kept verbatim as each rule's source_text.
"""

import logging
import re
from typing import Callable, Optional

from sut_compliance.core.enums import (
    AgeMode,
    ExtractionMethod,
    FrequencyPeriod,
    RuleSource,
    SpecialtyMode,
    TierMode,
)
from sut_compliance.schemas.rules import (
    AgeParams,
    DentalParams,
    DiagnosisParams,
    FrequencyParams,
    MutualExclusionParams,
    ParsedRule,
    RuleParams,
    SpecialtyParams,
    TierParams,
)
from sut_compliance.services.specialty_matcher import DEFAULT_ALIAS_GROUPS
from sut_compliance.services.turkish_text import turkish_lower

logger = logging.getLogger(__name__)


# =============================================================================
# Shared Vocabulary
# =============================================================================

# Wording that turns a tier mention into a surcharge clause
INCREMENT_PATTERNS = (
    re.compile(r"ilave\s+edilir"),
    re.compile(r"puan[ıi]?\s*(?:na|ına|larına)?\s*%\s*\d+"),
    re.compile(r"%\s*\d+\s*(?:ilave|artır|arttır)"),
    re.compile(r"puan\s*(?:artır|arttır)"),
)

# "also performed by X" adds an allowed party instead of restricting
EXPANSIVE_PATTERN = re.compile(
    r"\b(?:i[cç]in\s+de|taraf[ıi]ndan\s+da|uzman[ıi]\s+hekimler\s+i[cç]in\s+de|"
    r"da\s+yapabilir|da\s+yap[ıi]labilir|de\s+puanland[ıi]r[ıi]l[ıi]r|"
    r"da\s+faturaland[ıi]r[ıi]l[ıi]r|da\s+uygulanabilir|da\s+uygulan|"
    r"de\s+puanland|da\s+yap[ıi]l|durumunda\s+da\s+(?:puan|fatura))"
)

AGE_INCREMENT_PATTERN = re.compile(
    r"art[ıi]r[ıi]ml[ıi]|ilave|fark[ıi]|ek\s*puan|ek\s*ücret|%\s*\d+|fazla\s+puan"
)

SEMANTIC_REVIEW_WORDS = (
    "branş", "uzman", "hekim", "tarafından", "tarafindan", "basamak",
    "hariç", "haricinde", "dışında", "disinda", "halinde", "koşuluyla", "şartıyla",
)

ONLY_MARKER = re.compile(r"(?:yalnızca|yalnizca|sadece|yalnız)\s")

NUMBER_WORDS = {
    "bir": 1, "iki": 2, "üç": 3, "uc": 3, "dört": 4, "dort": 4,
    "beş": 5, "bes": 5, "altı": 6, "alti": 6, "yedi": 7, "sekiz": 8,
    "dokuz": 9, "on": 10, "yirmi": 20, "otuz": 30, "kırk": 40, "kirk": 40,
    "elli": 50,
}
NUM = r"(\d+|bir|iki|üç|uc|dört|dort|beş|bes|altı|alti|yedi|sekiz|dokuz|on|yirmi|otuz|kırk|kirk|elli)"
UNIT = r"(?:kez|adet|defa|kere|sefer)"
NOT_BILLED = r"(?:faturalandırılmaz|faturalandirilmaz|faturalandırılamaz)"


def parse_count(token: str) -> Optional[int]:
    """Digits or a Turkish number word ("üç" -> 3)."""
    token = token.strip()
    if token.isdigit():
        value = int(token)
        return value if value > 0 else None
    return NUMBER_WORDS.get(turkish_lower(token))


def normalize_exclusion_code(code: str) -> str:
    """Upper-case an excluded code and drop the "P" list prefix."""
    code = code.strip().upper()
    if code.startswith("P") and code[1:].replace(".", "").isdigit():
        return code[1:]
    return code


def needs_semantic_review(text: str) -> bool:
    """Does a description carry specialty, tier, negation or conditional wording?"""
    lower = turkish_lower(text)
    return any(word in lower for word in SEMANTIC_REVIEW_WORDS)


def _has_increment(context: str) -> bool:
    return any(p.search(context) for p in INCREMENT_PATTERNS)


def _window(lower: str, match: re.Match, before: int, after: int) -> str:
    return lower[max(0, match.start() - before):min(len(lower), match.end() + after)]


# =============================================================================
# Tier Restriction
# =============================================================================

_MULTI_TIER = re.compile(
    r"(?:ikinci|2\.)\s*basamak.{5,120}(?:üçüncü|3\.)\s*basamak|"
    r"(?:üçüncü|3\.)\s*basamak.{5,120}(?:ikinci|2\.)\s*basamak"
)
_AT_LEAST_WORD = re.compile(r"ve\s+(?:üzeri|uzeri|üstü|ustu)")
_AT_LEAST_TAIL = re.compile(r"^\s*(?:basamak\s+)?ve\s+(?:üzeri|uzeri|üstü|ustu)")
_PROVIDER_VERBS = (
    r"(?:yapılır|yapilir|faturalandırılır|faturalandirilir|faturalandırılmaz|"
    r"sunucularında|sunucularınca|sunucularinca|kuruluş|kurulus|kurum|sunucu|"
    r"tarafından|tarafindan)"
)
_PROVIDER_PLACES = (
    r"(?:kuruluşlarında|kuruluslarinda|kurumlarında|kurumlarinda|"
    r"sunucularında|sunucularinda)"
)
_ORDINAL = r"(?:birinci|ikinci|üçüncü|ucuncu)"


def _ordinal_tier(fragment: str) -> list[int]:
    if "birinci" in fragment:
        return [1]
    if "ikinci" in fragment:
        return [2]
    return [3]


def _digit_tier(match: re.Match) -> list[int]:
    return [int(match.group(1))]


_TIER_PATTERNS: list[tuple[re.Pattern, Callable[[re.Match], list[int]]]] = [
    (re.compile(r"(?:yalnızca|yalnizca|sadece)\s+(\d)\.\s*basamak"), _digit_tier),
    (re.compile(r"(?:yalnızca|yalnizca|sadece)\s+" + _ORDINAL), lambda m: _ordinal_tier(m.group(0))),
    (re.compile(r"(\d)\.\s*ve\s+(\d)\.\s*basamak"), lambda m: [int(m.group(1)), int(m.group(2))]),
    (re.compile(r"(\d)\.\s*basamak\s+ve\s+(?:üzeri|uzeri|üstü|ustu)"), _digit_tier),
    (re.compile(_ORDINAL + r"\s+basamak\s+ve\s+(?:üzeri|uzeri|üstü|ustu)"), lambda m: _ordinal_tier(m.group(0))),
    (re.compile(r"(\d)\.\s*basamak\s+(?:sağlık|saglik).{0,60}" + _PROVIDER_VERBS), _digit_tier),
    (re.compile(_ORDINAL + r"\s+basamak\s+(?:sağlık|saglik).{0,60}" + _PROVIDER_VERBS), lambda m: _ordinal_tier(m.group(0))),
    (re.compile(r"(\d)\.\s*basamak\s+.{0,40}" + _PROVIDER_PLACES), _digit_tier),
    (re.compile(_ORDINAL + r"\s+basamak\s+.{0,40}" + _PROVIDER_PLACES), lambda m: _ordinal_tier(m.group(0))),
    (
        re.compile(_ORDINAL + r"\s+basamak\s+.{0,60}(?:uzmanı|uzmani|uzmanları|uzmanlari|hekimi|hekimleri)\s+(?:tarafından|tarafindan)"),
        lambda m: _ordinal_tier(m.group(0)),
    ),
    (
        re.compile(r"(\d)\.\s*basamak\s+.{0,60}(?:uzmanı|uzmani|uzmanları|uzmanlari|hekimi|hekimleri)\s+(?:tarafından|tarafindan)"),
        _digit_tier,
    ),
]


def names_several_tiers(lower: str) -> bool:
    """Staffing text for several tiers without an only-marker allows both tiers."""
    return bool(_MULTI_TIER.search(lower)) and not ONLY_MARKER.search(lower)


def extract_tier(lower: str) -> Optional[TierParams]:
    """At most one tier rule per description."""
    if names_several_tiers(lower):
        return None

    for pattern, tiers_of in _TIER_PATTERNS:
        for match in pattern.finditer(lower):
            tiers = [t for t in tiers_of(match) if 1 <= t <= 3]
            if not tiers:
                continue
            if _has_increment(_window(lower, match, 30, 80)):
                continue
            at_least = bool(
                _AT_LEAST_WORD.search(match.group(0))
                or _AT_LEAST_TAIL.search(lower[match.end():match.end() + 30])
            )
            mode = TierMode.AT_LEAST if at_least else TierMode.EXACT
            return TierParams(tiers=sorted(set(tiers)), mode=mode)
    return None


# =============================================================================
# Specialty Restriction
# =============================================================================

_SPECIALTY_PATTERNS = [
    re.compile(
        r"(?:yalnızca|yalnizca|sadece)\s+(.+?)\s+(?:uzmanları|uzmanlari|uzmanlarınca|uzmanlarinca|"
        r"hekimleri|hekimlerince|tarafından|tarafindan|branşı|bransi)"
    ),
    re.compile(
        r"(?:uzmanı|uzmani)\s+olmak\s+üzere\s+(.+?)(?:\s+uzmanları|\s+uzmanlari|\s+hekimleri|"
        r"\s+tarafından|\s+tarafindan|\.)"
    ),
    re.compile(r"branş\s*kısıtlaması\s*[:;]\s*(.+?)(?:\.|$)"),
    re.compile(
        r"(.+?(?:cerrahisi|cerrahı|uzmanı|uzmani|hekimi|hekimliği)(?:\s+(?:ve/veya|ve|veya)\s+.+?)*)"
        r"\s+(?:tarafından|tarafindan)\s+(?:yapılır|yapilir|faturalandırılır|faturalandirilir|faturalandırılmaz)"
    ),
    re.compile(
        r"(.+?)\s+(?:uzman\s+)?(?:hekimlerince|hekimleri|uzmanlarınca|uzmanlarinca)\s+(?:de\s+)?"
        r"(?:uygulandığında|uygulandiginda|yapıldığında|yapildiginda)\s+(?:faturalandırılır|faturalandirilir)"
    ),
    re.compile(
        r"(.+?)\s+(?:uzman\s+)?(?:hekimi|uzmanı|uzmani)\s+(?:tarafından|tarafindan)\s+"
        r"(?:yapılması|yapilmasi)\s+(?:halinde|durumunda)\s+(?:faturalandırılır|faturalandirilir)"
    ),
    re.compile(r"(.+?)\s+hekimlerince\s+de\s+uygulandığında"),
    re.compile(
        r"(.+?)\s+(?:uzmanlarınca|uzmanlarinca|hekimlerince)\s+"
        r"(?:yapılır|yapilir|faturalandırılır|faturalandirilir|faturalandırılmaz)"
    ),
]

_SPECIALTY_SPLIT = re.compile(r"[,;]|\s+ve/veya\s+|\s+veya\s+|\s+ve\s+")
_SPECIALTY_SUFFIX = re.compile(
    r"\s*(?:uzmanı|uzmani|uzmanları|uzmanlari|hekimi|hekimleri|cerrahı|cerrahisi)\s*$"
)
_SPECIALTY_LEAD = re.compile(r"^\s*(?:birisi|biri|bir)\s+")

SPECIALTY_STOP_WORDS = frozenset({
    "için", "icin", "olan", "olarak", "ile", "bir", "her", "bu", "şu", "de", "da",
    "den", "dan", "dir", "dır", "ise", "gibi", "kadar", "sonra", "önce", "once",
    "ancak", "ama", "fakat", "sadece", "yalnızca", "yalnizca", "bizzat", "ayrıca",
    "ayrica", "dışında", "disinda", "hariç", "haric", "dahil", "tüm", "tum",
    "tarafından", "tarafindan", "halinde", "durumunda", "yapılır", "yapilir",
    "faturalandırılır", "faturalandirilir", "puanlandırılır", "puanlandirilir",
    "uygulanır", "uygulanir", "kullanılır", "kullanilir", "gerekir", "gerekmektedir",
    "yapılması", "yapilmasi", "bulunmadığında", "bulunmadiginda",
    "tanımlı", "tanimli", "günlük", "gunluk", "hasta", "başı", "basi",
})

# Fallback vocabulary when the wording names a specialist but no pattern captured
KNOWN_SPECIALTIES = (
    "çocuk cerrahisi", "çocuk üroloji", "kadın doğum", "kadın hastalıkları",
    "plastik cerrahi", "çocuk endokrinoloji", "genel cerrahi", "ortopedi",
    "göz hastalıkları", "kulak burun boğaz", "nöroloji", "beyin cerrahisi",
    "üroloji", "kalp damar cerrahisi", "göğüs cerrahisi", "gastroenteroloji",
    "kardiyoloji", "dermatoloji", "fizik tedavi", "anesteziyoloji",
    "enfeksiyon hastalıkları", "endokrinoloji", "nefroloji", "hematoloji",
    "romatoloji", "onkoloji", "radyoloji", "nükleer tıp", "acil tıp",
    "perinatoloji", "jinekolojik onkoloji", "ağız diş",
    "spor hekimliği", "tıbbi ekoloji", "hidroklimatoloji", "geriatri",
    "allerji", "immünoloji", "ruh sağlığı", "çocuk nöroloji", "çocuk acil",
    "anestezi", "algoloji", "yoğun bakım", "palyatif bakım",
    "tıbbi genetik", "çocuk hematoloji", "çocuk onkoloji",
    "çocuk gastroenteroloji", "çocuk nefroloji", "çocuk kardiyoloji",
    "çocuk endokrin", "çocuk enfeksiyon", "çocuk romatoloji",
    "çocuk göğüs", "çocuk allerji", "çocuk immünoloji",
)

# Official names that themselves contain "ve" must not be split
_COMPOUND_SPECIALTIES = frozenset(
    turkish_lower(name)
    for group in DEFAULT_ALIAS_GROUPS
    for name in group
    if " ve " in name
)


def _specialty_mode(context: str) -> SpecialtyMode:
    if ONLY_MARKER.search(context):
        return SpecialtyMode.ONLY
    if re.search(r"hariç|haric|dışında|disinda", context):
        return SpecialtyMode.EXCLUDED
    return SpecialtyMode.INCLUDED


def split_specialties(captured: str) -> list[str]:
    """Split a captured specialty phrase into clean specialty names."""
    whole = _SPECIALTY_SUFFIX.sub("", captured.strip()).strip()
    whole = _SPECIALTY_LEAD.sub("", whole).strip()
    if whole in _COMPOUND_SPECIALTIES:
        return [whole]

    names: list[str] = []
    for part in _SPECIALTY_SPLIT.split(captured):
        name = _SPECIALTY_SUFFIX.sub("", part.strip())
        name = _SPECIALTY_LEAD.sub("", name).strip()
        if len(name) <= 2 or name in SPECIALTY_STOP_WORDS:
            continue
        if name not in names:
            names.append(name)
    return names


def extract_specialty(lower: str) -> Optional[SpecialtyParams]:
    # "tarafından da" widens who may perform the procedure; never a restriction
    for pattern in _SPECIALTY_PATTERNS:
        for match in pattern.finditer(lower):
            captured = match.group(1) or ""
            if len(captured) <= 2:
                continue
            names = split_specialties(captured)
            if not names:
                continue
            window = _window(lower, match, 40, 40)
            mode = _specialty_mode(window)
            if mode == SpecialtyMode.INCLUDED and EXPANSIVE_PATTERN.search(window):
                continue
            return SpecialtyParams(specialties=names, mode=mode)

    if any(word in lower for word in ("branş", "uzman", "hekim", "cerrah")):
        found = [name for name in KNOWN_SPECIALTIES if name in lower]
        mode = _specialty_mode(lower)
        if found and not (mode == SpecialtyMode.INCLUDED and EXPANSIVE_PATTERN.search(lower)):
            return SpecialtyParams(specialties=found, mode=mode)
    return None


# =============================================================================
# Mutual Exclusion
# =============================================================================

_EXCLUSION_TRIGGERS = [
    re.compile(r"birlikte\s+(?:faturalandırılamaz|faturalandirilama[z]?|kodlanamaz|ödenmez|odenmez)"),
    re.compile(
        r"aynı\s+seansta\s+(?:birlikte\s+)?(?:faturalandırılamaz|faturalandirilama[z]?|"
        r"faturalandırılmaz|faturalandirilmaz|kodlanamaz|ödenmez)"
    ),
    re.compile(
        r"ile\s+birlikte\s+(?:faturalandırılamaz|faturalandirilama[z]?|faturalandırılmaz|"
        r"faturalandirilmaz|kodlanamaz|ödenmez)"
    ),
    re.compile(r"birlikte\s+(?:fatura\s+edilemez|fatura\s+edilmez)"),
    re.compile(r"birlikte\s+(?:faturalandırılmaz|faturalandirilmaz)"),
    re.compile(r"ile\s+(?:faturalandırılmaz|faturalandirilmaz|faturalandırılamaz)"),
    re.compile(
        r"beraber\s+(?:faturalandırılmaz|faturalandirilmaz|faturalandırılamaz|"
        r"faturalandirilama[z]?|kodlanamaz|ödenmez)"
    ),
    re.compile(
        r"(?:birlikte|beraber)\s+(?:puanlandırılmaz|puanlandirilmaz|puanlandırılamaz|puanlandirilama[z]?)"
    ),
    re.compile(r"aynı\s+seansta\s+.{0,30}(?:faturalandırılmaz|faturalandirilmaz)"),
    re.compile(r"birlikte\s+(?:kodlanmaz|ödenmez|odenmez)"),
]

_EXCLUSION_CODE = re.compile(r"\b(?:[rlp]?\d{5,7}|\d{3}\.\d{3})\b")
_ANY_OTHER = re.compile(r"ba[sş]ka\s+(?:bir\s+)?i[sş]lem|di[gğ]er\s+i[sş]lem|tek\s+ba[sş][ıi]na")
_SAME_TOOTH = re.compile(r"ayn[ıi]\s*di[sş]")


def extract_mutual_exclusion(lower: str) -> Optional[MutualExclusionParams]:
    for trigger in _EXCLUSION_TRIGGERS:
        match = trigger.search(lower)
        if match is None:
            continue
        context = _window(lower, match, 200, 200)
        codes: list[str] = []
        for raw in _EXCLUSION_CODE.findall(context):
            code = normalize_exclusion_code(raw)
            if code not in codes:
                codes.append(code)
        return MutualExclusionParams(
            codes=codes,
            any_other=not codes and bool(_ANY_OTHER.search(lower)),
            same_tooth=bool(_SAME_TOOTH.search(lower)),
        )
    return None


# =============================================================================
# Frequency Limit
# =============================================================================

_D = FrequencyPeriod


def _freq(pattern: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + pattern)


# (pattern, period, multiplier applied to the captured count).
# Order matters: the first pattern that yields a positive count wins, so
# "3 günde bir" is read as an interval before "günde bir kez" as a count.
_FREQUENCY_PATTERNS: list[tuple[re.Pattern, FrequencyPeriod, int]] = [
    (_freq(rf"{NUM}\s+g[üu]nde\s+bir"), _D.DAY_INTERVAL, 1),
    (_freq(rf"{NUM}\s+haftada\s+bir"), _D.DAY_INTERVAL, 7),
    (_freq(rf"{NUM}\s+ayda\s+bir"), _D.MONTH_INTERVAL, 1),
    (_freq(rf"{NUM}\s+y[ıi]lda\s+bir"), _D.MONTH_INTERVAL, 12),
    (_freq(rf"g[üu]nde\s+en\s+fazla\s+{NUM}\s+{UNIT}"), _D.DAY, 1),
    (_freq(rf"g[üu]nde\s+{NUM}\s+{UNIT}"), _D.DAY, 1),
    (_freq(rf"g[üu]nl[üu]k\s+{NUM}\s+{UNIT}"), _D.DAY, 1),
    (_freq(rf"y[ıi]lda\s+en\s+fazla\s+{NUM}\s+{UNIT}"), _D.YEAR, 1),
    (_freq(rf"y[ıi]lda\s+{NUM}\s+{UNIT}"), _D.YEAR, 1),
    (_freq(rf"y[ıi]ll[ıi]k\s+{NUM}\s+{UNIT}"), _D.YEAR, 1),
    (_freq(rf"ayda\s+en\s+fazla\s+{NUM}\s+{UNIT}"), _D.MONTH, 1),
    (_freq(rf"ayda\s+{NUM}\s+{UNIT}"), _D.MONTH, 1),
    (_freq(rf"ayl[ıi]k\s+{NUM}\s+{UNIT}"), _D.MONTH, 1),
    (_freq(rf"haftada\s+en\s+fazla\s+{NUM}\s+{UNIT}"), _D.WEEK, 1),
    (_freq(rf"haftada\s+{NUM}\s+{UNIT}"), _D.WEEK, 1),
    (_freq(rf"haftal[ıi]k\s+{NUM}\s+{UNIT}"), _D.WEEK, 1),
    (_freq(rf"{NUM}\s+g[üu]nden\s+[öo]nce\s+{NOT_BILLED}"), _D.DAY_INTERVAL, 1),
    (_freq(rf"{NUM}\s+aydan\s+[öo]nce\s+{NOT_BILLED}"), _D.MONTH_INTERVAL, 1),
    (_freq(rf"{NUM}\s+g[üu]n\s+(?:ara\s+ile|arayla|aralarla)"), _D.DAY_INTERVAL, 1),
    (_freq(rf"ayn[ıi]\s+ba[sş]vuruda\s+{NUM}\s+defadan\s+fazla\s+(?:faturalandırılmaz|faturalandirilmaz)"), _D.DAY, 1),
    (_freq(r"[öo]m[üu]rde\s+(bir)\s+kez"), _D.ALL, 1),
    (_freq(rf"[öo]m[üu]r\s+boyunca\s+{NUM}\s+defadan\s+fazla"), _D.ALL, 1),
    (_freq(rf"en\s+fazla\s+{NUM}\s+{UNIT}"), _D.ALL, 1),
    (_freq(rf"{NUM}\s+{UNIT}\s+(?:faturalandırılır|faturalandirilir)"), _D.ALL, 1),
    (_freq(rf"{NUM}\s+defadan\s+fazla\s+(?:faturalandırılmaz|faturalandirilmaz|yapılması)"), _D.ALL, 1),
    (_freq(r"(bir)\s+kez\s+(?:puanlandırılır|puanlandirilir)"), _D.ALL, 1),
    (_freq(rf"{NUM}\s+ay\s+boyunca[^.]*fatura\s+edilemez"), _D.MONTH_INTERVAL, 1),
    (_freq(rf"bir\s+y[ıi]l\s+i[çc]erisinde\s+{NUM}\s+g[üu]nden"), _D.YEAR, 1),
    (_freq(r"sadece\s+(bir)\s+kez"), _D.ALL, 1),
]

_HOURLY = _freq(rf"{NUM}\s+saatte\s+bir")
_EXPLICIT_DAYS = re.compile(r"(\d+)\s*g[uü]n")
_HOURLY_FOLLOWUP = re.compile(r"\(?\s*(\d+)\s*\)?\s*saatlik\s+takip")


def extract_frequency(lower: str) -> Optional[FrequencyParams]:
    scope = {
        "same_specialty": bool(re.search(r"ayn[ıi]\s+bran[sş]", lower)),
        "same_tooth": bool(_SAME_TOOTH.search(lower)),
    }

    for pattern, period, factor in _FREQUENCY_PATTERNS:
        for match in pattern.finditer(lower):
            count = parse_count(match.group(1))
            if not count:
                continue
            limit = count * factor
            if period == FrequencyPeriod.MONTH_INTERVAL:
                # "6 ay (180 gün)" is a 180-day interval, not 6 x 30 days
                days = _EXPLICIT_DAYS.search(lower)
                if days and int(days.group(1)) > 0:
                    period, limit = FrequencyPeriod.DAY_INTERVAL, int(days.group(1))
            if period == FrequencyPeriod.ALL:
                # "her 4 saatlik takip için bir kez" is a daily limit
                hourly = _HOURLY_FOLLOWUP.search(lower)
                if hourly and int(hourly.group(1)) > 0:
                    period, limit = FrequencyPeriod.DAY, max(1, 24 // int(hourly.group(1)))
            return FrequencyParams(period=period, limit=limit, **scope)

    for match in _HOURLY.finditer(lower):
        hours = parse_count(match.group(1))
        if hours:
            return FrequencyParams(period=FrequencyPeriod.DAY, limit=max(1, 24 // hours), **scope)
    return None


# =============================================================================
# Diagnosis Condition
# =============================================================================

_ICD_CODE = re.compile(r"\b([A-Z]\d{2}(?:\.\d{1,2})?)\b")
_DIAGNOSIS_CONTEXT = re.compile(r"tanı|tani|icd|teşhis|teshis", re.IGNORECASE)
_CONDITION_PATTERNS = [
    re.compile(
        r"(.{10,80})\s+amaçlı\s+(?:yapılan|yapilan)?\s*(?:işlemler?\s+)?(?:için\s+)?"
        r"(?:faturalandırılır|faturalandirilir|uygulanır|uygulanir)"
    ),
    re.compile(r"(.{10,80})\s+amaçlı\s+.{0,40}(?:faturalandırılır|faturalandirilir)"),
    re.compile(
        r"(.{10,80})\s+tedavisinde\s+(?:faturalandırılır|faturalandirilir|uygulanır|uygulanir|"
        r"kullanılır|kullanilir)"
    ),
    re.compile(
        r"(.{10,80})\s+(?:hastalığında|hastaliginda|durumunda)\s+"
        r"(?:faturalandırılır|faturalandirilir|uygulanır|uygulanir)"
    ),
    re.compile(r"(.{10,80})\s+halinde\s+(?:faturalandırılır|faturalandirilir|uygulanır|uygulanir)"),
]
_PERFORMER_WORDING = re.compile(r"tarafından|tarafindan|yapılması|yapilmasi|hekimi|uzman\s+hekim")
_DIAGNOSED_PATIENTS = re.compile(
    r"tanısı\s+(?:konulmuş|konulmus|konulan|alan)|tanılı\s+(?:hastalar|olgular)|endikasyonunda"
)


def _icd_codes(original: str) -> list[str]:
    codes: list[str] = []
    for code in _ICD_CODE.findall(original):
        if code not in codes:
            codes.append(code)
    return codes


def extract_diagnosis(original: str, lower: str) -> Optional[DiagnosisParams]:
    if _DIAGNOSIS_CONTEXT.search(original) or _DIAGNOSIS_CONTEXT.search(lower):
        codes = _icd_codes(original)
        if codes:
            return DiagnosisParams(codes=codes)

    for pattern in _CONDITION_PATTERNS:
        for match in pattern.finditer(lower):
            condition = match.group(1).strip()
            if len(condition) < 10 or _PERFORMER_WORDING.search(condition):
                continue
            return DiagnosisParams(codes=_icd_codes(original), condition=condition)

    if _DIAGNOSED_PATIENTS.search(lower):
        return DiagnosisParams(codes=_icd_codes(original), condition=original.strip()[:200])
    return None


# =============================================================================
# Dental Treatment
# =============================================================================

_DENTAL_PATTERNS = [
    re.compile(r"di[şs]\s+(?:tedavisi|numarası|numarasi|hekimliği|hekimligi)"),
    re.compile(r"her\s+(?:bir\s+)?di[şs]\s+i[çc]in"),
    re.compile(r"di[şs]\s+ba[şs][ıi]na"),
    re.compile(r"ayn[ıi]\s+di[şs](?:\s|,|\.|$)"),
    re.compile(r"lokal\s+anestezi\s+[üu]creti\s+dahil"),
    re.compile(r"di[şs]\s+(?:no|numarası|numarasi)\s+(?:belirtilmek|belirtilmelidir|yazılmalıdır|yazilmalidir)"),
    re.compile(r"di[şs]e\s+[öo]zel"),
]


def extract_dental(lower: str, original: str) -> Optional[DentalParams]:
    if any(p.search(lower) for p in _DENTAL_PATTERNS):
        return DentalParams(note=original.strip())
    return None


# =============================================================================
# Age Restriction
# =============================================================================

_AGE_BETWEEN = [
    re.compile(r"(\d+)\s*[-–]\s*(\d+)\s*ya[sş]\s*(?:aras|aral[ıi][gğ])"),
    re.compile(r"(\d+)\s+ile\s+(\d+)\s*ya[sş]\s*(?:aras|aral[ıi][gğ])"),
]
_AGE_UNDER = [
    re.compile(r"(\d+)\s*ya[sş]\s*(?:alt[ıi]|altında|altinda|altındaki|altindaki)"),
    re.compile(r"(\d+)\s*ya[sş](?:[ıi]n)?(?:dan|den)\s+(?:küçük|kucuk)"),
]
_AGE_OVER = [
    re.compile(r"(\d+)\s*ya[sş]\s*(?:ve\s+)?(?:üstü|ustu|üzeri|uzeri|üzerinde|uzerinde)"),
    re.compile(r"(\d+)\s*ya[sş](?:[ıi]n)?(?:dan|den)\s+(?:büyük|buyuk)"),
]


def _age_suppressed(lower: str, match: re.Match) -> bool:
    context = _window(lower, match, 30, 80)
    return bool(AGE_INCREMENT_PATTERN.search(context) or EXPANSIVE_PATTERN.search(context))


def extract_age(lower: str) -> Optional[AgeParams]:
    for pattern in _AGE_BETWEEN:
        for match in pattern.finditer(lower):
            if _age_suppressed(lower, match):
                continue
            low, high = sorted((int(match.group(1)), int(match.group(2))))
            return AgeParams(mode=AgeMode.BETWEEN, min_age=low, max_age=high)
    for pattern in _AGE_UNDER:
        for match in pattern.finditer(lower):
            if not _age_suppressed(lower, match):
                return AgeParams(mode=AgeMode.UNDER, max_age=int(match.group(1)))
    for pattern in _AGE_OVER:
        for match in pattern.finditer(lower):
            if not _age_suppressed(lower, match):
                return AgeParams(mode=AgeMode.OVER, min_age=int(match.group(1)))
    return None


# =============================================================================
# Extractor
# =============================================================================


class RuleExtractor:
    """
    Regex rule extractor.

    Stateless apart from the confidence it stamps on every rule; safe to
    share across builds.
    """

    def __init__(self, confidence: float = 0.9):
        self.confidence = confidence

    def extract(self, text: str, source: Optional[RuleSource] = None) -> list[ParsedRule]:
        """
        Extract all rules from one description.

        Args:
            text: Regulatory description (any case)
            source: Regulatory document the description came from

        Returns:
            Typed rules in kind order; empty when no structured wording matched
        """
        if not text or not text.strip():
            return []

        lower = turkish_lower(text)
        found: list[RuleParams] = [
            params
            for params in (
                extract_tier(lower),
                extract_specialty(lower),
                extract_mutual_exclusion(lower),
                extract_frequency(lower),
                extract_diagnosis(text, lower),
                extract_dental(lower, text),
                extract_age(lower),
            )
            if params is not None
        ]
        rules = [self._rule(params, text, source) for params in found]
        logger.debug("Extracted %d rule(s): %s", len(rules), [r.kind.value for r in rules])
        return rules

    def _rule(self, params: RuleParams, text: str, source: Optional[RuleSource]) -> ParsedRule:
        return ParsedRule(
            params=params,
            source_text=text.strip(),
            origin_source=source,
            confidence=self.confidence,
            extraction_method=ExtractionMethod.REGEX,
        )
