"""
Specialty Matcher.

Decides whether a physician's specialty satisfies a rule's specialty name.
Deterministic string rules only, so every verdict can be explained:

1. exact equality after normalization
2. membership in the same curated alias group
3. boundary-aware substring containment (contained span >= 40% of the
   containing string)
4. token overlap: >= 60% of the rule's tokens found in the physician's

The heuristics are neither symmetric nor transitive across alias groups;
tests pin the current behaviour.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from sut_compliance.services.turkish_text import turkish_lower

DEFAULT_ALIAS_GROUPS: tuple[tuple[str, ...], ...] = (
    ("kadın hastalıkları ve doğum", "kadın doğum", "kadın hastalıkları doğum", "jinekoloji", "jinekoloji ve obstetrik", "obstetrik"),
    ("çocuk sağlığı ve hastalıkları", "çocuk hastalıkları", "pediatri", "çocuk"),
    ("genel cerrahi", "cerrahi"),
    ("kulak burun boğaz hastalıkları", "kulak burun boğaz", "kbb"),
    ("göz hastalıkları", "göz"),
    ("ortopedi ve travmatoloji", "ortopedi", "travmatoloji"),
    ("iç hastalıkları", "dahiliye"),
    ("anesteziyoloji ve reanimasyon", "anesteziyoloji", "anestezi", "reanimasyon"),
    ("göğüs hastalıkları", "göğüs"),
    ("göğüs cerrahisi",),
    ("deri ve zührevi hastalıkları", "deri hastalıkları", "dermatoloji", "cildiye"),
    ("nöroloji", "sinir hastalıkları"),
    ("beyin ve sinir cerrahisi", "beyin cerrahisi", "nöroşirürji"),
    ("kalp ve damar cerrahisi", "kalp damar cerrahisi", "kardiyovasküler cerrahi"),
    ("kardiyoloji", "kalp hastalıkları"),
    ("üroloji", "çocuk ürolojisi"),
    ("fiziksel tıp ve rehabilitasyon", "fizik tedavi ve rehabilitasyon", "fizik tedavi", "ftr", "rehabilitasyon"),
    ("ruh sağlığı ve hastalıkları", "psikiyatri", "ruh sağlığı"),
    ("çocuk ve ergen ruh sağlığı ve hastalıkları", "çocuk psikiyatrisi", "çocuk ruh sağlığı"),
    ("plastik, rekonstrüktif ve estetik cerrahi", "plastik cerrahi", "plastik rekonstrüktif cerrahi", "estetik cerrahi"),
    ("enfeksiyon hastalıkları ve klinik mikrobiyoloji", "enfeksiyon hastalıkları", "enfeksiyon"),
    ("acil tıp", "acil"),
    ("aile hekimliği", "aile hekimi", "pratisyen"),
    ("radyoloji", "tıbbi görüntüleme"),
    ("nükleer tıp",),
    ("patoloji", "tıbbi patoloji"),
    ("endokrinoloji ve metabolizma hastalıkları", "endokrinoloji", "metabolizma"),
    ("gastroenteroloji", "gastroenteroloji cerrahisi"),
    ("nefroloji", "böbrek hastalıkları"),
    ("hematoloji", "kan hastalıkları"),
    ("tıbbi onkoloji", "onkoloji"),
    ("romatoloji",),
    ("perinatoloji", "yüksek riskli gebelik"),
    ("jinekolojik onkoloji cerrahisi", "jinekolojik onkoloji"),
    ("çocuk cerrahisi",),
    ("spor hekimliği",),
    ("ağız, diş ve çene cerrahisi", "ağız diş ve çene cerrahisi", "diş hekimliği", "diş hekimi", "diş", "ağız diş", "diş hastalıkları ve tedavisi", "diş hastalıkları", "diş protez", "ağız diş ve çene hastalıkları"),
    ("immünoloji ve alerji hastalıkları", "immunoloji ve alerji hastalıkları", "alerji ve immünoloji", "allerji ve immünoloji", "erişkin allerji", "erişkin alerji", "çocuk alerji", "çocuk allerji", "çocuk immünolojisi ve alerji hastalıkları", "çocuk immunolojisi", "çocuk alerjisi", "çocuk alerjisi ve immünolojisi hastalıkları", "çocuk alerjisi ve immünolojisi", "alerji immünoloji", "allerji immünoloji", "erişkin/çocuk allerji", "immünoloji uzman"),
    ("çocuk endokrinolojisi", "çocuk endokrinoloji"),
    ("çocuk nefrolojisi", "çocuk nefroloji"),
    ("çocuk hematolojisi", "çocuk hematoloji"),
    ("çocuk nörolojisi", "çocuk nöroloji"),
    ("çocuk kardiyolojisi", "çocuk kardiyoloji"),
    ("çocuk gastroenterolojisi", "çocuk gastroenteroloji"),
    ("çocuk romatolojisi", "çocuk romatoloji"),
    ("çocuk yoğun bakım", "çocuk yoğun bakımı"),
    ("yenidoğan", "neonatoloji", "yenidoğan yoğun bakım"),
    ("çocuk acil",),
    ("adli tıp",),
    ("algoloji", "ağrı tedavisi"),
    ("çocuk göğüs hastalıkları",),
    ("sualtı hekimliği", "hiperbarik tıp"),
)

TOKEN_STOP_WORDS: frozenset[str] = frozenset({"ve", "ile", "veya", "için", "olan", "bir"})

_BOUNDARY_CHARS = frozenset(" ,;()")
_TOKEN_SPLIT = re.compile(r"[\s,;()]+")
_NUMERIC_PREFIX = re.compile(r"^\d{1,5}[-\s]*")
_UNIT_SUFFIX = re.compile(
    r"\s+(?:uzman[ıi]|uzman|ana\s+bilim\s+dal[ıi]|anabilim\s+dal[ıi]|bölümü|bolumu|servisi|klini[gğ]i)\s*$"
)
_DOTTED_3 = re.compile(r"\b([a-zçğıöşü])\.([a-zçğıöşü])\.([a-zçğıöşü])\.")
_DOTTED_2 = re.compile(r"\b([a-zçğıöşü])\.([a-zçğıöşü])\.")
_GLUED_CHILD = re.compile(
    r"^(çocuk)(acil|cerrahi|üroloji|endokrinoloji|nöroloji|nefroloji|hematoloji|onkoloji|"
    r"romatoloji|immünoloji|alerji|gastroenteroloji|kardiyoloji)"
)

MIN_CONTAINED_RATIO = 0.4
MIN_TOKEN_RATIO = 0.6


@dataclass(frozen=True)
class SpecialtyAliasTable:
    """Immutable alias lookup: every alias maps to its whole group."""

    groups: tuple[frozenset[str], ...]
    index: Mapping[str, frozenset[str]] = field(repr=False)

    @classmethod
    def from_groups(cls, groups: Iterable[Iterable[str]]) -> "SpecialtyAliasTable":
        frozen_groups = []
        index: dict[str, frozenset[str]] = {}
        for group in groups:
            members = frozenset(turkish_lower(name.strip()) for name in group)
            frozen_groups.append(members)
            for alias in members:
                index[alias] = members
        return cls(groups=tuple(frozen_groups), index=MappingProxyType(index))

    def group_of(self, name: str) -> Optional[frozenset[str]]:
        return self.index.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.index


def build_default_alias_table() -> SpecialtyAliasTable:
    """Alias table for standard vs. colloquial Turkish specialty names."""
    return SpecialtyAliasTable.from_groups(DEFAULT_ALIAS_GROUPS)


def normalize_specialty(raw: str) -> str:
    """
    Strip department decorations from a specialty cell.

    "3300-Radyoloji" -> "radyoloji", "Psikiyatri Uzmanı" -> "psikiyatri",
    "K.B.B." -> "kbb", "Çocukacil" -> "çocuk acil".
    """
    text = turkish_lower(raw.strip())
    text = _NUMERIC_PREFIX.sub("", text)
    text = _UNIT_SUFFIX.sub("", text)
    text = _DOTTED_3.sub(r"\1\2\3", text)
    text = _DOTTED_2.sub(r"\1\2", text)
    text = _GLUED_CHILD.sub(r"\1 \2", text)
    return text.strip()


def _safe_includes(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    idx = haystack.find(needle)
    if idx < 0:
        return False
    end = idx + len(needle)
    before_ok = idx == 0 or haystack[idx - 1] in _BOUNDARY_CHARS
    after_ok = end >= len(haystack) or haystack[end] in _BOUNDARY_CHARS
    # short or single-word needles need both boundaries
    if (len(needle) <= 6 or " " not in needle) and not (before_ok and after_ok):
        return False
    # "acil tıp" must not match inside "çocuk acil tıp"
    if idx > 0 and not before_ok:
        return False
    return len(needle) >= len(haystack) * MIN_CONTAINED_RATIO


def _tokens(text: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT.split(text) if len(t) > 1 and t not in TOKEN_STOP_WORDS]


class SpecialtyMatcher:
    """Alias/fuzzy specialty matcher over an explicit alias table."""

    def __init__(self, alias_table: SpecialtyAliasTable):
        self.alias_table = alias_table

    def matches(self, physician_specialty: str, rule_specialty: str) -> bool:
        """Does the physician's specialty satisfy the rule's specialty?"""
        h = turkish_lower(physician_specialty.strip())
        k = turkish_lower(rule_specialty.strip())
        if not h or not k:
            return False
        if h == k:
            return True

        h_norm = normalize_specialty(physician_specialty)
        k_norm = normalize_specialty(rule_specialty)
        if h_norm == k_norm:
            return True

        h_group = self.alias_table.group_of(h) or self.alias_table.group_of(h_norm)
        if h_group and (k in h_group or k_norm in h_group):
            return True
        if h_group and self._group_contains(h_group, k, k_norm):
            return True

        k_group = self.alias_table.group_of(k) or self.alias_table.group_of(k_norm)
        if k_group and self._group_contains(k_group, h, h_norm):
            return True

        if (
            _safe_includes(h, k)
            or _safe_includes(k, h)
            or _safe_includes(h_norm, k_norm)
            or _safe_includes(k_norm, h_norm)
        ):
            return True

        return self._token_overlap(h, k)

    def matches_any(self, physician_specialty: str, rule_specialties: Iterable[str]) -> bool:
        return any(self.matches(physician_specialty, s) for s in rule_specialties)

    @staticmethod
    def _group_contains(group: frozenset[str], other: str, other_norm: str) -> bool:
        for alias in sorted(group):
            if " " not in alias and " " in other:
                if _safe_includes(alias, other) or _safe_includes(alias, other_norm):
                    return True
            elif (
                _safe_includes(alias, other)
                or _safe_includes(other, alias)
                or _safe_includes(alias, other_norm)
                or _safe_includes(other_norm, alias)
            ):
                return True
        return False

    @staticmethod
    def _token_overlap(h: str, k: str) -> bool:
        h_tokens = _tokens(h)
        k_tokens = _tokens(k)
        if not h_tokens or not k_tokens:
            return False
        found = sum(1 for kt in k_tokens if any(kt in ht or ht in kt for ht in h_tokens))
        return found / len(k_tokens) >= MIN_TOKEN_RATIO
