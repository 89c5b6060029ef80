"""
Rule Master Builder.

Builds one RuleMasterEntry per normalized procedure code from every
regulatory source, then enriches the table:

- section-header inheritance (header-only rows start a section whose
  rules fill kinds a row's own text lacks)
- fixed price/point precedence: EK-2C > EK-2B > GİL > EK-2Ç
- legislation article references, attached as general-note rules
- code cross references ("700100 kodlu işlem")
- oracle merge: oracle rules first, regex rules only for missing kinds,
  then recovery of structured rules the oracle left in general notes
"""

import logging
import re
from typing import Callable, Iterable, Mapping, Optional, Sequence, cast

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.core.enums import FrequencyPeriod, ProgressPhase, RuleKind, RuleSource
from sut_compliance.schemas.compliance import ProgressEvent
from sut_compliance.schemas.rules import (
    BuildStats,
    CrossReference,
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
)
from sut_compliance.services.rule_extractor import (
    EXPANSIVE_PATTERN,
    RuleExtractor,
    normalize_exclusion_code,
    split_specialties,
)
from sut_compliance.services.turkish_text import normalize_code, turkish_lower

logger = logging.getLogger(__name__)

# Sources in price/point precedence order, highest first
SOURCE_PRECEDENCE: tuple[RuleSource, ...] = (
    RuleSource.EK_2C,
    RuleSource.EK_2B,
    RuleSource.GIL,
    RuleSource.EK_2CD,
)

# =============================================================================
# Legislation Articles
# =============================================================================

_ARTICLE_HEADING = re.compile(r"^(\d+\.\d+(?:\.\d+)*(?:\.[A-ZÇĞİÖŞÜ](?:-\d+)?)?)\s*[-–—.]\s*(.+)")
_ARTICLE_NO = r"(\d+\.\d+(?:\.\d+)*(?:\.[a-zçğıöşü](?:-\d+)?)?)"
_ARTICLE_REFERENCES = (
    re.compile(
        rf"sut['’`]?\s*(?:un|ün)?\s*{_ARTICLE_NO}\s*"
        r"(?:madde|nolu|numaralı|sayılı|.?nci|.?ncı|.?üncü|.?uncu)?"
    ),
    re.compile(rf"sut\s*[-–]\s*{_ARTICLE_NO}"),
    re.compile(rf"(?:madde|md\.?)\s*{_ARTICLE_NO}"),
    re.compile(rf"\(sut\s*{_ARTICLE_NO}\)"),
)
_CODE_REFERENCE = re.compile(r"\b([rlp]?\d{5,7}|\d{3}\.\d{3})\s*(?:kodlu|nolu|numaralı|numarali)")


def parse_sut_articles(text: str) -> list[SutArticle]:
    """
    Split prose legislation into numbered articles.

    A line such as ``2.4.4.D-1 - Yoğun bakım hizmetleri`` starts an
    article; following lines are its content. Articles without content are
    dropped.
    """
    articles: list[SutArticle] = []
    number: Optional[str] = None
    title = ""
    lines: list[str] = []

    def flush() -> None:
        if number is None:
            return
        content = "\n".join(lines).strip()
        if content:
            articles.append(SutArticle(number=number, title=title, content=content))

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        heading = _ARTICLE_HEADING.match(line)
        if heading:
            flush()
            number, title = heading.group(1), heading.group(2).strip()
            lines = [title]
        elif number is not None:
            lines.append(line)
    flush()

    logger.info("Parsed %d legislation articles", len(articles))
    return articles


def build_article_index(articles: Iterable[SutArticle]) -> dict[str, SutArticle]:
    """Article number -> article, plus parent numbers that are not taken."""
    index: dict[str, SutArticle] = {}
    for article in articles:
        index[article.number.upper()] = article
    for article in articles:
        parts = article.number.upper().split(".")
        for end in range(2, len(parts)):
            index.setdefault(".".join(parts[:end]), article)
    return index


def resolve_article(reference: str, index: Mapping[str, SutArticle]) -> Optional[SutArticle]:
    """
    Look up an article reference, falling back to its parents.

    ``2.4.4.D-1`` tries ``2.4.4.D-1``, ``2.4.4.D``, then ``2.4.4``.
    """
    key = reference.upper()
    if key in index:
        return index[key]
    if "-" in key:
        key = key.split("-", 1)[0]
        if key in index:
            return index[key]
    parts = key.split(".")
    for end in range(len(parts) - 1, 1, -1):
        parent = ".".join(parts[:end])
        if parent in index:
            return index[parent]
    return None


def find_article_references(text: str) -> list[str]:
    lower = turkish_lower(text)
    found: list[str] = []
    for pattern in _ARTICLE_REFERENCES:
        for match in pattern.finditer(lower):
            reference = match.group(1).upper()
            if reference not in found:
                found.append(reference)
    return found


# =============================================================================
# General Note Recovery
# =============================================================================

_NOTE_INTERVAL = re.compile(r"en\s+az\s+(\d+)\s*(g[uü]n|ay)\s*(?:ara(?:yla|l[ıi]kla)|ara\s+ile|sonra)")
_NOTE_PERFORMER = re.compile(
    r"([a-zçğıöşü ,]{4,80}?)\s+(?:uzman[ıi]|uzmanlar[ıi]|hekimi|hekimleri)\s+taraf[ıi]ndan"
)
_NOTE_CODE_LIST = re.compile(
    r"((?:[p]?\d{5,7}|\d{3}\.\d{3})(?:\s*(?:,|ve|veya|ile)\s*(?:[p]?\d{5,7}|\d{3}\.\d{3}))*)"
    r"\s*(?:kodlu|nolu|numaralı)?\s*i[sş]lem(?:ler)?(?:le|lerle)?\s+birlikte"
)
_LIST_CODE = re.compile(r"[p]?\d{5,7}|\d{3}\.\d{3}")


def recover_from_general_note(text: str) -> list[RuleParams]:
    """
    Structured rule parameters recoverable from a general-note text.

    Returns parameter payloads (frequency interval, specialty, mutual
    exclusion); the caller decides which kinds are still missing.
    """
    lower = turkish_lower(text)
    recovered: list[RuleParams] = []

    interval = _NOTE_INTERVAL.search(lower)
    if interval and int(interval.group(1)) > 0:
        period = FrequencyPeriod.DAY_INTERVAL if interval.group(2).startswith("g") else FrequencyPeriod.MONTH_INTERVAL
        recovered.append(FrequencyParams(period=period, limit=int(interval.group(1))))

    performer = _NOTE_PERFORMER.search(lower)
    if performer and not EXPANSIVE_PATTERN.search(lower):
        names = split_specialties(performer.group(1))
        if names:
            recovered.append(SpecialtyParams(specialties=names))

    codes = _NOTE_CODE_LIST.search(lower)
    if codes:
        listed = [normalize_exclusion_code(c) for c in _LIST_CODE.findall(codes.group(1))]
        if listed:
            recovered.append(MutualExclusionParams(codes=listed))
    return recovered


def recover_note_rules(entry: RuleMasterEntry) -> int:
    """
    Add structured rules found in an entry's oracle notes, for missing kinds only.

    Legislation article notes are left alone. Returns the number of rules added.
    """
    recovered = 0
    for note in entry.rules_of(RuleKind.GENERAL_NOTE):
        if cast(GeneralNoteParams, note.params).article_no:
            continue
        for params in recover_from_general_note(note.source_text):
            kind = RuleKind(params.kind)
            if entry.has_rule(kind):
                continue
            entry.rules.append(note.model_copy(update={"params": params}))
            recovered += 1
            logger.debug("Recovered %s rule for %s from general note", kind.value, entry.code)
    return recovered


# =============================================================================
# Oracle Merge
# =============================================================================


def merge_oracle_rules(regex_rules: Sequence[ParsedRule], oracle_rules: Sequence[ParsedRule]) -> list[ParsedRule]:
    """
    Oracle rules first; a regex rule is kept only for kinds the oracle lacks.

    With no oracle rules the regex rules are returned unchanged.
    """
    if not oracle_rules:
        return list(regex_rules)
    oracle_kinds = {rule.kind for rule in oracle_rules}
    return list(oracle_rules) + [rule for rule in regex_rules if rule.kind not in oracle_kinds]


# =============================================================================
# Builder
# =============================================================================


def _as_header_rules(rules: Iterable[ParsedRule]) -> list[ParsedRule]:
    return [rule.model_copy(update={"from_section_header": True}) for rule in rules]


def _with_section(row_rules: list[ParsedRule], section_rules: list[ParsedRule]) -> list[ParsedRule]:
    """Row rules win; section rules only fill the kinds the row lacks."""
    if not section_rules:
        return row_rules
    row_kinds = {rule.kind for rule in row_rules}
    return row_rules + [rule for rule in section_rules if rule.kind not in row_kinds]


class RuleMasterBuilder:
    """
    Builds a RuleTable from regulatory source documents.

    The builder itself is stateless between builds; each ``build`` call
    returns a fresh table.
    """

    def __init__(
        self,
        extractor: Optional[RuleExtractor] = None,
        settings: Optional[ComplianceSettings] = None,
    ):
        self.settings = settings or get_compliance_settings()
        self.extractor = extractor or RuleExtractor(confidence=self.settings.REGEX_RULE_CONFIDENCE)

    def build(
        self,
        documents: Sequence[SourceDocument],
        articles: Sequence[SutArticle] = (),
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> RuleTable:
        """
        Build the rule table.

        Args:
            documents: One document per regulatory source, any order
            articles: Parsed legislation articles for reference resolution
            on_progress: Optional progress callback (building-rules phase)

        Returns:
            RuleTable keyed by normalized code
        """
        ordered = sorted(
            (d for d in documents if d.source in SOURCE_PRECEDENCE),
            key=lambda d: SOURCE_PRECEDENCE.index(d.source),
        )
        table = RuleTable()
        stats = table.stats
        total = len(ordered)

        for step, document in enumerate(ordered):
            if on_progress is not None:
                on_progress(
                    ProgressEvent(
                        phase=ProgressPhase.BUILDING_RULES,
                        current=step,
                        total=total,
                        message=f"{document.source.value} kuralları çıkarılıyor...",
                    )
                )
            stats.records_by_source[document.source] = self._add_document(table, document)

        if articles:
            stats.article_rules = self._attach_articles(table, build_article_index(articles))
        self._collect_code_references(table)

        self._finish_stats(table)
        if on_progress is not None:
            on_progress(
                ProgressEvent(
                    phase=ProgressPhase.BUILDING_RULES,
                    current=total,
                    total=total,
                    message=f"{stats.entry_count} kod, {stats.rule_count} kural çıkarıldı",
                )
            )
        return table

    def _add_document(self, table: RuleTable, document: SourceDocument) -> int:
        source = document.source
        section_header = ""
        section_rules: list[ParsedRule] = []
        added = 0

        for record in document.records:
            if record.is_header:
                section_header = record.header_text
                section_rules = _as_header_rules(self.extractor.extract(section_header, source))
                continue
            code = normalize_code(record.code)
            if not code:
                continue

            rules = _with_section(self.extractor.extract(record.description, source), section_rules)
            entry = table.entries.get(code)
            if entry is None:
                table.entries[code] = self._new_entry(code, record, source, section_header, rules)
            else:
                self._merge_into(entry, record, source, section_header, rules)
            if record.description:
                table.stats.description_count += 1
            added += 1

        logger.info("%s: %d coded records", source.value, added)
        return added

    def _price_of(self, record: SourceRecord) -> float:
        if record.price:
            return record.price
        return round((record.points or 0.0) * self.settings.POINT_PRICE_COEFFICIENT, 2)

    def _new_entry(
        self,
        code: str,
        record: SourceRecord,
        source: RuleSource,
        section_header: str,
        rules: list[ParsedRule],
    ) -> RuleMasterEntry:
        entry = RuleMasterEntry(
            code=code,
            name=record.name,
            sources=[source],
            primary_source=source,
            points=record.points or 0.0,
            price=self._price_of(record),
            descriptions={source: record.description} if record.description else {},
            section_header=section_header or None,
            rules=rules,
        )
        self._apply_source_fields(entry, record, source)
        return entry

    def _merge_into(
        self,
        entry: RuleMasterEntry,
        record: SourceRecord,
        source: RuleSource,
        section_header: str,
        rules: list[ParsedRule],
    ) -> None:
        if source not in entry.sources:
            entry.sources.append(source)
        if not entry.name:
            entry.name = record.name
        # Sources arrive in precedence order: only fill what is still missing
        if not entry.points and record.points:
            entry.points = record.points
            entry.price = self._price_of(record)
        if record.description and source not in entry.descriptions:
            entry.descriptions[source] = record.description
        if not entry.section_header and section_header:
            entry.section_header = section_header

        # Every source keeps its own rules, even when two sources share a clause
        entry.rules.extend(rules)
        self._apply_source_fields(entry, record, source)

    def _apply_source_fields(self, entry: RuleMasterEntry, record: SourceRecord, source: RuleSource) -> None:
        if source == RuleSource.GIL:
            entry.gil_points = record.points or 0.0
            entry.gil_price = round((record.points or 0.0) * self.settings.POINT_PRICE_COEFFICIENT, 2)
            if record.group:
                entry.surgery_group = record.group
        elif source == RuleSource.EK_2C and record.group:
            entry.procedure_group = record.group

    def _attach_articles(self, table: RuleTable, index: Mapping[str, SutArticle]) -> int:
        attached = 0
        for entry in table.entries.values():
            seen: set[str] = set()
            for text in entry.descriptions.values():
                for reference in find_article_references(text):
                    article = resolve_article(reference, index)
                    table.cross_references.append(
                        CrossReference(
                            source_code=entry.code,
                            target=reference,
                            target_type="article",
                            resolved=article is not None,
                        )
                    )
                    if article is None or article.number in seen:
                        continue
                    seen.add(article.number)
                    entry.rules.append(
                        ParsedRule(
                            params=GeneralNoteParams(
                                text=article.content,
                                article_no=article.number,
                                article_title=article.title,
                            ),
                            source_text=f"SUT {article.number} - {article.title}\n{article.content}",
                            origin_source=RuleSource.SUT,
                            confidence=self.extractor.confidence,
                        )
                    )
                    if RuleSource.SUT not in entry.sources:
                        entry.sources.append(RuleSource.SUT)
                    attached += 1
        logger.info("Attached %d legislation article(s) from %d entries", attached, len(table))
        return attached

    def _collect_code_references(self, table: RuleTable) -> None:
        for entry in table.entries.values():
            targets: list[str] = []
            for text in entry.descriptions.values():
                for match in _CODE_REFERENCE.finditer(turkish_lower(text)):
                    target = normalize_code(normalize_exclusion_code(match.group(1)))
                    if target != entry.code and target not in targets:
                        targets.append(target)
            for target in targets:
                table.cross_references.append(
                    CrossReference(
                        source_code=entry.code,
                        target=target,
                        target_type="code",
                        resolved=target in table.entries,
                    )
                )

    def _finish_stats(self, table: RuleTable) -> None:
        table.refresh_counts()
        stats: BuildStats = table.stats
        if stats.degraded:
            logger.warning(
                "No rules extracted from %d descriptions; table is usable for code and price lookups only",
                stats.description_count,
            )
        logger.info(
            "Rule master built: %d entries, %d with rules, %d rules, %d article rules",
            stats.entry_count,
            stats.entries_with_rules,
            stats.rule_count,
            stats.article_rules,
        )
