"""
Oracle Extraction Pipeline.

Sends the descriptions of an already built rule table to a rule oracle
in strictly sequential batches and merges the answers into the entries:
oracle rules first, regex rules only for kinds the oracle did not
return. Legislation article notes are kept as they are.

A batch that fails is logged and skipped (its entries keep their regex
rules). A rejected credential aborts the whole run.

The audit mode asks the oracle about every description without merging
and reports where the two rule sets agree, differ or miss each other.
"""

import asyncio
import logging
import re
from collections import defaultdict
from typing import Callable, Optional, Sequence

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.core.enums import AuditStatus, ProgressPhase, RuleKind, RuleSource
from sut_compliance.schemas.compliance import ProgressEvent
from sut_compliance.schemas.oracle import (
    AuditEntry,
    MissedPattern,
    OracleItemResult,
    OracleRequestItem,
    RuleAuditReport,
    RuleDifference,
)
from sut_compliance.schemas.rules import (
    CrossReference,
    GeneralNoteParams,
    ParsedRule,
    RuleMasterEntry,
    RuleTable,
    SutArticle,
)
from sut_compliance.services.rule_builder import (
    build_article_index,
    merge_oracle_rules,
    recover_note_rules,
    resolve_article,
)
from sut_compliance.services.rule_extractor import needs_semantic_review, normalize_exclusion_code
from sut_compliance.services.rule_oracle import RuleOracle
from sut_compliance.services.turkish_text import normalize_code
from sut_compliance.utils.errors import OracleBatchError

logger = logging.getLogger(__name__)

_CODE_LIKE = re.compile(r"^[rlpRLP]?\d{5,7}$|^\d{3}\.\d{3}$")
_SUT_PREFIX = re.compile(r"^sut\W*", re.IGNORECASE)

MAX_PATTERN_EXAMPLES = 5


def _is_article_note(rule: ParsedRule) -> bool:
    return isinstance(rule.params, GeneralNoteParams) and bool(rule.params.article_no)


def collect_oracle_items(table: RuleTable, only_semantic: bool = True) -> list[tuple[str, RuleSource, str]]:
    """
    Pick the (code, source, description) triples worth asking about.

    Legislation text is never sent; it is attached verbatim as notes.
    """
    items: list[tuple[str, RuleSource, str]] = []
    for entry in table.entries.values():
        for source, description in entry.descriptions.items():
            if source == RuleSource.SUT or not description.strip():
                continue
            if only_semantic and not needs_semantic_review(description):
                continue
            items.append((entry.code, source, description))
    return items


def compare_rule_sets(regex_rules: Sequence[ParsedRule], oracle_rules: Sequence[ParsedRule]) -> list[RuleDifference]:
    """
    Compare two rule sets kind by kind.

    The first rule of each kind stands for that kind; two rules match when
    their parameters are equal.
    """
    regex_by_kind: dict[RuleKind, ParsedRule] = {}
    oracle_by_kind: dict[RuleKind, ParsedRule] = {}
    for rule in regex_rules:
        regex_by_kind.setdefault(rule.kind, rule)
    for rule in oracle_rules:
        oracle_by_kind.setdefault(rule.kind, rule)

    differences: list[RuleDifference] = []
    for kind in RuleKind:
        regex_rule = regex_by_kind.get(kind)
        oracle_rule = oracle_by_kind.get(kind)
        if regex_rule is None and oracle_rule is None:
            continue
        if regex_rule is None:
            status = AuditStatus.ORACLE_ONLY
        elif oracle_rule is None:
            status = AuditStatus.REGEX_ONLY
        elif regex_rule.params.model_dump(mode="json") == oracle_rule.params.model_dump(mode="json"):
            status = AuditStatus.MATCH
        else:
            status = AuditStatus.CONFLICT
        differences.append(
            RuleDifference(kind=kind, status=status, regex_rule=regex_rule, oracle_rule=oracle_rule)
        )
    return differences


def _entry_status(
    regex_rules: Sequence[ParsedRule],
    oracle_rules: Sequence[ParsedRule],
    differences: Sequence[RuleDifference],
) -> AuditStatus:
    if not regex_rules and not oracle_rules:
        return AuditStatus.BOTH_EMPTY
    statuses = {difference.status for difference in differences}
    for status in (AuditStatus.CONFLICT, AuditStatus.ORACLE_ONLY, AuditStatus.REGEX_ONLY):
        if status in statuses:
            return status
    return AuditStatus.MATCH


def _count(report: RuleAuditReport, status: AuditStatus) -> None:
    field = {
        AuditStatus.MATCH: "match_count",
        AuditStatus.REGEX_ONLY: "regex_only_count",
        AuditStatus.ORACLE_ONLY: "oracle_only_count",
        AuditStatus.CONFLICT: "conflict_count",
        AuditStatus.BOTH_EMPTY: "both_empty_count",
    }[status]
    setattr(report, field, getattr(report, field) + 1)


def _mode_of(rule: ParsedRule) -> str:
    mode = getattr(rule.params, "mode", None)
    return mode.value if mode is not None else "default"


class OracleExtractionPipeline:
    """
    Enriches a rule table with oracle-extracted rules.

    Example:
        >>> pipeline = OracleExtractionPipeline(LLMRuleOracle())
        >>> await pipeline.enrich(table)
    """

    def __init__(self, oracle: RuleOracle, settings: Optional[ComplianceSettings] = None):
        self.oracle = oracle
        self.settings = settings or get_compliance_settings()

    async def enrich(
        self,
        table: RuleTable,
        articles: Sequence[SutArticle] = (),
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> int:
        """
        Ask the oracle about the table's descriptions and merge the rules in place.

        Args:
            table: Table produced by RuleMasterBuilder
            articles: Legislation articles used to resolve oracle cross references
            on_progress: Optional callback (oracle-extraction phase)

        Returns:
            Number of entries that received oracle rules

        Raises:
            OracleAuthenticationError: The oracle rejected the credential
        """
        pending = collect_oracle_items(table, self.settings.ORACLE_ONLY_SEMANTIC_TEXTS)
        answers = await self._ask(pending, on_progress)

        oracle_rules: dict[str, list[ParsedRule]] = defaultdict(list)
        cross_refs: dict[str, list[str]] = defaultdict(list)
        for (code, _, _), result in zip(pending, answers):
            oracle_rules[code].extend(result.rules)
            for target in result.cross_refs:
                if target not in cross_refs[code]:
                    cross_refs[code].append(target)

        enriched = 0
        for code, rules in oracle_rules.items():
            if rules:
                entry = table.entries[code]
                self._merge_entry(entry, rules)
                table.stats.recovered_rules += recover_note_rules(entry)
                enriched += 1
        self._record_cross_references(table, cross_refs, articles)

        table.stats.oracle_entries = enriched
        table.refresh_counts()
        logger.info("Oracle extraction merged rules into %d entries", enriched)
        return enriched

    async def audit(
        self,
        table: RuleTable,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> RuleAuditReport:
        """
        Compare the table's regex rules with what the oracle extracts.

        Every description and section header is sent, semantic or not, and
        the table is left unchanged. General notes are ignored on both sides.

        Args:
            table: Table produced by RuleMasterBuilder, before any oracle merge
            on_progress: Optional callback (oracle-extraction phase)

        Returns:
            Counts per outcome, the differing entries and the patterns the
            regex extractor missed

        Raises:
            OracleAuthenticationError: The oracle rejected the credential
        """
        texts_by_code: dict[str, list[str]] = {}
        first_use: dict[str, tuple[str, RuleSource]] = {}
        for entry in table.entries.values():
            texts = [d for s, d in entry.descriptions.items() if s != RuleSource.SUT and d.strip()]
            if not texts:
                continue
            if entry.section_header and entry.section_header not in texts:
                texts.append(entry.section_header)
            texts_by_code[entry.code] = texts
            for text in texts:
                first_use.setdefault(text, (entry.code, entry.primary_source))

        pending = [(code, source, text) for text, (code, source) in first_use.items()]
        logger.info("Rule audit: %d entries, %d distinct texts", len(texts_by_code), len(pending))
        answers = await self._ask(pending, on_progress)
        oracle_by_text = {text: result.rules for (_, _, text), result in zip(pending, answers)}

        report = RuleAuditReport(
            total_entries=len(table.entries),
            entries_with_description=len(texts_by_code),
            texts_analyzed=len(pending),
        )
        missed: dict[str, MissedPattern] = {}
        for code, texts in texts_by_code.items():
            entry = table.entries[code]
            regex_rules = entry.structured_rules
            oracle_rules = [
                rule
                for text in texts
                for rule in oracle_by_text.get(text, [])
                if rule.kind != RuleKind.GENERAL_NOTE
            ]
            differences = compare_rule_sets(regex_rules, oracle_rules)
            status = _entry_status(regex_rules, oracle_rules, differences)
            _count(report, status)
            if status == AuditStatus.BOTH_EMPTY:
                continue

            for difference in differences:
                if difference.status != AuditStatus.ORACLE_ONLY or difference.oracle_rule is None:
                    continue
                pattern = f"{difference.kind.value}:{_mode_of(difference.oracle_rule)}"
                found = missed.setdefault(pattern, MissedPattern(pattern=pattern))
                found.count += 1
                if len(found.examples) < MAX_PATTERN_EXAMPLES:
                    found.examples.append(f"[{code}] {entry.description[:120]}")

            report.entries.append(
                AuditEntry(
                    code=code,
                    name=entry.name,
                    source=entry.primary_source,
                    description=entry.description,
                    section_header=entry.section_header,
                    regex_rules=regex_rules,
                    oracle_rules=oracle_rules,
                    differences=differences,
                    status=status,
                )
            )

        report.missed_patterns = sorted(missed.values(), key=lambda p: p.count, reverse=True)
        logger.info(
            "Rule audit: %d match, %d oracle only, %d conflict, %d regex only",
            report.match_count,
            report.oracle_only_count,
            report.conflict_count,
            report.regex_only_count,
        )
        return report

    async def _ask(
        self,
        pending: Sequence[tuple[str, RuleSource, str]],
        on_progress: Optional[Callable[[ProgressEvent], None]],
    ) -> list[OracleItemResult]:
        """One result per pending item, in order; items of a failed batch get empty results."""
        settings = self.settings
        total = len(pending)
        batch_size = settings.ORACLE_BATCH_SIZE
        logger.info("Oracle extraction: %d descriptions in batches of %d", total, batch_size)

        def report(current: int, message: str) -> None:
            if on_progress is not None:
                on_progress(
                    ProgressEvent(phase=ProgressPhase.ORACLE_EXTRACTION, current=current, total=total, message=message)
                )

        report(0, f"{total} açıklama yapay zeka ile analiz ediliyor...")
        results: list[OracleItemResult] = []
        failed_batches = 0

        for start in range(0, total, batch_size):
            batch = pending[start:start + batch_size]
            items = [
                OracleRequestItem(local_index=i, code=code, source=source, description=description)
                for i, (code, source, description) in enumerate(batch)
            ]
            try:
                answers = await self.oracle.extract_batch(items)
            except OracleBatchError as e:
                failed_batches += 1
                logger.warning("Oracle batch %d-%d skipped: %s", start, start + len(batch) - 1, e.detail)
                answers = {}
            results.extend(answers.get(item.local_index, OracleItemResult()) for item in items)

            done = start + len(batch)
            report(done, f"{done} / {total} açıklama analiz edildi")
            if done < total and settings.ORACLE_BATCH_PAUSE_SECONDS > 0:
                await asyncio.sleep(settings.ORACLE_BATCH_PAUSE_SECONDS)

        if failed_batches:
            logger.warning("Oracle extraction finished with %d failed batch(es)", failed_batches)
        return results

    def _merge_entry(self, entry: RuleMasterEntry, rules: list[ParsedRule]) -> None:
        articles = [rule for rule in entry.rules if _is_article_note(rule)]
        regex_rules = [rule for rule in entry.rules if not _is_article_note(rule)]
        entry.rules = merge_oracle_rules(regex_rules, rules) + articles

    def _record_cross_references(
        self,
        table: RuleTable,
        cross_refs: dict[str, list[str]],
        articles: Sequence[SutArticle],
    ) -> None:
        index = build_article_index(articles) if articles else {}
        known = {(ref.source_code, ref.target) for ref in table.cross_references}
        for code, targets in cross_refs.items():
            for raw_target in targets:
                target = _SUT_PREFIX.sub("", raw_target.strip())
                if not target:
                    continue
                if _CODE_LIKE.match(target):
                    target = normalize_code(normalize_exclusion_code(target))
                    reference = CrossReference(
                        source_code=code, target=target, target_type="code", resolved=target in table.entries
                    )
                else:
                    reference = CrossReference(
                        source_code=code,
                        target=target,
                        target_type="article",
                        resolved=resolve_article(target, index) is not None,
                    )
                if (reference.source_code, reference.target) in known or reference.target == code:
                    continue
                known.add((reference.source_code, reference.target))
                table.cross_references.append(reference)
