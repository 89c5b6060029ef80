"""
Compliance Analyzer.

Batch orchestration of a full analysis run:

1. build session groups (patient + date) and the dataset's specialties
2. evaluate rows chunk by chunk, reporting progress after each chunk
3. run the cross-row passes once over the complete result set
4. summarize

``analyze_in_worker`` runs the same pipeline in a separate process. The
rule table, rows, specialty aliases and exemption lists are serialized
in, the outcome is serialized out; a worker failure surfaces as a single AnalysisWorkerError with no partial
results.
"""

import asyncio
import json
import logging
import time
from collections import defaultdict
from concurrent.futures import Executor, ProcessPoolExecutor
from typing import Any, Callable, Optional, Sequence

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.core.enums import ProgressPhase
from sut_compliance.schemas.billing import BillingRow, InstitutionInfo
from sut_compliance.schemas.compliance import AnalysisOutcome, ComplianceResult, ProgressEvent
from sut_compliance.schemas.rules import RuleTable
from sut_compliance.services.cross_row import CrossRowPostProcessor
from sut_compliance.services.exemptions import DEFAULT_EXEMPTIONS, ExemptionTable
from sut_compliance.services.row_evaluator import RowEvaluator
from sut_compliance.services.specialty_matcher import (
    SpecialtyAliasTable,
    SpecialtyMatcher,
    build_default_alias_table,
)
from sut_compliance.services.summary import summarize
from sut_compliance.services.turkish_text import normalize_code
from sut_compliance.utils.errors import AnalysisWorkerError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def _tr_count(value: int) -> str:
    """Thousands separated the Turkish way (12.345)."""
    return f"{value:,}".replace(",", ".")


class ComplianceAnalyzer:
    """
    Runs a complete analysis over a row set.

    Example:
        >>> analyzer = ComplianceAnalyzer()
        >>> outcome = analyzer.analyze(rows, table, InstitutionInfo(tier=3))
        >>> outcome.summary.non_compliant
    """

    def __init__(
        self,
        settings: Optional[ComplianceSettings] = None,
        alias_table: Optional[SpecialtyAliasTable] = None,
        exemptions: ExemptionTable = DEFAULT_EXEMPTIONS,
    ):
        self.settings = settings or get_compliance_settings()
        self.matcher = SpecialtyMatcher(alias_table or build_default_alias_table())
        self.exemptions = exemptions
        self.post_processor = CrossRowPostProcessor(exemptions)

    def analyze(
        self,
        rows: Sequence[BillingRow],
        table: RuleTable,
        institution: Optional[InstitutionInfo] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisOutcome:
        """
        Evaluate every row and return results in input order.

        Args:
            rows: Billed lines
            table: Rule table (treated as read-only)
            institution: Billing institution; default tier from settings
            on_progress: Optional progress callback

        Returns:
            AnalysisOutcome with one result per row and the summary
        """
        started = time.perf_counter()
        institution = institution or InstitutionInfo(tier=self.settings.DEFAULT_INSTITUTION_TIER)
        total = len(rows)

        def report(phase: ProgressPhase, current: int, message: str) -> None:
            if on_progress is not None:
                on_progress(ProgressEvent(phase=phase, current=current, total=total, message=message))

        report(ProgressPhase.ANALYZING, 0, "Seans grupları oluşturuluyor...")
        sessions: dict[tuple[str, str], list[tuple[int, BillingRow]]] = defaultdict(list)
        for index, row in enumerate(rows):
            sessions[row.session_key].append((index, row))

        evaluator = RowEvaluator(
            institution=institution,
            matcher=self.matcher,
            dataset_specialties=(row.specialty for row in rows),
            settings=self.settings,
            exemptions=self.exemptions,
        )

        results: list[ComplianceResult] = []
        batch_size = self.settings.ANALYSIS_BATCH_SIZE
        for start in range(0, total, batch_size):
            end = min(start + batch_size, total)
            for index in range(start, end):
                row = rows[index]
                entry = table.get(normalize_code(row.procedure_code))
                results.append(evaluator.evaluate(row, index, entry, sessions[row.session_key]))
            report(
                ProgressPhase.ANALYZING,
                end,
                f"{_tr_count(end)} / {_tr_count(total)} satır analiz ediliyor...",
            )

        report(ProgressPhase.ANALYZING, total, "Sıklık limitleri kontrol ediliyor...")
        self.post_processor.apply(rows, results, table)

        elapsed_ms = (time.perf_counter() - started) * 1000
        summary = summarize(results, elapsed_ms=elapsed_ms, exemptions=self.exemptions)
        report(ProgressPhase.COMPLETE, total, f"Analiz tamamlandı ({elapsed_ms / 1000:.1f}s)")

        logger.info(
            "Analyzed %d rows in %.0f ms: %d compliant, %d non-compliant, %d review, %d unmatched",
            total,
            elapsed_ms,
            summary.compliant,
            summary.non_compliant,
            summary.needs_review,
            summary.unmatched,
        )
        return AnalysisOutcome(results=results, summary=summary)


# =============================================================================
# Worker Execution
# =============================================================================


def _build_payload(
    rows: Sequence[BillingRow],
    table: RuleTable,
    institution: InstitutionInfo,
    settings: ComplianceSettings,
    alias_table: Optional[SpecialtyAliasTable] = None,
    exemptions: ExemptionTable = DEFAULT_EXEMPTIONS,
) -> str:
    alias_table = alias_table or build_default_alias_table()
    payload: dict[str, Any] = {
        "rows": [row.model_dump(mode="json") for row in rows],
        "table": table.model_dump(mode="json"),
        "institution": institution.model_dump(mode="json"),
        "settings": settings.model_dump(mode="json"),
        "alias_groups": [sorted(group) for group in alias_table.groups],
        "exemptions": exemptions.to_dict(),
    }
    return json.dumps(payload, ensure_ascii=False)


def run_analysis_payload(payload: str) -> str:
    """
    Worker entry point: JSON analysis request in, JSON AnalysisOutcome out.

    Module level so a process pool can pickle it.
    """
    data = json.loads(payload)
    analyzer = ComplianceAnalyzer(
        settings=ComplianceSettings(**data["settings"]),
        alias_table=SpecialtyAliasTable.from_groups(data["alias_groups"]),
        exemptions=ExemptionTable.from_dict(data["exemptions"]),
    )
    outcome = analyzer.analyze(
        [BillingRow.model_validate(row) for row in data["rows"]],
        RuleTable.model_validate(data["table"]),
        InstitutionInfo.model_validate(data["institution"]),
    )
    return outcome.model_dump_json()


async def analyze_in_worker(
    rows: Sequence[BillingRow],
    table: RuleTable,
    institution: Optional[InstitutionInfo] = None,
    on_progress: Optional[ProgressCallback] = None,
    settings: Optional[ComplianceSettings] = None,
    executor: Optional[Executor] = None,
    alias_table: Optional[SpecialtyAliasTable] = None,
    exemptions: ExemptionTable = DEFAULT_EXEMPTIONS,
) -> AnalysisOutcome:
    """
    Run an analysis off the event loop, in a separate process by default.

    Args:
        rows: Billed lines
        table: Rule table
        institution: Billing institution
        on_progress: Receives the start, complete and error events
        settings: Settings forwarded to the worker
        executor: Executor to use; a one-process pool is created if omitted
        alias_table: Specialty aliases for the worker's matcher
        exemptions: Exemption lists for the worker's checks

    Returns:
        The worker's AnalysisOutcome

    Raises:
        AnalysisWorkerError: The worker failed; no partial results are kept
    """
    settings = settings or get_compliance_settings()
    institution = institution or InstitutionInfo(tier=settings.DEFAULT_INSTITUTION_TIER)
    total = len(rows)

    def report(phase: ProgressPhase, current: int, message: str) -> None:
        if on_progress is not None:
            on_progress(ProgressEvent(phase=phase, current=current, total=total, message=message))

    report(ProgressPhase.ANALYZING, 0, "Analiz arka planda başlatıldı...")
    payload = _build_payload(rows, table, institution, settings, alias_table, exemptions)

    owned = executor is None
    pool = executor or ProcessPoolExecutor(max_workers=1)
    try:
        loop = asyncio.get_running_loop()
        reply = await loop.run_in_executor(pool, run_analysis_payload, payload)
        outcome = AnalysisOutcome.model_validate_json(reply)
    except Exception as e:
        logger.error("Analysis worker failed: %s", e)
        report(ProgressPhase.ERROR, 0, f"Analiz başarısız: {e}")
        raise AnalysisWorkerError(f"Analysis worker failed: {e}") from e
    finally:
        if owned:
            pool.shutdown(wait=False, cancel_futures=True)

    report(ProgressPhase.COMPLETE, total, f"Analiz tamamlandı ({outcome.summary.elapsed_ms / 1000:.1f}s)")
    return outcome
