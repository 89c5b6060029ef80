"""
Command Line Interface for the SUT Compliance Engine.

Usage:
    python -m sut_compliance build-rules --sources sources.json [--sut-text sut.txt] [--oracle] [--force]
    python -m sut_compliance build-rules --sources sources.json --audit [--audit-output audit.json]
    python -m sut_compliance analyze --rows rows.json [--tier 3] [--format csv|json] [--output out.csv] [--worker]

``sources.json`` is a list of source documents::

    [{"source": "EK-2B", "file_name": "ek2b.xlsx", "records": [{"code": "...", "name": "...", ...}]}]

``rows.json`` is a list of billed lines (BillingRow fields).
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.gateways.snapshot_store import create_snapshot_store
from sut_compliance.schemas.billing import BillingRow, InstitutionInfo
from sut_compliance.schemas.compliance import ProgressEvent
from sut_compliance.schemas.rules import SourceDocument, SutArticle
from sut_compliance.schemas.snapshot import RuleSnapshot, SourceProvenance
from sut_compliance.services.compliance_analyzer import ComplianceAnalyzer, analyze_in_worker
from sut_compliance.services.oracle_pipeline import OracleExtractionPipeline
from sut_compliance.services.rule_builder import RuleMasterBuilder, parse_sut_articles
from sut_compliance.services.rule_oracle import LLMRuleOracle
from sut_compliance.utils.errors import ComplianceError, OracleAuthenticationError
from sut_compliance.utils.export_formatters import (
    ExportFormat,
    build_export_rows,
    format_as_csv,
    format_as_json,
)
from sut_compliance.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REFUSED = 2


def log_progress(event: ProgressEvent) -> None:
    logger.info(f"[{event.phase.value}] {event.current}/{event.total} {event.message}")


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


# =============================================================================
# build-rules
# =============================================================================


async def build_rules(
    sources_path: str,
    sut_text_path: Optional[str],
    use_oracle: bool,
    force: bool,
    settings: ComplianceSettings,
    audit: bool = False,
    audit_output: Optional[str] = None,
) -> int:
    """
    Build the rule table from source lists and save it as the latest snapshot.

    With ``audit`` the regex table is compared against the oracle instead;
    the report is written out and no snapshot is saved.
    """
    documents = TypeAdapter(list[SourceDocument]).validate_python(_read_json(sources_path))
    articles: list[SutArticle] = []
    if sut_text_path:
        articles = parse_sut_articles(Path(sut_text_path).read_text(encoding="utf-8"))
        logger.info(f"Parsed {len(articles)} legislation articles from {sut_text_path}")

    table = RuleMasterBuilder(settings=settings).build(documents, articles, on_progress=log_progress)

    if audit:
        pipeline = OracleExtractionPipeline(LLMRuleOracle(settings=settings), settings)
        report = await pipeline.audit(table, on_progress=log_progress)
        text = report.model_dump_json(indent=2)
        if audit_output:
            Path(audit_output).write_text(text, encoding="utf-8")
            logger.info(f"Wrote rule audit to {audit_output}")
        else:
            sys.stdout.write(text)
        logger.info(
            f"Audit: {report.match_count} match, {report.oracle_only_count} oracle only, "
            f"{report.conflict_count} conflict, {report.regex_only_count} regex only, "
            f"{len(report.missed_patterns)} missed patterns"
        )
        return EXIT_OK

    if use_oracle or settings.ORACLE_ENABLED:
        pipeline = OracleExtractionPipeline(LLMRuleOracle(settings=settings), settings)
        await pipeline.enrich(table, articles, on_progress=log_progress)

    provenance = [
        SourceProvenance(source=d.source, file_name=d.file_name, row_count=len(d.records)) for d in documents
    ]
    snapshot = RuleSnapshot.from_table(table, provenance)
    store = create_snapshot_store(settings)
    if not store.save(snapshot, force=force):
        logger.warning("Snapshot not saved; rerun with --force to overwrite anyway")
        return EXIT_REFUSED

    logger.info(
        f"Snapshot {snapshot.snapshot_id}: {snapshot.stats.entry_count} codes, "
        f"{snapshot.stats.rule_count} rules, {snapshot.stats.resolved_cross_ref_count} resolved references"
    )
    return EXIT_OK


# =============================================================================
# analyze
# =============================================================================


async def analyze(
    rows_path: str,
    tier: Optional[int],
    export_format: ExportFormat,
    output: Optional[str],
    use_worker: bool,
    extra_columns: Sequence[str],
    settings: ComplianceSettings,
) -> int:
    """Analyze billed lines against the latest snapshot and export the verdicts."""
    snapshot = create_snapshot_store(settings).load_latest()
    if snapshot is None:
        logger.error("No rule snapshot found; run build-rules first")
        return EXIT_FAILED

    rows = TypeAdapter(list[BillingRow]).validate_python(_read_json(rows_path))
    institution = InstitutionInfo(tier=tier or settings.DEFAULT_INSTITUTION_TIER)
    table = snapshot.to_table()
    logger.info(f"Analyzing {len(rows)} rows against snapshot {snapshot.snapshot_id} (tier {institution.tier})")

    if use_worker:
        outcome = await analyze_in_worker(rows, table, institution, on_progress=log_progress, settings=settings)
    else:
        outcome = ComplianceAnalyzer(settings=settings).analyze(rows, table, institution, on_progress=log_progress)

    export_rows = build_export_rows(rows, outcome.results, extra_columns)
    text = format_as_json(export_rows) if export_format == ExportFormat.JSON else format_as_csv(export_rows)
    if output:
        Path(output).write_text(text, encoding="utf-8")
        logger.info(f"Wrote {len(export_rows)} rows to {output}")
    else:
        sys.stdout.write(text)

    summary = outcome.summary
    logger.info(
        f"Summary: {summary.compliant} compliant, {summary.non_compliant} non-compliant, "
        f"{summary.needs_review} review, {summary.unmatched} unmatched, "
        f"{summary.total_violations} violations"
    )
    return EXIT_OK


# =============================================================================
# Entry Point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sut_compliance",
        description="Build SUT billing rules and check billed procedures against them",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build-rules", help="Build and save a rule snapshot")
    build.add_argument("--sources", required=True, help="JSON file with the source documents")
    build.add_argument("--sut-text", help="Plain-text legislation used to resolve article references")
    build.add_argument("--oracle", action="store_true", help="Also extract rules with the LLM oracle")
    build.add_argument("--force", action="store_true", help="Save even a zero-rule snapshot")
    build.add_argument(
        "--audit",
        action="store_true",
        help="Compare regex rules with oracle rules and report the differences instead of saving",
    )
    build.add_argument("--audit-output", help="Audit report file (default: stdout)")

    run = subparsers.add_parser("analyze", help="Analyze billed lines against the latest snapshot")
    run.add_argument("--rows", required=True, help="JSON file with the billed lines")
    run.add_argument("--tier", type=int, choices=(1, 2, 3), help="Institution care tier")
    run.add_argument(
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.CSV.value,
        help="Export format (default: csv)",
    )
    run.add_argument("--output", help="Output file (default: stdout)")
    run.add_argument("--worker", action="store_true", help="Run the analysis in a separate process")
    run.add_argument(
        "--extra-column",
        action="append",
        default=[],
        dest="extra_columns",
        help="Pass-through column to export (repeatable)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_compliance_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE, settings.JSON_LOGS)

    try:
        if args.command == "build-rules":
            return asyncio.run(
                build_rules(
                    args.sources,
                    args.sut_text,
                    args.oracle,
                    args.force,
                    settings,
                    audit=args.audit,
                    audit_output=args.audit_output,
                )
            )
        return asyncio.run(
            analyze(
                args.rows,
                args.tier,
                ExportFormat(args.format),
                args.output,
                args.worker,
                args.extra_columns,
                settings,
            )
        )
    except OracleAuthenticationError as e:
        logger.error(f"{e.detail}. Set SUT_LLM_API_KEY and retry.")
        return EXIT_FAILED
    except ComplianceError as e:
        logger.error(f"{args.command} failed: {e.detail}")
        return EXIT_FAILED
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"{args.command} failed: {e}")
        return EXIT_FAILED
