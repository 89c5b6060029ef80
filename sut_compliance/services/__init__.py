"""
Services Layer for the SUT Compliance Engine.

Rule extraction and table building, the oracle pipeline, row evaluation,
cross-row checks and batch orchestration.
"""

from sut_compliance.services.compliance_analyzer import (
    ComplianceAnalyzer,
    ProgressCallback,
    analyze_in_worker,
    run_analysis_payload,
)
from sut_compliance.services.cross_row import CrossRowPostProcessor
from sut_compliance.services.exemptions import DEFAULT_EXEMPTIONS, ExemptionTable
from sut_compliance.services.oracle_pipeline import (
    OracleExtractionPipeline,
    collect_oracle_items,
    compare_rule_sets,
)
from sut_compliance.services.row_evaluator import RowEvaluator
from sut_compliance.services.rule_builder import (
    RuleMasterBuilder,
    merge_oracle_rules,
    parse_sut_articles,
    recover_from_general_note,
    recover_note_rules,
)
from sut_compliance.services.rule_extractor import RuleExtractor, needs_semantic_review
from sut_compliance.services.rule_oracle import LLMRuleOracle, RuleOracle
from sut_compliance.services.specialty_matcher import (
    SpecialtyAliasTable,
    SpecialtyMatcher,
    build_default_alias_table,
)
from sut_compliance.services.summary import summarize

__all__ = [
    # Extraction and building
    "RuleExtractor",
    "needs_semantic_review",
    "RuleMasterBuilder",
    "merge_oracle_rules",
    "parse_sut_articles",
    "recover_from_general_note",
    "recover_note_rules",
    # Oracle
    "RuleOracle",
    "LLMRuleOracle",
    "OracleExtractionPipeline",
    "collect_oracle_items",
    "compare_rule_sets",
    # Evaluation
    "SpecialtyAliasTable",
    "SpecialtyMatcher",
    "build_default_alias_table",
    "ExemptionTable",
    "DEFAULT_EXEMPTIONS",
    "RowEvaluator",
    "CrossRowPostProcessor",
    "summarize",
    # Orchestration
    "ComplianceAnalyzer",
    "ProgressCallback",
    "analyze_in_worker",
    "run_analysis_payload",
]
