"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from typing import Optional

import pytest

from sut_compliance.core.config import ComplianceSettings, reset_compliance_settings
from sut_compliance.core.enums import RuleSource
from sut_compliance.gateways.llm_gateway import reset_llm_gateway
from sut_compliance.schemas.billing import BillingRow, InstitutionInfo
from sut_compliance.schemas.rules import ParsedRule, RuleMasterEntry, RuleTable
from sut_compliance.services.row_evaluator import RowEvaluator
from sut_compliance.services.specialty_matcher import SpecialtyMatcher, build_default_alias_table


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached settings and gateway between tests."""
    reset_compliance_settings()
    reset_llm_gateway()
    yield
    reset_compliance_settings()
    reset_llm_gateway()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from any local .env file."""
    return ComplianceSettings(
        _env_file=None,
        SNAPSHOT_DIRECTORY=str(tmp_path / "snapshots"),
        ORACLE_BATCH_PAUSE_SECONDS=0,
    )


@pytest.fixture
def matcher():
    return SpecialtyMatcher(build_default_alias_table())


@pytest.fixture
def make_row():
    """Factory for billed lines with sensible defaults."""

    def _make(code: str = "700100", **overrides) -> BillingRow:
        data = {
            "patient_id": "H-001",
            "date": "05.01.2024",
            "time": "10:00",
            "physician": "Dr. Ayşe Yılmaz",
            "specialty": "Genel Cerrahi",
            "procedure_code": code,
            "procedure_name": "Test işlemi",
            "points": 100.0,
            "price": 59.3,
        }
        data.update(overrides)
        return BillingRow(**data)

    return _make


@pytest.fixture
def make_rule():
    """Factory for parsed rules."""

    def _make(
        params,
        text: str,
        confidence: float = 0.9,
        source: Optional[RuleSource] = RuleSource.EK_2B,
    ) -> ParsedRule:
        return ParsedRule(params=params, source_text=text, origin_source=source, confidence=confidence)

    return _make


@pytest.fixture
def make_entry():
    """Factory for rule master entries."""

    def _make(
        code: str = "700100",
        rules=(),
        points: float = 0.0,
        price: float = 0.0,
        source: RuleSource = RuleSource.EK_2B,
    ) -> RuleMasterEntry:
        return RuleMasterEntry(
            code=code,
            name="Test işlemi",
            sources=[source],
            primary_source=source,
            points=points,
            price=price,
            rules=list(rules),
        )

    return _make


@pytest.fixture
def make_table():
    def _make(*entries: RuleMasterEntry) -> RuleTable:
        return RuleTable(entries={entry.code: entry for entry in entries})

    return _make


@pytest.fixture
def make_evaluator(matcher, settings):
    """Factory for row evaluators at a given institution tier."""

    def _make(tier: int = 2, dataset_specialties=()) -> RowEvaluator:
        return RowEvaluator(
            institution=InstitutionInfo(name="Test Hastanesi", tier=tier),
            matcher=matcher,
            dataset_specialties=dataset_specialties,
            settings=settings,
        )

    return _make


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
