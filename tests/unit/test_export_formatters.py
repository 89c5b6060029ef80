"""
Unit tests for export formatters.
"""

import csv
import io
import json

import pytest

from sut_compliance.core.enums import (
    ComplianceStatus,
    MatchConfidence,
    RuleKind,
    RuleSource,
    ViolationCode,
)
from sut_compliance.schemas.compliance import ComplianceResult, Violation
from sut_compliance.utils.export_formatters import (
    INPUT_COLUMNS,
    VERDICT_COLUMNS,
    build_export_rows,
    format_as_csv,
    format_as_json,
)


@pytest.fixture
def rows(make_row):
    return [
        make_row("530010", specialty="Kardiyoloji", extra={"Birim": "Kardiyoloji Poliklinik"}),
        make_row("999999"),
    ]


@pytest.fixture
def results(make_entry):
    violation = Violation(
        code=ViolationCode.SPECIALTY,
        explanation="Bu işlem radyoloji uzmanlarınca yapılmalı.",
        source=RuleSource.EK_2B,
        clause="Sadece radyoloji uzmanları tarafından yapılması halinde faturalandırılır.",
        rule_kind=RuleKind.SPECIALTY_RESTRICTION,
    )
    return [
        ComplianceResult(
            row_index=0,
            status=ComplianceStatus.NON_COMPLIANT,
            confidence=MatchConfidence.HIGH,
            entry=make_entry("530010", points=90.0),
            violations=[violation],
            point_delta=10.0,
        ),
        ComplianceResult(row_index=1, status=ComplianceStatus.UNMATCHED, confidence=MatchConfidence.LOW),
    ]


class TestBuildExportRows:
    """Tests for build_export_rows."""

    def test_columns(self, rows, results):
        """Test input columns come first, then extras, then verdict columns."""
        exported = build_export_rows(rows, results, extra_columns=["Birim"])
        expected = [header for header, _ in INPUT_COLUMNS] + ["Birim"] + VERDICT_COLUMNS
        assert list(exported[0].keys()) == expected

    def test_verdict_values(self, rows, results):
        """Test verdict columns are filled from the result."""
        first, second = build_export_rows(rows, results, extra_columns=["Birim"])

        assert first["İşlem Kodu"] == "530010"
        assert first["Birim"] == "Kardiyoloji Poliklinik"
        assert first["Uygunluk Durumu"] == "NON_COMPLIANT"
        assert first["Eşleşme"] == "Eşleşti"
        assert first["İhlal Sayısı"] == 1
        assert first["İhlal Açıklaması"].startswith("[BRANS_002] ")
        assert first["Kaynak"] == "EK-2B"
        assert first["Puan Farkı"] == 10.0
        assert second["Eşleşme"] == "Eşleşmedi"
        assert second["Birim"] == ""
        assert second["Kaynak"] == ""

    def test_length_mismatch(self, rows, results):
        """Test rows and results must line up."""
        with pytest.raises(ValueError):
            build_export_rows(rows, results[:1])


class TestFormatters:
    """Tests for CSV and JSON serialization."""

    def test_csv(self, rows, results):
        """Test CSV output has a header and one line per row."""
        text = format_as_csv(build_export_rows(rows, results))
        records = list(csv.DictReader(io.StringIO(text)))

        assert len(records) == 2
        assert records[0]["Uygunluk Durumu"] == "NON_COMPLIANT"
        assert records[1]["Puan Farkı"] == ""

    def test_csv_empty(self):
        """Test an empty export still has the header line."""
        header = next(csv.reader(io.StringIO(format_as_csv([]))))
        assert header[0] == "Tarih"
        assert header[-1] == "Fiyat Farkı"

    def test_json(self, rows, results):
        """Test JSON output keeps Turkish characters."""
        text = format_as_json(build_export_rows(rows, results))
        data = json.loads(text)

        assert data[0]["Eşleşme"] == "Eşleşti"
        assert "Eşleşti" in text
