"""
Unit tests for the command line interface.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sut_compliance.cli import EXIT_FAILED, EXIT_OK, build_parser, main
from sut_compliance.core.enums import ExtractionMethod
from sut_compliance.gateways.snapshot_store import FileSnapshotStore
from sut_compliance.schemas.oracle import OracleItemResult
from sut_compliance.schemas.rules import ParsedRule, TierParams

SPECIALTY_TEXT = "Sadece radyoloji uzmanları tarafından yapılması halinde faturalandırılır."


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a temporary snapshot directory."""
    monkeypatch.setenv("SUT_SNAPSHOT_DIRECTORY", str(tmp_path / "snapshots"))
    monkeypatch.setenv("SUT_LOG_LEVEL", "WARNING")
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def sources_file(cli_env):
    path = cli_env / "sources.json"
    documents = [
        {
            "source": "EK-2B",
            "file_name": "ek2b.xlsx",
            "records": [
                {"code": "530.010", "name": "Doppler US", "description": SPECIALTY_TEXT, "points": "100,00"},
                {"code": "700100", "name": "Test işlemi", "points": 50},
            ],
        }
    ]
    path.write_text(json.dumps(documents, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def rows_file(cli_env):
    path = cli_env / "rows.json"
    rows = [
        {
            "patient_id": "H-001",
            "date": "05.01.2024",
            "physician": "Dr. Ali Demir",
            "specialty": "Kardiyoloji",
            "procedure_code": "530010",
            "procedure_name": "Doppler US",
            "points": 100,
            "extra": {"Birim": "KARDİYOLOJİ"},
        },
        {
            "patient_id": "H-002",
            "date": "05.01.2024",
            "specialty": "Radyoloji",
            "procedure_code": "530010",
        },
    ]
    path.write_text(json.dumps(rows, ensure_ascii=False), encoding="utf-8")
    return path


class TestCLI:
    """Tests for main."""

    def test_build_then_analyze(self, cli_env, sources_file, rows_file):
        """Test a built snapshot is used by a later analysis."""
        assert main(["build-rules", "--sources", str(sources_file)]) == EXIT_OK

        output = cli_env / "out.json"
        code = main(
            [
                "analyze",
                "--rows", str(rows_file),
                "--tier", "3",
                "--format", "json",
                "--output", str(output),
                "--extra-column", "Birim",
            ]
        )

        assert code == EXIT_OK
        exported = json.loads(output.read_text(encoding="utf-8"))
        assert exported[0]["Uygunluk Durumu"] == "NON_COMPLIANT"
        assert "[BRANS_002]" in exported[0]["İhlal Açıklaması"]
        assert exported[0]["Birim"] == "KARDİYOLOJİ"
        assert exported[1]["Uygunluk Durumu"] == "COMPLIANT"

    def test_analyze_to_stdout(self, cli_env, sources_file, rows_file, capsys):
        """Test CSV is written to stdout without --output."""
        main(["build-rules", "--sources", str(sources_file)])
        capsys.readouterr()

        assert main(["analyze", "--rows", str(rows_file)]) == EXIT_OK

        lines = capsys.readouterr().out.strip().splitlines()
        assert lines[0].startswith("Tarih,Saat,")
        assert len(lines) == 3

    def test_build_rules_audit(self, cli_env, sources_file, monkeypatch):
        """Test --audit writes the regex vs oracle report and saves no snapshot."""
        tier = ParsedRule(
            params=TierParams(tiers=[3]), source_text=SPECIALTY_TEXT, extraction_method=ExtractionMethod.ORACLE
        )
        oracle = MagicMock()
        oracle.extract_batch = AsyncMock(
            side_effect=lambda items: {item.local_index: OracleItemResult(rules=[tier]) for item in items}
        )
        monkeypatch.setattr("sut_compliance.cli.LLMRuleOracle", lambda settings=None: oracle)
        output = cli_env / "audit.json"

        code = main(["build-rules", "--sources", str(sources_file), "--audit", "--audit-output", str(output)])

        assert code == EXIT_OK
        report = json.loads(output.read_text(encoding="utf-8"))
        assert report["entries_with_description"] == 1
        assert report["oracle_only_count"] == 1
        assert report["entries"][0]["code"] == "530010"
        assert report["missed_patterns"][0]["pattern"] == "tier_restriction:exact"
        assert FileSnapshotStore(cli_env / "snapshots").load_latest() is None

    def test_analyze_without_snapshot(self, cli_env, rows_file):
        """Test analysis fails cleanly when no snapshot exists."""
        assert main(["analyze", "--rows", str(rows_file)]) == EXIT_FAILED

    def test_missing_sources_file(self, cli_env):
        """Test an unreadable input file is a failure, not a traceback."""
        assert main(["build-rules", "--sources", str(cli_env / "yok.json")]) == EXIT_FAILED

    def test_invalid_sources(self, cli_env):
        """Test an unknown source label is rejected."""
        path = cli_env / "bad.json"
        path.write_text(json.dumps([{"source": "EK-9", "records": []}]), encoding="utf-8")
        assert main(["build-rules", "--sources", str(path)]) == EXIT_FAILED


class TestParser:
    """Tests for argument parsing."""

    def test_command_required(self):
        """Test a subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_tier_choices(self):
        """Test only tiers 1-3 are accepted."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["analyze", "--rows", "r.json", "--tier", "4"])

    def test_audit_flags(self):
        """Test --audit is off by default and takes an optional report path."""
        assert build_parser().parse_args(["build-rules", "--sources", "s.json"]).audit is False
        args = build_parser().parse_args(["build-rules", "--sources", "s.json", "--audit", "--audit-output", "a.json"])
        assert args.audit is True
        assert args.audit_output == "a.json"

    def test_extra_columns_repeatable(self):
        """Test --extra-column can be given several times."""
        args = build_parser().parse_args(
            ["analyze", "--rows", "r.json", "--extra-column", "Birim", "--extra-column", "Servis"]
        )
        assert args.extra_columns == ["Birim", "Servis"]
