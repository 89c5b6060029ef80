"""
Unit tests for rule snapshot storage.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from sut_compliance.core.enums import RuleSource, SnapshotBackend
from sut_compliance.gateways.snapshot_store import (
    LATEST_NAME,
    METADATA_NAME,
    FileSnapshotStore,
    MinioSnapshotStore,
    create_snapshot_store,
)
from sut_compliance.schemas.rules import GeneralNoteParams, SourceDocument, SourceRecord, TierParams
from sut_compliance.schemas.snapshot import RuleSnapshot, SnapshotStats, SourceProvenance
from sut_compliance.services.rule_builder import RuleMasterBuilder, parse_sut_articles
from sut_compliance.utils.errors import SnapshotError


def _s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message="test",
        resource="/rule-snapshots/latest.json",
        request_id="req",
        host_id="host",
        response=MagicMock(),
    )


@pytest.fixture
def snapshot(make_entry, make_rule, make_table):
    rule = make_rule(TierParams(tiers=[3]), "Yalnızca 3. basamakta yapılır.")
    table = make_table(make_entry("700100", rules=[rule]), make_entry("700200"))
    table.stats.description_count = 1
    return RuleSnapshot.from_table(table, [SourceProvenance(source=RuleSource.EK_2B, file_name="ek2b.xlsx", row_count=2)])


@pytest.fixture
def degraded():
    return RuleSnapshot(
        created_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        stats=SnapshotStats(entry_count=10, rule_count=0, description_count=10),
    )


class TestSnapshot:
    """Tests for RuleSnapshot."""

    def test_from_table_stats(self, snapshot):
        """Test counters are computed from the table."""
        assert snapshot.stats.entry_count == 2
        assert snapshot.stats.rule_count == 1
        assert snapshot.stats.is_degraded is False

    def test_to_table(self, snapshot):
        """Test a snapshot converts back into a lookup table."""
        table = snapshot.to_table()
        assert table.get("700100").rules[0].params.tiers == [3]
        assert table.stats.rule_count == 1

    def test_notes_are_not_counted(self, make_entry, make_rule, make_table):
        """Test general notes do not count toward the snapshot rule count."""
        note = make_rule(GeneralNoteParams(text="Not", article_no="2.4.5"), "Not", source=RuleSource.SUT)
        table = make_table(make_entry("700100", rules=[note]))
        table.stats.description_count = 1

        stats = RuleSnapshot.from_table(table, []).stats
        assert stats.rule_count == 0
        assert stats.is_degraded is True

    def test_degraded(self, degraded):
        """Test zero rules from non-empty descriptions is degraded."""
        assert degraded.stats.is_degraded is True
        assert SnapshotStats().is_degraded is False


class TestFileSnapshotStore:
    """Tests for FileSnapshotStore."""

    def test_empty_store(self, tmp_path):
        """Test nothing saved yet yields None."""
        store = FileSnapshotStore(tmp_path)
        assert store.load_latest() is None
        assert store.load_metadata() is None
        assert store.list_versions() == []

    def test_save_and_load(self, tmp_path, snapshot):
        """Test the saved snapshot is the latest one."""
        store = FileSnapshotStore(tmp_path)
        assert store.save(snapshot) is True

        loaded = store.load_latest()
        assert loaded.entries.keys() == snapshot.entries.keys()
        assert loaded.entries["700100"].rules[0].params.tiers == [3]
        assert store.load_metadata().stats.rule_count == 1
        assert store.list_versions() == [f"rules_{snapshot.snapshot_id}.json"]

    def test_degraded_snapshot_refused(self, tmp_path, snapshot, degraded):
        """Test a zero-rule snapshot never replaces one with rules."""
        store = FileSnapshotStore(tmp_path)
        store.save(snapshot)

        assert store.save(degraded) is False
        assert store.load_metadata().stats.rule_count == 1
        assert len(store.list_versions()) == 1

    def test_notes_only_build_refused(self, tmp_path, settings, snapshot):
        """Test a build that only attached legislation notes cannot replace a snapshot with rules."""
        document = SourceDocument(
            source=RuleSource.EK_2B,
            records=[
                SourceRecord(code="700100", points=1, description="SUT 2.4.5 maddesine göre faturalandırılır."),
                SourceRecord(code="700200", points=1, description="Tetkik sonuçları hasta dosyasında saklanır."),
            ],
        )
        articles = parse_sut_articles("2.4.5 - Diyaliz tedavileri\nHemodiyaliz seansları ayrıca faturalandırılır.")
        table = RuleMasterBuilder(settings=settings).build([document], articles)
        notes_only = RuleSnapshot.from_table(table, [])

        assert table.get("700100").rules
        assert notes_only.stats.rule_count == 0
        assert notes_only.stats.is_degraded is True

        store = FileSnapshotStore(tmp_path)
        store.save(snapshot)
        assert store.save(notes_only) is False
        assert store.load_metadata().stats.rule_count == 1

    def test_degraded_snapshot_forced(self, tmp_path, snapshot, degraded):
        """Test force overrides the guard."""
        store = FileSnapshotStore(tmp_path)
        store.save(snapshot)

        assert store.save(degraded, force=True) is True
        assert store.load_metadata().stats.rule_count == 0

    def test_degraded_snapshot_on_empty_store(self, tmp_path, degraded):
        """Test the guard only protects an existing snapshot with rules."""
        assert FileSnapshotStore(tmp_path).save(degraded) is True

    def test_corrupt_snapshot(self, tmp_path):
        """Test unreadable stored data raises SnapshotError."""
        (tmp_path / LATEST_NAME).write_text("{not json", encoding="utf-8")
        (tmp_path / METADATA_NAME).write_text("[]", encoding="utf-8")
        store = FileSnapshotStore(tmp_path)

        with pytest.raises(SnapshotError):
            store.load_latest()
        with pytest.raises(SnapshotError):
            store.load_metadata()


class TestMinioSnapshotStore:
    """Tests for MinioSnapshotStore."""

    def test_save_creates_bucket_once(self, snapshot):
        """Test the bucket is created on first write and objects are uploaded."""
        client = MagicMock()
        client.bucket_exists.return_value = False
        store = MinioSnapshotStore(client, "rule-snapshots")

        assert store.save(snapshot, force=True) is True

        client.make_bucket.assert_called_once_with("rule-snapshots")
        names = [call.args[1] for call in client.put_object.call_args_list]
        assert names == [f"snapshots/rules_{snapshot.snapshot_id}.json", LATEST_NAME, METADATA_NAME]
        assert client.put_object.call_args.kwargs["content_type"] == "application/json"

    def test_load_latest(self, snapshot):
        """Test a stored object is read and the connection released."""
        response = MagicMock()
        response.read.return_value = snapshot.model_dump_json().encode("utf-8")
        client = MagicMock()
        client.get_object.return_value = response

        loaded = MinioSnapshotStore(client, "rule-snapshots").load_latest()

        assert loaded.stats.rule_count == 1
        client.get_object.assert_called_once_with("rule-snapshots", LATEST_NAME)
        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    @pytest.mark.parametrize("code", ["NoSuchKey", "NoSuchBucket"])
    def test_missing_object(self, code):
        """Test a missing object or bucket reads as no snapshot."""
        client = MagicMock()
        client.get_object.side_effect = _s3_error(code)
        assert MinioSnapshotStore(client, "rule-snapshots").load_latest() is None

    def test_other_errors_raise(self):
        """Test other S3 errors surface as SnapshotError."""
        client = MagicMock()
        client.get_object.side_effect = _s3_error("AccessDenied")
        with pytest.raises(SnapshotError):
            MinioSnapshotStore(client, "rule-snapshots").load_metadata()


class TestCreateSnapshotStore:
    """Tests for create_snapshot_store."""

    def test_file_backend(self, settings):
        """Test the default backend is the file store."""
        store = create_snapshot_store(settings)
        assert isinstance(store, FileSnapshotStore)
        assert str(store.directory) == settings.SNAPSHOT_DIRECTORY

    def test_minio_backend(self, settings):
        """Test the MinIO backend is built from settings."""
        settings.SNAPSHOT_BACKEND = SnapshotBackend.MINIO
        settings.MINIO_BUCKET = "kurallar"
        store = create_snapshot_store(settings)
        assert isinstance(store, MinioSnapshotStore)
        assert store.bucket == "kurallar"
