"""
Pydantic Schemas for Persisted Rule Snapshots.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from sut_compliance.core.enums import RuleSource
from sut_compliance.schemas.rules import CrossReference, RuleMasterEntry, RuleTable

SNAPSHOT_FORMAT_VERSION = "1"


class SourceProvenance(BaseModel):
    """Which file a source was loaded from and how many rows it had."""

    source: RuleSource
    file_name: str = ""
    row_count: int = 0


class SnapshotStats(BaseModel):
    """Aggregate counters stored alongside a snapshot."""

    entry_count: int = 0
    rule_count: int = 0
    resolved_cross_ref_count: int = 0
    description_count: int = 0

    @property
    def is_degraded(self) -> bool:
        """Descriptions were present but no structured rule was extracted from them."""
        return self.rule_count == 0 and self.description_count > 0


class SnapshotMetadata(BaseModel):
    """Snapshot header, loadable without the (large) entry mapping."""

    version: str = SNAPSHOT_FORMAT_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sources: list[SourceProvenance] = Field(default_factory=list)
    stats: SnapshotStats = Field(default_factory=SnapshotStats)

    @property
    def snapshot_id(self) -> str:
        return self.created_at.strftime("%Y%m%dT%H%M%S%fZ")


class RuleSnapshot(SnapshotMetadata):
    """Complete persisted rule base."""

    entries: dict[str, RuleMasterEntry] = Field(default_factory=dict)
    cross_references: list[CrossReference] = Field(default_factory=list)

    @classmethod
    def from_table(
        cls, table: RuleTable, sources: list[SourceProvenance]
    ) -> "RuleSnapshot":
        stats = SnapshotStats(
            entry_count=len(table.entries),
            rule_count=table.structured_rule_count(),
            resolved_cross_ref_count=sum(1 for r in table.cross_references if r.resolved),
            description_count=table.stats.description_count,
        )
        return cls(
            sources=sources,
            stats=stats,
            entries=table.entries,
            cross_references=table.cross_references,
        )

    def metadata(self) -> SnapshotMetadata:
        return SnapshotMetadata(
            version=self.version,
            created_at=self.created_at,
            sources=self.sources,
            stats=self.stats,
        )

    def to_table(self) -> RuleTable:
        table = RuleTable(entries=self.entries, cross_references=self.cross_references)
        table.stats.entry_count = self.stats.entry_count
        table.stats.rule_count = self.stats.rule_count
        table.stats.description_count = self.stats.description_count
        return table
