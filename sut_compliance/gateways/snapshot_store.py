"""
Rule Snapshot Storage.

Persists built rule tables so an analysis run does not need the source
lists. Two backends share one layout:

    snapshots/rules_<snapshot_id>.json   every saved version
    latest.json                          copy of the newest version
    metadata.json                        header of the newest version

The header can be read without loading the (large) entry mapping.
"""

from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from minio import Minio
from minio.error import S3Error
from pydantic import ValidationError

from sut_compliance.core.config import ComplianceSettings, get_compliance_settings
from sut_compliance.core.enums import SnapshotBackend
from sut_compliance.schemas.snapshot import RuleSnapshot, SnapshotMetadata
from sut_compliance.utils.errors import SnapshotError
from sut_compliance.utils.logging import get_logger

logger = get_logger(__name__)

LATEST_NAME = "latest.json"
METADATA_NAME = "metadata.json"
VERSIONS_PREFIX = "snapshots"


def version_name(snapshot: SnapshotMetadata) -> str:
    return f"{VERSIONS_PREFIX}/rules_{snapshot.snapshot_id}.json"


class SnapshotStore(ABC):
    """
    Base class for snapshot backends.

    Subclasses implement raw reads and writes by name; the base class
    owns serialization and the degraded-snapshot guard.
    """

    def save(self, snapshot: RuleSnapshot, force: bool = False) -> bool:
        """
        Persist a snapshot as the new latest version.

        A degraded snapshot (descriptions present, zero rules) never
        replaces a previous snapshot that has rules unless ``force`` is set.

        Returns:
            True if written, False if refused by the guard
        """
        if snapshot.stats.is_degraded and not force:
            previous = self.load_metadata()
            if previous is not None and previous.stats.rule_count > 0:
                logger.warning(
                    f"Refusing to overwrite snapshot {previous.snapshot_id} "
                    f"({previous.stats.rule_count} rules) with a zero-rule snapshot "
                    f"built from {snapshot.stats.description_count} descriptions"
                )
                return False

        body = snapshot.model_dump_json().encode("utf-8")
        header = snapshot.metadata().model_dump_json().encode("utf-8")
        self._write(version_name(snapshot), body)
        self._write(LATEST_NAME, body)
        self._write(METADATA_NAME, header)
        logger.info(
            f"Saved rule snapshot {snapshot.snapshot_id}: "
            f"{snapshot.stats.entry_count} entries, {snapshot.stats.rule_count} rules"
        )
        return True

    def load_latest(self) -> Optional[RuleSnapshot]:
        """Load the newest snapshot, or None if nothing was saved yet."""
        data = self._read(LATEST_NAME)
        if data is None:
            return None
        try:
            return RuleSnapshot.model_validate_json(data)
        except ValidationError as e:
            raise SnapshotError(f"Stored snapshot is unreadable: {e}") from e

    def load_metadata(self) -> Optional[SnapshotMetadata]:
        """Load the newest snapshot's header, or None if nothing was saved yet."""
        data = self._read(METADATA_NAME)
        if data is None:
            return None
        try:
            return SnapshotMetadata.model_validate_json(data)
        except ValidationError as e:
            raise SnapshotError(f"Stored snapshot metadata is unreadable: {e}") from e

    @abstractmethod
    def _write(self, name: str, data: bytes) -> None:
        """Store bytes under a name, replacing any previous value."""

    @abstractmethod
    def _read(self, name: str) -> Optional[bytes]:
        """Return the bytes stored under a name, or None if absent."""


class FileSnapshotStore(SnapshotStore):
    """Snapshots as JSON files under a local directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _write(self, name: str, data: bytes) -> None:
        path = self.directory / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as e:
            raise SnapshotError(f"Cannot write {path}: {e}") from e

    def _read(self, name: str) -> Optional[bytes]:
        path = self.directory / name
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise SnapshotError(f"Cannot read {path}: {e}") from e

    def list_versions(self) -> list[str]:
        """File names of all saved versions, oldest first."""
        folder = self.directory / VERSIONS_PREFIX
        if not folder.exists():
            return []
        return sorted(p.name for p in folder.glob("rules_*.json"))


class MinioSnapshotStore(SnapshotStore):
    """
    Snapshots as objects in a MinIO (S3-compatible) bucket.

    The bucket is created on first write.
    """

    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket
        self._bucket_checked = False

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Created bucket: {self.bucket}")
        self._bucket_checked = True

    def _write(self, name: str, data: bytes) -> None:
        try:
            self._ensure_bucket()
            self.client.put_object(
                self.bucket,
                name,
                BytesIO(data),
                len(data),
                content_type="application/json",
            )
        except S3Error as e:
            logger.error(f"Error uploading {self.bucket}/{name}: {e}")
            raise SnapshotError(f"Cannot write {self.bucket}/{name}: {e}") from e

    def _read(self, name: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(self.bucket, name)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                return None
            logger.error(f"Error downloading {self.bucket}/{name}: {e}")
            raise SnapshotError(f"Cannot read {self.bucket}/{name}: {e}") from e
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()


def create_snapshot_store(settings: Optional[ComplianceSettings] = None) -> SnapshotStore:
    """Build the configured snapshot backend."""
    settings = settings or get_compliance_settings()
    if settings.SNAPSHOT_BACKEND == SnapshotBackend.MINIO:
        client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        logger.info(f"MinIO client initialized: {settings.MINIO_ENDPOINT}")
        return MinioSnapshotStore(client, settings.MINIO_BUCKET)
    return FileSnapshotStore(settings.SNAPSHOT_DIRECTORY)
