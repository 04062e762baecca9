"""Tests for the sync metadata store."""

from cloud_sync.db import get_connection
from cloud_sync.metadata import SyncMetadataStore
from cloud_sync.models import SyncMetadata


def _metadata(**overrides):
    fields = {
        "operation": "backup",
        "last_attempt_timestamp": 1_700_000_000_000,
        "last_attempt_success": True,
        "blob_size_bytes": 2048,
        "storage_key_hash": "abcd1234",
    }
    fields.update(overrides)
    return SyncMetadata(**fields)


class TestSyncMetadataStore:
    def test_get_before_save(self, metadata_store):
        assert metadata_store.get() is None

    def test_save_and_get(self, metadata_store):
        metadata_store.save(_metadata())
        record = metadata_store.get()
        assert record.id == "primary"
        assert record.last_attempt_success is True
        assert record.blob_size_bytes == 2048
        assert record.error_message is None

    def test_save_overwrites(self, metadata_store):
        metadata_store.save(_metadata())
        metadata_store.save(_metadata(
            operation="restore",
            last_attempt_success=False,
            blob_size_bytes=0,
            storage_key_hash="",
            error_message="Restore failed: Wrong passphrase. Please check and try again.",
        ))
        record = metadata_store.get()
        assert record.operation == "restore"
        assert record.last_attempt_success is False
        assert record.error_message.startswith("Restore failed")

    def test_single_row(self, metadata_store):
        for i in range(5):
            metadata_store.save(_metadata(blob_size_bytes=i))
        assert metadata_store.get().blob_size_bytes == 4
        with get_connection(metadata_store.db_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM sync_metadata").fetchone()[0]
        assert count == 1

    def test_persists_across_instances(self, tmp_path):
        SyncMetadataStore(tmp_path / "s.db").save(_metadata())
        assert SyncMetadataStore(tmp_path / "s.db").get().storage_key_hash == "abcd1234"
