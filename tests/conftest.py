"""Shared fixtures for Cloud Sync tests."""

import os

# Log to stderr during tests instead of ~/.cloud_sync
os.environ["CLOUD_SYNC_DEBUG"] = "true"

from datetime import datetime, timezone

import pytest

from cloud_sync.crypto import check_storage_key
from cloud_sync.db import SqliteStore
from cloud_sync.errors import BlobNotFoundError
from cloud_sync.metadata import SyncMetadataStore
from cloud_sync.models import UploadMetadata, UploadResult
from cloud_sync.safety import SafetyBackupStore


class FakeTransport:
    """In-memory blob store standing in for the HTTP endpoints."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.uploads: list[UploadMetadata] = []
        self.upload_error: Exception | None = None
        self.download_error: Exception | None = None

    async def upload(self, blob: bytes, storage_key: str, metadata: UploadMetadata) -> UploadResult:
        if self.upload_error is not None:
            raise self.upload_error
        check_storage_key(storage_key)
        self.blobs[storage_key] = bytes(blob)
        self.uploads.append(metadata)
        return UploadResult(
            uploaded_at=datetime.now(timezone.utc).isoformat(),
            blob_size=len(blob),
            storage_key_hash=storage_key[:8],
        )

    async def download(self, storage_key: str) -> bytes:
        if self.download_error is not None:
            raise self.download_error
        check_storage_key(storage_key)
        if storage_key not in self.blobs:
            raise BlobNotFoundError("No backup stored under this storage key")
        return self.blobs[storage_key]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store(tmp_path):
    s = SqliteStore(tmp_path / "data.db")
    s.init_db()
    return s


@pytest.fixture
def metadata_store(tmp_path):
    return SyncMetadataStore(tmp_path / "state.db")


@pytest.fixture
def safety_store(tmp_path):
    return SafetyBackupStore(tmp_path / "state.db")


@pytest.fixture
def seeded_store(store):
    store.put_rows("users", [{"id": "user-1", "name": "Ada"}])
    store.put_rows("symptoms", [{"id": "sym-1", "name": "Fatigue", "severity": 3}])
    store.put_rows("medications", [{"id": "med-1", "name": "Ibuprofen"}])
    store.put_rows("triggers", [{"id": "trg-1", "name": "Stress"}])
    store.put_rows("foods", [{"id": "food-1", "name": "Dairy"}])
    return store
