"""Tests for user-facing error messages."""

import pytest

from cloud_sync.errors import (
    BlobNotFoundError,
    CloudSyncError,
    EmptyPassphraseError,
    InvalidBackupPayloadError,
    MalformedBlobError,
    MissingCriticalTableError,
    NetworkError,
    QuotaExceededError,
    RateLimitedError,
    RestoreFailedError,
    RestoreFailedRolledBackError,
    ServiceUnavailableError,
    SyncFailedError,
    UnsupportedEnvelopeVersionError,
    WrongPassphraseOrCorruptBlobError,
    user_message,
)


class TestUserMessage:
    def test_wrong_passphrase(self):
        assert user_message(WrongPassphraseOrCorruptBlobError(), "restore") == (
            "Restore failed: Wrong passphrase. Please check and try again."
        )

    def test_prefix_follows_operation(self):
        assert user_message(ServiceUnavailableError(), "backup").startswith("Upload failed: ")
        assert user_message(ServiceUnavailableError(), "restore").startswith("Restore failed: ")

    def test_rate_limit_one_hour(self):
        message = user_message(RateLimitedError(3600), "backup")
        assert message == "Upload failed: Too many uploads. Please try again in 60 minutes."

    def test_rate_limit_rounds_up(self):
        assert "in 2 minutes" in user_message(RateLimitedError(61), "restore")

    def test_rate_limit_at_least_one_minute(self):
        assert "in 1 minutes" in user_message(RateLimitedError(0), "restore")

    def test_rate_limit_restore_mentions_downloads(self):
        assert "Too many downloads" in user_message(RateLimitedError(60), "restore")

    @pytest.mark.parametrize("error", [
        UnsupportedEnvelopeVersionError(),
        MissingCriticalTableError("users"),
        InvalidBackupPayloadError(),
    ])
    def test_invalid_payload_is_incompatible(self, error):
        assert "corrupted or incompatible" in user_message(error, "restore")

    def test_malformed_blob(self):
        assert "corrupted" in user_message(MalformedBlobError(), "restore")

    def test_not_found(self):
        assert "No backup found" in user_message(BlobNotFoundError(), "restore")

    def test_quota(self):
        assert "size limit" in user_message(QuotaExceededError(), "backup")

    def test_network_error_includes_detail(self):
        assert "Network error (connection refused)" in user_message(NetworkError("connection refused"))

    def test_empty_passphrase(self):
        assert "enter your passphrase" in user_message(EmptyPassphraseError())

    def test_rolled_back(self):
        error = RestoreFailedRolledBackError("boom", safety_backup_id="backup-1-abc")
        assert user_message(error, "restore") == "Restore failed, but your data was not changed."

    def test_rollback_failed_mentions_safety_backup(self):
        error = RestoreFailedError("boom", safety_backup_id="backup-1-abc")
        assert "safety backup was kept" in user_message(error, "restore")

    @pytest.mark.parametrize("error", [ValueError("x"), SyncFailedError("x"), CloudSyncError("x")])
    def test_unexpected(self, error):
        assert user_message(error) == (
            "Upload failed: An unexpected error occurred. Please try again or contact support."
        )

    def test_message_never_contains_exception_text(self):
        error = WrongPassphraseOrCorruptBlobError("passphrase=hunter2hunter2")
        assert "hunter2" not in user_message(error, "restore")


class TestErrors:
    def test_missing_critical_table_names_table(self):
        error = MissingCriticalTableError("foods")
        assert error.table == "foods"
        assert "foods" in str(error)

    def test_codes_distinct(self):
        codes = {cls.code for cls in (
            BlobNotFoundError,
            MalformedBlobError,
            RateLimitedError,
            WrongPassphraseOrCorruptBlobError,
            SyncFailedError,
        )}
        assert len(codes) == 5
