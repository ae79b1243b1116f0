"""Tests for filevault models."""
from pathlib import Path

import pytest

from filevault.models import (
    ClientConfig,
    DuplicateAction,
    DuplicateDecision,
    FilePage,
    FileReference,
    MiB,
    RateLimitAdvisory,
    UploadProgress,
    UploadSource,
    UploadState,
)


class TestUploadState:
    def test_terminal_states(self):
        assert not UploadState.UPLOADING.is_terminal
        assert UploadState.SUCCESS.is_terminal
        assert UploadState.ERROR.is_terminal
        assert UploadState.CANCELLED.is_terminal


class TestUploadSource:
    def test_from_path(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"1234")

        source = UploadSource.from_path(path)

        assert source.name == "photo.png"
        assert source.size == 4
        assert source.media_type == "image/png"
        with source.open() as f:
            assert f.read() == b"1234"

    def test_from_bytes(self):
        source = UploadSource.from_bytes("notes.unknownext", b"abc")

        assert source.size == 3
        assert source.media_type == "application/octet-stream"
        with source.open() as f:
            assert f.read() == b"abc"

    def test_renamed_keeps_payload(self):
        source = UploadSource.from_bytes("a.txt", b"abc")
        renamed = source.renamed("a-1.txt")

        assert renamed.name == "a-1.txt"
        assert renamed.data == b"abc"
        assert source.name == "a.txt"

    def test_open_without_payload(self):
        with pytest.raises(ValueError):
            UploadSource(name="ghost.txt", size=1).open()


class TestUploadProgress:
    def test_percent(self):
        assert UploadProgress(bytes_sent=25, total_bytes=100).percent == 25.0
        assert UploadProgress(bytes_sent=150, total_bytes=100).percent == 100.0

    def test_unknown_total(self):
        assert UploadProgress(bytes_sent=25).percent is None
        assert UploadProgress(bytes_sent=25, total_bytes=0).percent is None


class TestFileReference:
    def test_from_api(self):
        ref = FileReference.from_api(
            {
                "id": 3,
                "originalFilename": "scan.png",
                "size": 2048,
                "contentType": "image/png",
                "uploadTimestamp": "2026-10-01T12:00:00Z",
            }
        )

        assert ref == FileReference(3, "scan.png", 2048, "image/png", "2026-10-01T12:00:00Z")

    def test_page_from_api(self):
        page = FilePage.from_api(
            {
                "files": [{"id": 1, "originalFilename": "a.txt", "size": 1, "contentType": "text/plain"}],
                "currentPage": 2,
                "totalPages": 5,
                "totalElements": 41,
                "hasNext": True,
                "hasPrevious": True,
            }
        )

        assert [f.display_name for f in page.files] == ["a.txt"]
        assert page.current_page == 2
        assert page.total_elements == 41
        assert page.has_next and page.has_previous


def test_duplicate_decision_choose():
    decision = DuplicateDecision(conflicting_file_name="a.txt", existing_file_id=1)

    chosen = decision.choose(DuplicateAction.REPLACE)

    assert chosen.chosen_action is DuplicateAction.REPLACE
    assert decision.chosen_action is None


def test_rate_limit_countdown():
    advisory = RateLimitAdvisory(retry_after=30, issued_at=1000.0)

    assert advisory.remaining(now=1000.0) == 30
    assert advisory.remaining(now=1010.0) == 20
    assert advisory.remaining(now=1100.0) == 0


class TestClientConfig:
    def test_defaults(self):
        config = ClientConfig()

        assert config.max_upload_bytes == 10 * MiB
        assert config.sweep_interval == 5.0
        assert config.task_ttl == 30.0
        assert config.duplicate_scan_size == 1000
        assert config.max_rename_attempts == 100
        assert config.default_retry_after == 30

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("FILEVAULT_API_URL", "https://files.example.com/")
        monkeypatch.setenv("FILEVAULT_TIMEOUT", "12.5")
        monkeypatch.setenv("FILEVAULT_CREDENTIALS", "/tmp/fv/creds.json")

        config = ClientConfig.from_env()

        assert config.api_url == "https://files.example.com"
        assert config.timeout == 12.5
        assert config.credentials_path == Path("/tmp/fv/creds.json")

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("FILEVAULT_API_URL", "https://files.example.com")

        config = ClientConfig.from_env(api_url="http://other:9000", timeout=None)

        assert config.api_url == "http://other:9000"
        assert config.timeout == 60.0
