"""Integration tests for concurrent bulk import."""

import pytest

from guion.exceptions import (
    ExtractionFailedError,
    GuionFileNotFoundError,
    ParseError,
    StorageError,
    UnsupportedFormatError,
)
from guion.pipeline import BulkImporter, BulkImportResult, ErrorCategory, categorize_error
from guion.progress import OperationProgress
from guion.storage import ElementStore

pytestmark = pytest.mark.integration


@pytest.fixture
def store(tmp_path):
    with ElementStore(tmp_path / "bulk.db") as element_store:
        yield element_store


@pytest.fixture
def good_files(tmp_path, sample_fountain, sample_fdx, highland_file):
    fountain = tmp_path / "coffee_shop.fountain"
    fountain.write_text(sample_fountain, encoding="utf-8")
    fdx = tmp_path / "coffee_shop.fdx"
    fdx.write_bytes(sample_fdx)
    return [fountain, fdx, highland_file]


@pytest.fixture
def bad_files(tmp_path):
    unsupported = tmp_path / "notes.docx"
    unsupported.write_bytes(b"not a screenplay")
    broken_fdx = tmp_path / "broken.fdx"
    broken_fdx.write_text("<FinalDraft><Content><Paragraph>", encoding="utf-8")
    corrupt_highland = tmp_path / "corrupt.highland"
    corrupt_highland.write_bytes(b"PK\x03\x04 definitely not a zip")
    return {
        "missing": tmp_path / "missing.fountain",
        "unsupported": unsupported,
        "broken_fdx": broken_fdx,
        "corrupt_highland": corrupt_highland,
    }


class TestCategorizeError:
    """Error categories."""

    @pytest.mark.parametrize(
        "error,category",
        [
            (ParseError("bad"), ErrorCategory.PARSING),
            (ExtractionFailedError("bad"), ErrorCategory.RESOURCE),
            (UnsupportedFormatError("bad"), ErrorCategory.UNSUPPORTED),
            (StorageError("bad"), ErrorCategory.STORAGE),
            (GuionFileNotFoundError("bad"), ErrorCategory.FILESYSTEM),
            (PermissionError("bad"), ErrorCategory.FILESYSTEM),
            (RuntimeError("bad"), ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, error, category):
        assert categorize_error(error) == category


class TestBulkImport:
    """Mixed batches of files."""

    def test_all_good(self, store, good_files):
        result = BulkImporter().import_files(good_files, store, max_workers=3)

        assert result.total_files == 3
        assert result.successful_imports == 3
        assert result.failed_imports == 0
        assert len(store.list_scripts()) == 3
        assert set(result.imported_scripts) == {str(p) for p in good_files}

    def test_failures_do_not_stop_others(self, store, good_files, bad_files):
        files = [*good_files, *bad_files.values()]

        result = BulkImporter().import_files(files, store, max_workers=2)

        assert result.successful_imports == 3
        assert result.failed_imports == 4
        assert len(store.list_scripts()) == 3
        summary = result.get_error_summary()
        assert summary[ErrorCategory.FILESYSTEM] == [str(bad_files["missing"])]
        assert summary[ErrorCategory.UNSUPPORTED] == [str(bad_files["unsupported"])]
        assert summary[ErrorCategory.PARSING] == [str(bad_files["broken_fdx"])]
        assert summary[ErrorCategory.RESOURCE] == [str(bad_files["corrupt_highland"])]

    def test_error_info(self, store, bad_files):
        path = str(bad_files["unsupported"])

        result = BulkImporter().import_files([path], store)

        error = result.errors[path]
        assert error["message"] == "Unsupported screenplay format: .docx"
        assert error["details"]["file_path"] == path
        assert "UnsupportedFormatError" in error["stack_trace"]
        assert error["suggestions"]

    def test_progress_counts_files(self, store, good_files, bad_files):
        files = [*good_files, bad_files["missing"]]
        progress = OperationProgress(update_interval=0.0)

        BulkImporter().import_files(files, store, progress=progress)

        assert progress.total_unit_count == 4
        assert progress.completed_unit_count == 4

    def test_cancelled_before_start(self, store, good_files):
        progress = OperationProgress()
        progress.cancel()

        result = BulkImporter().import_files(good_files, store, progress=progress)

        assert result.skipped_files == 3
        assert result.successful_imports == 0
        assert sorted(result.skipped) == sorted(str(p) for p in good_files)
        assert store.list_scripts() == []

    def test_cancel_after_first_file(self, store, good_files):
        holder = {}

        def cancel_after_one(update):
            if update.completed_units >= 1:
                holder["progress"].cancel()

        progress = OperationProgress(update_interval=0.0, handler=cancel_after_one)
        holder["progress"] = progress

        result = BulkImporter().import_files(
            good_files, store, progress=progress, max_workers=1
        )

        assert result.successful_imports == 1
        assert result.skipped_files == 2
        assert len(store.list_scripts()) == 1

    def test_empty_batch(self, store):
        result = BulkImporter().import_files([], store)
        assert result.total_files == 0
        assert result.to_dict()["files_per_second"] >= 0


class TestBulkImportResult:
    """Result bookkeeping."""

    def test_to_dict(self):
        result = BulkImportResult()
        result.total_files = 2
        result.add_success("a.fountain", 1)
        result.add_failure("b.fountain", "boom", ErrorCategory.UNKNOWN)

        data = result.to_dict()

        assert data["successful_imports"] == 1
        assert data["failed_imports"] == 1
        assert data["imported_scripts"] == {"a.fountain": 1}
        assert data["errors"]["b.fountain"]["message"] == "boom"
        assert data["errors"]["b.fountain"]["stack_trace"] is None
