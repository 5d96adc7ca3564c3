"""Tests for the Guion exception hierarchy."""

import pytest

from guion.exceptions import (
    CancellationError,
    ConfigurationError,
    ExportError,
    ExtractionFailedError,
    GuionError,
    GuionFileNotFoundError,
    NoTextBundleFoundError,
    ParseError,
    ProgressError,
    ResourceError,
    StorageError,
    UnsupportedFormatError,
    check_config_keys,
)


class TestGuionError:
    """Test GuionError formatting."""

    def test_message_only(self):
        error = GuionError("Something broke")
        assert error.format_error() == "Error: Something broke"
        assert str(error) == "Error: Something broke"

    def test_hint_and_details(self):
        error = GuionError(
            "Something broke", hint="Try again", details={"file": "a.fountain"}
        )
        assert error.format_error() == (
            "Error: Something broke\nHint: Try again\nDetails:\n  file: a.fountain"
        )

    @pytest.mark.parametrize(
        "error_class",
        [
            ConfigurationError,
            ParseError,
            GuionFileNotFoundError,
            UnsupportedFormatError,
            ResourceError,
            ProgressError,
            StorageError,
            ExportError,
        ],
    )
    def test_subclasses(self, error_class):
        error = error_class("failed")
        assert isinstance(error, GuionError)
        assert error.message == "failed"

    def test_resource_errors(self):
        assert issubclass(NoTextBundleFoundError, ResourceError)
        assert issubclass(ExtractionFailedError, ResourceError)


class TestCancellationError:
    """Test CancellationError."""

    def test_default_message(self):
        error = CancellationError()
        assert error.message == "Operation was cancelled"
        assert error.details is None

    def test_stage_details(self):
        error = CancellationError(details={"stage": "fdx"})
        assert "stage: fdx" in str(error)


class TestCheckConfigKeys:
    """Test check_config_keys."""

    def test_valid_keys(self):
        check_config_keys({"database_path": "x.db", "export_chunk_size": 10})

    @pytest.mark.parametrize(
        "wrong,correct",
        [
            ("db_path", "database_path"),
            ("batch_size", "fountain_batch_size"),
            ("chunk_size", "export_chunk_size"),
            ("update_interval", "progress_update_interval"),
        ],
    )
    def test_wrong_key(self, wrong, correct):
        with pytest.raises(ConfigurationError) as exc_info:
            check_config_keys({wrong: 1})
        assert exc_info.value.details["correct_key"] == correct
