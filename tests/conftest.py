"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from guion.config import GuionSettings, reset_settings, set_settings

# Import CLI fixtures to make them available globally
from tests.cli_fixtures import clean_runner, cli_invoke  # noqa: F401
from tests.utils import build_highland

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "unit: mark test as unit test")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Give every test fresh settings with a database under tmp_path."""
    reset_settings()
    db_path = tmp_path / "test_guion.db"
    monkeypatch.setenv("GUION_DATABASE_PATH", str(db_path))
    settings = GuionSettings(database_path=db_path)
    set_settings(settings)

    yield settings

    reset_settings()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_fountain() -> str:
    return (FIXTURES_DIR / "coffee_shop.fountain").read_text(encoding="utf-8")


@pytest.fixture
def sample_fdx() -> bytes:
    return (FIXTURES_DIR / "coffee_shop.fdx").read_bytes()


@pytest.fixture
def chaptered_fountain() -> str:
    return (FIXTURES_DIR / "chapters.fountain").read_text(encoding="utf-8")


@pytest.fixture
def highland_file(tmp_path, sample_fountain) -> Path:
    return build_highland(tmp_path / "coffee_shop.highland", sample_fountain)
