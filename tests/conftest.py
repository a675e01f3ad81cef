# tests/conftest.py

"""Shared pytest fixtures for all tracker tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from src.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path) -> Generator[None, None, None]:
    """Keep exports and the bot offset file out of the working tree."""
    offset_path = tmp_path / Settings.OFFSET_PATH.name
    with patch.object(Settings, "EXPORTS_DIR", tmp_path / "exports"), \
            patch.object(Settings, "OFFSET_PATH", offset_path):
        yield
