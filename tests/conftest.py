"""
Root-level shared fixtures for all pagequery tests.

Module-specific fixtures live in their respective conftest.py files.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from shared.logging import configure

# Keep test runs quiet and off the project's logs/ directory
configure(console=False, file=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Automatically cleaned up after test completion.
    """
    temp_path = Path(tempfile.mkdtemp(prefix="pagequery_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)
