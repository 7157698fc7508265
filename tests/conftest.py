"""
pytest configuration for peakjob tests.

- Path setup so ``peakjob`` and ``tests.fakes`` import without installing
- Test markers
- A per-test user data directory so nothing touches ~/.peakjob
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_tests_dir = Path(__file__).parent
_repo_dir = _tests_dir.parent
if str(_repo_dir) not in sys.path:
    sys.path.insert(0, str(_repo_dir))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "scenario: end-to-end orchestrator scenarios against fakes")


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch) -> Path:
    home = tmp_path / "peakjob-home"
    monkeypatch.setenv("PEAKJOB_HOME", str(home))
    monkeypatch.delenv("PEAKJOB_PASSWORD", raising=False)
    return home


@pytest.fixture
def repo_dir() -> Path:
    return _repo_dir
