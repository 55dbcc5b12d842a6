"""
Pytest configuration file for Scan Reconciler tests.

Puts 'src' on sys.path so tests import the station modules the same way the
application does, and provides small document builders shared by the suites.
"""

import sys
from pathlib import Path

import pytest

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

# Add src directory to sys.path (for src modules)
src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from PySide6.QtCore import QCoreApplication  # noqa: E402

from line_registry import LineRegistry  # noqa: E402
from models import DocumentHeader, Line  # noqa: E402
from reconciliation_config import ReconciliationConfig  # noqa: E402
from reconciliation_engine import ReconciliationEngine  # noqa: E402
from settings import ReconcilerSettings  # noqa: E402


class FakeClock:
    """Manually advanced time source for the session clock and highlights."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_registry(*lines, folio="A00001234", document_id=None):
    """
    Build a registry from (code, required) tuples or Line objects.

    Example:
        make_registry(("A100", 3), ("B200", 1))
    """
    built = []
    for item in lines:
        if isinstance(item, Line):
            built.append(item)
        else:
            code, required = item[0], item[1]
            alternate = item[2] if len(item) > 2 else ''
            built.append(Line(code=code, required=required, alternate_code=alternate))
    return LineRegistry(DocumentHeader(folio=folio, document_id=document_id), built)


@pytest.fixture(scope="session")
def qapp():
    """A QCoreApplication for tests that rely on Qt signals."""
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings():
    return ReconcilerSettings(authorization_secret="s3cret", highlight_seconds=3.0)


@pytest.fixture
def make_engine(qapp, fake_clock, settings):
    """Factory: make_engine(("A100", 3), workflow="receiving", **config_overrides)."""

    def _make(*lines, workflow="receiving", content_index=None, container_catalog=None,
              document_id=None, **overrides):
        registry = make_registry(*lines, document_id=document_id)
        config = ReconciliationConfig.for_workflow(workflow, **overrides)
        return ReconciliationEngine(
            registry, config,
            content_index=content_index,
            container_catalog=container_catalog,
            settings=settings,
            time_source=fake_clock,
        )

    return _make
