import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
TESTS_DIR = PROJECT_ROOT / "tests"
for path in (SRC_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fakes import FakeChannel  # noqa: E402

from rawgen.config import get_settings  # noqa: E402


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Keep cached settings from leaking between tests that patch the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
