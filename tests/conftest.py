import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from contextchat.gemini import GeminiClient  # noqa: E402


@pytest.fixture(autouse=True)
def reset_gemini_client_pool():
    """Drop pooled HTTP clients so each test starts from a clean pool."""
    yield
    GeminiClient._client_pool.clear()
