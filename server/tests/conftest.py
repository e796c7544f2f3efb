# server/tests/conftest.py
from __future__ import annotations

# Import/bootstrap so "import server" works when running pytest from anywhere
import os
import sys
import tempfile
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent  # .../server/tests
SERVER_DIR = TESTS_DIR.parent  # .../server
REPO_ROOT = SERVER_DIR.parent  # repo root

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

# Deterministic test defaults: no real provider keys, scratch log/db locations.
_SCRATCH = tempfile.mkdtemp(prefix="image-muse-tests-")
for _key in ("GEMINI_API_KEY", "OPENROUTER_API_KEY", "HUGGINGFACE_API_KEY", "API_AUTH_TOKEN"):
    os.environ[_key] = ""
os.environ.setdefault("LOG_DIR", str(Path(_SCRATCH) / "logs"))
os.environ.setdefault("DB_PATH", str(Path(_SCRATCH) / "image_muse.db"))


@pytest.fixture
def settings():
    from server.app.config import Settings

    return Settings(
        GEMINI_API_KEY="",
        OPENROUTER_API_KEY="",
        HUGGINGFACE_API_KEY="",
        API_AUTH_TOKEN="",
        GEMINI_MODELS="gemini-2.5-flash,gemini-2.0-flash",
    )


@pytest.fixture
def ai_log_store(tmp_path):
    from server.app.services.ai_logs import AiLogStore

    return AiLogStore(tmp_path / "ai_logs.db")


@pytest.fixture(autouse=True)
def fresh_rate_limits():
    from server.app.dependencies.rate_limit import ai_rate_limit

    ai_rate_limit.reset()
    yield
    ai_rate_limit.reset()
