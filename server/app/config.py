# server/app/config.py
from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve repo root: repo/ (since this file is repo/server/app/config.py)
REPO_ENV = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """
    Central config for the Image Muse server. Uses Pydantic v2 + pydantic-settings.

    - Loads env from the repo root .env if present
    - Ignores unknown env vars (prevents CI/local crashes)
    - Case-insensitive env keys
    - Defaults work for local dev & tests (no provider keys required)

    Built once at import; handed to the resolver and health checker through
    the `get_settings` dependency instead of being read ad hoc.
    """

    model_config = SettingsConfigDict(
        env_file=str(REPO_ENV),
        extra="ignore",  # accept extra env vars (JWT_SECRET, VITE_*, etc.)
        case_sensitive=False,
    )

    # --- Provider keys (per-request headers override these) ------------------
    GEMINI_API_KEY: str = ""
    OPENROUTER_API_KEY: str = ""
    HUGGINGFACE_API_KEY: str = ""

    # --- Gemini ---------------------------------------------------------------
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODELS: str = "gemini-2.5-flash,gemini-2.0-flash"  # tried in order

    # --- OpenRouter -----------------------------------------------------------
    OPENROUTER_API_URL: str = "https://openrouter.ai/api/v1/chat/completions"
    OPENROUTER_MODELS_URL: str = "https://openrouter.ai/api/v1/models"
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"
    OPENROUTER_APP_URL: str = "http://localhost:5173"
    OPENROUTER_APP_NAME: str = "Image Muse"

    # --- HuggingFace ----------------------------------------------------------
    HUGGINGFACE_API_BASE: str = "https://api-inference.huggingface.co/models"
    HUGGINGFACE_MODEL: str = "Salesforce/blip-image-captioning-large"
    HUGGINGFACE_WHOAMI_URL: str = "https://huggingface.co/api/whoami-v2"

    # --- Timeouts (ms) --------------------------------------------------------
    ANALYZE_TIMEOUT_MS: int = 60000  # each outbound call on the analysis path
    PROVIDER_CHECK_TIMEOUT_MS: int = 8000  # each /ai/providers probe

    # --- Limits ---------------------------------------------------------------
    MAX_IMAGE_BASE64_CHARS: int = 10 * 1024 * 1024
    AI_LOG_RAW_MAX_CHARS: int = 4000
    PROVIDER_ERROR_RAW_MAX_CHARS: int = 500
    HEALTH_MODELS_MAX: int = 10
    AI_RATE_LIMIT_PER_MINUTE: int = 15  # per client across /analyze-image and /ai-chat; 0 disables

    # --- Storage / logs -------------------------------------------------------
    DB_PATH: str = "data/image_muse.db"
    LOG_DIR: str = "data/logs"
    MAX_LOG_MB: int = 16
    LOG_LEVEL: str = "INFO"

    # --- Service --------------------------------------------------------------
    API_AUTH_TOKEN: str = ""  # empty -> auth disabled
    CORS_ORIGINS: str = (
        "http://localhost:5173,http://127.0.0.1:5173,"
        "http://localhost:3000,http://127.0.0.1:3000"
    )
    PORT: int = 4000

    def gemini_model_list(self) -> List[str]:
        return [m.strip() for m in self.GEMINI_MODELS.split(",") if m.strip()]

    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def analyze_timeout_s(self) -> float:
        return self.ANALYZE_TIMEOUT_MS / 1000.0

    @property
    def check_timeout_s(self) -> float:
        return self.PROVIDER_CHECK_TIMEOUT_MS / 1000.0


# Singleton-style instance used by the app/tests
settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency; tests swap it via app.dependency_overrides."""
    return settings
