"""
Runtime configuration.

Values come from environment variables, optionally loaded from a `.env` file
in the working directory. `create_app()` applies them to `app.config`.
"""

import os
from typing import Any, Dict, List

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name: str, default: str) -> List[str]:
    return [m.strip() for m in os.getenv(name, default).split(",") if m.strip()]


class Config:
    """Settings snapshot taken from the environment at construction time."""

    def __init__(self) -> None:
        load_dotenv()

        self.SECRET_KEY = os.getenv("SECRET_KEY", "gift-study-dev-key")
        self.DATABASE_PATH = os.getenv("DATABASE_PATH", os.path.join('data', 'experiments.db'))
        # Empty string disables the per-experiment JSON event log
        self.EVENT_LOG_DIR = os.getenv("EVENT_LOG_DIR", "experiment_logs")
        self.LOG_FILE = os.getenv("LOG_FILE", os.path.join('data', 'application.log'))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.TIMEZONE = os.getenv("TIMEZONE", "Asia/Seoul")

        self.RECOMMENDER_BACKEND = os.getenv("RECOMMENDER_BACKEND", "openai").lower()
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-5-mini")
        self.OPENAI_FALLBACK_MODELS = _env_list("OPENAI_FALLBACK_MODELS", "gpt-4o-mini,gpt-4o")
        self.OPENAI_IMAGE_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3")
        self.IMAGE_GENERATION = _env_bool("IMAGE_GENERATION", True)
        self.GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "60"))

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in vars(self).items() if k.isupper()}
