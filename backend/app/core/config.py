from pathlib import Path

from pydantic_settings import BaseSettings
from functools import lru_cache

_DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseSettings):
    # Application
    app_name: str = "Lernwelt Curriculum Service"
    debug: bool = False

    # Supabase (auth + optional mastery backend)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # OpenAI (kept for fallback)
    openai_api_key: str = ""

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    llm_provider: str = "gemini"

    # Oracle call contract
    oracle_model: str = "gpt-4o-mini"
    oracle_temperature: float = 0.2
    oracle_max_tokens: int = 2048
    oracle_timeout_seconds: float = 60.0

    # Relational store
    database_path: str = str(_DATA_DIR / "lernwelt.db")
    store_timeout_seconds: float = 10.0
    # create missing tables on first use (local dev)
    store_create_schema: bool = True

    # Curriculum pipelines
    curriculum_config_path: str = str(_DATA_DIR / "curriculum_config.json")
    linking_batch_size: int = 10
    linking_max_workers: int = 4
    audit_default_limit: int = 1

    # memory | sql | supabase
    mastery_backend: str = "sql"

    # CORS
    frontend_url: str = "http://localhost:4200"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
