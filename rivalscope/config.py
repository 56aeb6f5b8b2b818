# rivalscope/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import List
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = Path(BASE_DIR) / ".env"

# Load .env
load_dotenv(ENV_PATH)


class ServiceConfigs(BaseSettings):
    """Konfigurasi collaborator eksternal (AI, search, scrape) dan parameter run analisis."""

    # ====================================
    # AI completion (OpenAI-compatible endpoint)
    # ====================================
    llm_base_url: str = os.getenv("LLM_BASE_URL", "https://api.anthropic.com/v1/")
    llm_api_key: str = os.getenv("LLM_API_KEY", "")
    quick_model: str = os.getenv("QUICK_MODEL", "claude-3-5-haiku-20241022")
    synthesis_model: str = os.getenv("SYNTHESIS_MODEL", "claude-sonnet-4-20250514")
    query_max_tokens: int = int(os.getenv("QUERY_MAX_TOKENS", "1000"))
    report_max_tokens: int = int(os.getenv("REPORT_MAX_TOKENS", "4000"))

    # ====================================
    # Search (Serper) & scrape (Firecrawl)
    # ====================================
    serper_api_key: str = os.getenv("SERPER_API_KEY", "")
    serper_base_url: str = os.getenv("SERPER_BASE_URL", "https://google.serper.dev")
    firecrawl_api_key: str = os.getenv("FIRECRAWL_API_KEY", "")
    firecrawl_base_url: str = os.getenv("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", 120))
    collaborator_retries: int = int(os.getenv("COLLABORATOR_RETRIES", 2))

    # ====================================
    # Run analisis
    # ====================================
    max_competitors: int = int(os.getenv("MAX_COMPETITORS", 50))
    analysis_timeout_seconds: float = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", 30 * 60))
    cancel_on_timeout: bool = os.getenv("CANCEL_ON_TIMEOUT", "true").lower() == "true"
    cost_target_per_competitor: float = float(os.getenv("COST_TARGET_PER_COMPETITOR", 0.20))
    preflight_health_checks: bool = (
        os.getenv("PREFLIGHT_HEALTH_CHECKS", "true").lower() == "true"
    )

    # harga layanan non-AI (USD per unit)
    search_cost_per_query: float = float(os.getenv("SEARCH_COST_PER_QUERY", 0.001))
    scrape_cost_per_url: float = float(os.getenv("SCRAPE_COST_PER_URL", 0.002))

    max_documents: int = int(os.getenv("MAX_DOCUMENTS", 20))
    scrape_concurrency: int = max(1, int(os.getenv("SCRAPE_CONCURRENCY", 3)))
    search_delay_seconds: float = float(os.getenv("SEARCH_DELAY_SECONDS", 1.0))
    search_results_per_query: int = int(os.getenv("SEARCH_RESULTS_PER_QUERY", 10))

    # ====================================
    # Streaming, cache, jobs
    # ====================================
    keep_alive_seconds: float = float(os.getenv("KEEP_ALIVE_SECONDS", 10))
    cache_ttl_seconds: int = int(os.getenv("CACHE_TTL_SECONDS", 3600))
    # job selesai yang disimpan untuk polling status
    jobs_keep_completed: int = max(1, int(os.getenv("JOBS_KEEP_COMPLETED", 10)))
    jobs_keep_failed: int = max(1, int(os.getenv("JOBS_KEEP_FAILED", 5)))

    app_env: str = os.getenv("APP_ENV", "development")
    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH), env_file_encoding="utf-8", extra="ignore"
    )

    def missing_keys(self) -> List[str]:
        """Daftar nama env API key yang belum di-set."""
        missing = []
        if not self.llm_api_key:
            missing.append("LLM_API_KEY")
        if not self.serper_api_key:
            missing.append("SERPER_API_KEY")
        if not self.firecrawl_api_key:
            missing.append("FIRECRAWL_API_KEY")
        return missing


class BaseConfig:
    """Base configuration class for Quart."""

    # ====================
    # App Config
    # ====================
    ENV = os.getenv("APP_ENV", "development")
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me-secret-key")
    DEBUG = False
    TESTING = False

    # ====================
    # Logger Config
    # ====================
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv(
        "LOG_FORMAT", "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
    )
    LOG_RETENTION = int(os.getenv("LOG_RETENTION", 30))
    LOG_MODE = os.getenv("LOG_MODE", "stdout")  # stdout | file

    JSON_SORT_KEYS = False


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"


class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    ENV = "testing"
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False
    ENV = "production"


config_map = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[BaseConfig]:
    """Return the configuration class corresponding to the given environment."""
    if not env:
        env = os.getenv("APP_ENV", "default")
    return config_map.get(env, config_map["default"])
