"""
=============================================================================
Configuration Settings Module
=============================================================================

Pydantic-based settings management with environment variable support.
All configuration is loaded from .env file or environment variables.

EXECUTION POLICY NOTE:
----------------------
The failure threshold, step bound and wall-clock budget below define when a
run is escalated to recovery or aborted. Changing them changes run semantics,
not just performance.
=============================================================================
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env into os.environ for libraries like 'langfuse' that read from env vars
load_dotenv()


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # LLM Endpoint (OpenAI-compatible)
    # -------------------------------------------------------------------------
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""

    # One model per invocation profile
    primary_model: str = "gpt-4o"
    economical_model: str = "gpt-4o-mini"
    precise_model: str = "gpt-4o-mini"

    primary_temperature: float = 0.7
    economical_temperature: float = 0.3
    precise_temperature: float = 0.1
    max_output_tokens: int = 2048

    # -------------------------------------------------------------------------
    # Langfuse Observability
    # -------------------------------------------------------------------------
    langfuse_public_key: str = ""
    langfuse_secret_key: str = ""
    langfuse_base_url: str = "https://us.cloud.langfuse.com"

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # -------------------------------------------------------------------------
    # Cost Policy
    # -------------------------------------------------------------------------
    default_cost_budget: float = 0.10
    cost_per_token: float = 0.000008
    tokens_per_word: float = 1.3
    refined_prompt_max_chars: int = 1000

    # -------------------------------------------------------------------------
    # Semantic Cache
    # -------------------------------------------------------------------------
    cache_capacity: int = 100
    cache_similarity_threshold: float = 0.85
    cache_embedding_dim: int = 384

    # -------------------------------------------------------------------------
    # Cost Ledger
    # -------------------------------------------------------------------------
    ledger_capacity: int = 1000

    # -------------------------------------------------------------------------
    # Workflow Execution
    # -------------------------------------------------------------------------
    failure_threshold: int = 3
    max_steps: int = 20
    run_timeout_seconds: float = 120.0
    recovery_base_delay_ms: int = 1000
    recovery_max_delay_ms: int = 30000

    # -------------------------------------------------------------------------
    # External Calls
    # -------------------------------------------------------------------------
    invocation_timeout_seconds: float = 60.0
    retrieval_timeout_ms: int = 15000
    max_retrieval_sources: int = 3
    retry_max_attempts: int = 3
    retry_initial_wait: float = 1.0
    retry_max_wait: float = 10.0
    retry_jitter: float = 1.0

    # "heuristic" (local regex rules) or "llm" (AI-assisted classification)
    classifier_backend: str = "heuristic"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
