# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All runtime configuration for the advisor lives here. Pydantic Settings
# loads values in this priority order (highest first):
#   1. Environment variables (e.g., `MARKET_DATA_API_KEY=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from tadawul_advisor.config import settings
#   print(settings.quote_cache_ttl_seconds)
# =============================================================================


from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults are suitable for local development. Upstream API keys have
    no usable default and must be supplied through the environment.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Tadawul Market Advisor"
    app_version: str = "0.1.0"
    debug: bool = True
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    # ANTHROPIC_API_KEY: Claude (default advisor model)
    # OPENAI_API_KEY: OpenAI or any OpenAI-compatible endpoint
    # MARKET_DATA_API_KEY: quotes and statistics (Twelve Data)
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    market_data_api_key: str = ""

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    # Example configs:
    #   Claude:      provider=anthropic, model=claude-sonnet-4-6
    #   DeepSeek V3: provider=openai_compatible, base_url=https://api.deepseek.com/v1, model=deepseek-chat
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 4096

    # -------------------------------------------------------------------------
    # Market Data — Quotes & Fundamentals
    # -------------------------------------------------------------------------
    # Quotes change quickly and are cached for 10 seconds; statistics
    # (fundamentals) for 5 minutes. Only the quote fetch is time-bounded.
    # -------------------------------------------------------------------------
    market_data_url: str = "https://api.twelvedata.com"
    market_exchange_suffix: str = "TADAWUL"
    quote_cache_ttl_seconds: float = 10.0
    fundamentals_cache_ttl_seconds: float = 300.0
    quote_timeout_seconds: float = 5.0
    max_companies_per_query: int = 3

    # -------------------------------------------------------------------------
    # Document Corpus
    # -------------------------------------------------------------------------
    # Markdown / text files under this directory are indexed at startup.
    # -------------------------------------------------------------------------
    documents_dir: str = "data/documents"
    document_search_limit: int = 5

    # -------------------------------------------------------------------------
    # Context Window
    # -------------------------------------------------------------------------
    # The active window keeps at most floor(max_size / 2) messages whose
    # priority score exceeds the threshold.
    # -------------------------------------------------------------------------
    context_max_window_size: int = 4096
    context_priority_threshold: float = 0.7

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
settings = Settings()
