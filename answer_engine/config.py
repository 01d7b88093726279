from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (generation). Empty key disables generation; answers degrade.
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.0-flash-001"
    simple_model: str = ""  # empty -> default_model
    deep_model: str = ""
    creative_model: str = ""
    fallback_model: str = "openai/gpt-4o-mini"
    llm_timeout_seconds: float = 30.0

    # Embeddings (OpenAI-compatible endpoint)
    embedding_api_key: str = ""
    embedding_base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    embed_batch_size: int = 100
    embed_max_chars: int = 2000
    embed_dimensions: int = 768
    embed_cache_ttl_seconds: int = 3600
    embed_timeout_seconds: float = 25.0

    # Cross-encoder rerank (Jina)
    jina_api_key: str = ""
    rerank_model: str = "jina-reranker-v2-base-multilingual"
    rerank_timeout_seconds: float = 8.0

    # Web search
    search_provider: str = "serpapi"  # serpapi | brave | tavily
    serpapi_api_key: str = ""
    brave_api_key: str = ""
    tavily_api_key: str = ""
    search_fallback_to_tavily: bool = True
    extra_engines: str = "bing,duckduckgo"
    extra_engines_min_results: int = 5
    search_cache_ttl_seconds: int = 600

    http_user_agent: str = "answer-engine/0.1"

    # Social / video / academic providers
    twitter_bearer_token: str = ""
    reddit_client_id: str = ""
    reddit_client_secret: str = ""
    reddit_user_agent: str = "answer-engine/0.1"
    instagram_access_token: str = ""  # Graph API app token, "app_id|client_token"
    youtube_api_key: str = ""
    semantic_scholar_api_key: str = ""

    # Page fetch
    fetch_timeout_seconds: float = 4.0
    fetch_timeout_fast_seconds: float = 1.5
    fetch_max_parallel: int = 8
    page_cache_ttl_seconds: int = 600
    extractor_max_page_chars: int = 100000
    extractor_fallback: str = "readabilipy"  # readabilipy | none

    # Cache
    cache_max_entries: int = 512
    persistent_cache_enabled: bool = False
    persistent_cache_dir: str = ".cache/answer_engine"

    # Pipeline thresholds
    confidence_boost: float = 1.25
    confidence_threshold: float = 0.85
    diversity_threshold: int = 3
    max_rounds: int = 3
    min_round_budget_seconds: float = 2.0
    candidate_pool: int = 40
    candidate_pool_fast: int = 8
    request_budget_seconds: int = 300
    provider_timeout_seconds: float = 8.0
    max_subtasks: int = 6
    max_fetch_pages: int = 12
    known_places: str = "India:country,Mainpuri:city"

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def extra_engine_list(self) -> list[str]:
        return [e.strip() for e in self.extra_engines.split(",") if e.strip()]

    @property
    def known_place_map(self) -> dict[str, str]:
        places: dict[str, str] = {}
        for item in self.known_places.split(","):
            name, _, scope = item.partition(":")
            if name.strip():
                places[name.strip()] = (scope.strip() or "country").lower()
        return places


settings = Settings()
