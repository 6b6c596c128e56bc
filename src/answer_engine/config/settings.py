"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys
    openai_api_key: str = ""
    google_api_key: str = ""

    # Embedding
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 100

    # LLM / Gemini
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.1
    gemini_max_tokens: int = 4096

    # Retrieval
    retrieval_limit: int = 8
    rrf_k: int = 60
    document_pool_multiplier: int = 4
    knowledge_pool_multiplier: int = 6
    min_retrieval_pool: int = 30
    trust_boost_weight: float = 0.2
    recency_boost_weight: float = 0.1
    recency_boost_window_days: int = 30
    query_expansion_min_candidates: int = 5
    context_max_tokens: int = 4000

    # Confidence blending
    conf_model_weight: float = 0.10
    conf_retrieval_weight: float = 0.35
    conf_coverage_weight: float = 0.35
    conf_trust_weight: float = 0.20
    conf_floor: float = 0.05
    conf_ceiling: float = 0.99

    # Answer quality policy
    require_citations: bool = True
    min_citation_coverage: float = 0.8
    max_unsupported_claims: int = 0
    freshness_window_days: int = 30
    min_fresh_citation_coverage: float = 0.8
    min_claim_citation_overlap: float = 0.14

    # Blocked-answer follow-ups
    review_confidence_threshold: float = 0.65
    review_window_minutes: int = 180
    eval_window_minutes: int = 30
    eval_min_samples: int = 5
    eval_min_pass_rate: int = 85

    # Storage paths
    sqlite_corpus_db_path: str = "data/corpus.db"
    sqlite_answer_db_path: str = "data/answers.db"
    sqlite_jobs_db_path: str = "data/jobs.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Auth / JWT
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    api_keys: str = ""  # comma-separated list of valid API keys

    # Rate limiting
    rate_limit_requests_per_minute: int = 60

    model_config = {"env_file": ".env", "env_prefix": "ANSWER_"}
