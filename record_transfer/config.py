"""Application configuration."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_env: str = "development"
    database_url: str = "sqlite:///./record_transfer.db"

    # Redis (for Celery and progress pub/sub)
    redis_url: str = "redis://localhost:6379/0"

    # Document store limits
    max_batch_size: int = 500
    max_document_bytes: int = 1024 * 1024
    records_collection: str = "companies"

    # Chunk commits
    commit_timeout_seconds: float = 10.0
    chunk_retry_budget: int = 1
    chunk_retry_backoff_seconds: float = 0.5

    # Import
    max_stored_errors: int = 100
    record_id_fields: list[str] = ["id", "companyId"]
    numeric_fields: list[str] = ["financials.revenue", "financials.profit"]
    upload_dir: str = "/tmp/uploads"
    max_upload_bytes: int = 100 * 1024 * 1024

    # Credits
    import_credit_type: str = "prospecting"
    export_credit_type: str = "leads"

    # Export
    export_dir: str = "/tmp/exports"
    export_page_size: int = 500
    export_time_limit_seconds: int = 540
    export_poll_interval_seconds: float = 2.0
    download_url_ttl_seconds: int = 7 * 24 * 60 * 60
    signing_secret: str = "change-me"
    public_base_url: str = "http://localhost:8000"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
