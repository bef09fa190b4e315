from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage: "memory" (single process) or "redis"
    storage_backend: str = "memory"

    # Redis
    # Set REDIS_URL in .env file
    redis_url: str = "redis://localhost:6379"
    redis_key_prefix: str = "qrflow"

    # Per-review-item critical section
    lock_timeout_seconds: float = 10.0
    lock_blocking_timeout_seconds: float = 5.0

    # Teams
    originator_team: str = "PLANT"
    responding_teams: list[str] = ["CQS", "TECH", "JVC"]

    # Queries open longer than this many days are overdue
    query_overdue_days: int = 3

    # Duplicate notification suppression
    notification_dedup_window_seconds: float = 30.0
    notification_dedup_retention_seconds: float = 300.0

    # App
    cors_origins: list[str] = ["http://localhost:3000"]
    environment: str = "development"
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
