from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "fileproc"
    db_username: str = "fileproc"
    db_password: str = "secret"
    db_pool_max_size: int = 10

    files_root: Path = Path("/app/files")

    queue_name: str = "fileProcessing"
    queue_max_attempts: int = 3
    queue_backoff_delay_ms: int = 1000
    queue_remove_on_complete: bool = True
    queue_remove_on_fail: bool = False
    queue_visibility_timeout_seconds: int = 300
    queue_wait_timeout_seconds: float = 5.0

    worker_concurrency: int = 4

    compression_errors_retryable: bool = True
    hash_chunk_size_bytes: int = 64 * 1024
