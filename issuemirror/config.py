"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./issuemirror.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # GitHub
    github_api_url: str = "https://api.github.com"
    # Default token used for repositories registered without their own token.
    github_token: str | None = None
    # Webhook signing secret. When unset, every signature check fails closed.
    github_webhook_secret: str | None = None
    github_timeout_seconds: float = 30.0

    # Sync
    issues_per_page: int = 50
    sync_cooldown_seconds: int = 60
    sync_history_limit: int = 20
    default_sync_interval_minutes: int = 10
    # Upper bound for a single webhook delivery; 0 disables the deadline.
    webhook_timeout_seconds: float = 10.0

    # Cache
    cache_ttl_seconds: int = 300

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
