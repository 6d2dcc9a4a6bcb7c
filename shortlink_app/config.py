from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "URL Shortener"
    app_version: str = "2.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    base_url: str = "http://127.0.0.1:8000"

    # Key-value store
    store_backend: str = "sqlalchemy"  # Options: "sqlalchemy", "redis", "memory"
    database_url: str = "sqlite:///./url_shortener.db"
    redis_url: str = "redis://localhost:6379/0"

    # Short code allocation
    short_code_length: int = 7
    max_retries: int = 5  # Random codes tried per allocation
    create_max_attempts: int = 3  # Allocate + create cycles before giving up

    # Click recording (optimistic concurrency)
    click_max_attempts: int = 5
    click_retry_base_delay: float = 0.01  # Seconds, doubled per attempt
    click_retry_max_delay: float = 0.5

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
