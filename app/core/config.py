"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with defaults and env var overrides."""

    # Database (snapshot storage only; the workflow itself is in-memory)
    database_url: str = "sqlite:///./codrecon.db"

    # App
    app_env: str = "development"
    app_port: int = 8000
    log_level: str = "INFO"

    # Agent deduction policy (amounts in order currency)
    deduction_threshold: float = 50.0
    deduction_percentage: float = 100.0
    max_daily_deduction: float = 500.0
    escalation_threshold: float = 200.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
