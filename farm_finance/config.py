"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="FARM_FINANCE_", extra="ignore"
    )

    # Database (savegame store)
    database_url: str = "sqlite:///./farm_finance.db"

    # Authority service (used by observers to proxy commands)
    authority_api_base: str = "http://localhost:8000"

    # Service
    service_name: str = "farm-finance"
    log_level: str = "INFO"
    role: str = "authority"  # "authority" | "observer"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    state_fetch_max_retries: int = 3
    state_fetch_backoff_base: float = 0.5  # Exponential backoff base in seconds

    # Credit system
    credit_system_enabled: bool = True
    starting_credit_score: int = 650  # Fixed score while the credit system is disabled
    enforce_credit_requirements: bool = True
    cash_loans_enabled: bool = True

    # History windows
    payment_history_limit: int = 100
    credit_event_limit: int = 100
    saved_payment_window: int = 24
    saved_event_window: int = 50

    @property
    def is_authority(self) -> bool:
        return self.role == "authority"


settings = Settings()
