from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "LoopSync Billing"
    api_version: str = "1.0.0"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "loopsync"
    db_use_nullpool: bool = False
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis (distributed locks)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @property
    def redis_connection_url(self) -> str:
        """Construct Redis URL from components."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # OpenTelemetry
    otel_service_name: str = "loopsync-billing"
    otel_service_version: str = "1.0.0"

    # Axiom (traces/logs are only exported when a token is configured)
    axiom_token: Optional[str] = None
    axiom_dataset: str = "loopsync-billing"

    # Razorpay
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    razorpay_timeout_seconds: float = 15.0
    razorpay_subscription_total_count: int = 12

    # Billing
    default_currency: str = "INR"
    trial_plan_code: str = "PRO"
    trial_days: int = 7
    trial_micro_charge: int = 200  # paise
    activation_lock_ttl_seconds: int = 30
    activation_lock_acquire_timeout_seconds: float = 5.0

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:5173",
            ]
        return [
            "https://loopsync.in",
            "https://app.loopsync.in",
        ]


settings = Settings()
