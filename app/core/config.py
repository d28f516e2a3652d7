from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration, overridable through environment variables"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./app/db/settle_service.db"
    secret_key: str = "your_secret_key"
    jwt_algorithm: str = "HS256"
    log_level: str = "INFO"

    # Smallest currency unit; all split amounts are quantized to it
    currency_quantum: Decimal = Decimal("0.01")
    # Allowed deviation of a percentage split's total from 100
    percentage_tolerance: Decimal = Decimal("0.01")


settings = Settings()
