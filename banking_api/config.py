"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List


class BankingConfig(BaseSettings):
    """Banking API configuration"""

    # Database configuration
    database_url: str = "sqlite:///banking.db"  # or memory:// for tests

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    cors_allow_origins: List[str] = ["http://localhost:4200"]

    # Security configuration
    jwt_secret: str = "change-me-in-production-use-at-least-32-bytes"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Transfer engine
    amount_decimal_places: int = 2
    lock_timeout_seconds: float = 5.0
    transfer_max_retries: int = 3
    transfer_retry_backoff_seconds: float = 0.01

    # Startup data
    seed_demo_data: bool = True
    seed_opening_balance: str = "1000.00"

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "BANKING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankingConfig()


def get_config() -> BankingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankingConfig:
    """Reload configuration from environment"""
    global config
    config = BankingConfig()
    return config
