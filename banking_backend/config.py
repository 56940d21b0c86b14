"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings


class BankingConfig(BaseSettings):
    """Banking backend configuration"""

    # Database configuration
    database_url: str = "sqlite:///:memory:"  # or memory:// for the in-process store

    # IBAN / card generation
    country_code: str = "UA"
    bank_code: str = "123456"
    iban_generation_attempts: int = 5  # Retries on IBAN collision
    card_expiration_years: int = 3

    # Pagination defaults
    default_per_page: int = 20
    max_per_page: int = 100

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

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
