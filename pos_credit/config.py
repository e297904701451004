"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Engines receive the config object explicitly; the module-level instance is only
the default for entry points.
"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class PosCreditConfig(BaseSettings):
    """POS credit ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="POSCREDIT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///pos_credit.db"

    # Store configuration
    currency: str = "USD"
    store_name: str = "Our Store"
    store_phone: str = ""

    # Reminder scheduling
    reminder_lead_days: int = 3          # before_due reminder this many days ahead
    escalation_after_days: int = 14      # escalate once more than this many days overdue
    max_delivery_attempts: int = 5

    # Risk classification
    risk_low_threshold: Decimal = Decimal("0.85")     # on-time rate >= this is low risk
    risk_medium_threshold: Decimal = Decimal("0.60")  # on-time rate >= this is medium risk
    risk_outstanding_multiple: Decimal = Decimal("3")  # outstanding > multiple * avg loan escalates a tier

    # Notification configuration
    notification_channel: str = "log"  # whatsapp, webhook or log
    whatsapp_api_url: str = "https://graph.facebook.com/v19.0"
    whatsapp_api_token: str = ""
    whatsapp_phone_number_id: str = ""
    webhook_url: str = ""
    notification_timeout: float = 10.0
    send_transaction_messages: bool = True  # loan agreement and payment receipt messages

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    # Feature flags
    enable_audit_logging: bool = True


config = PosCreditConfig()


def get_config() -> PosCreditConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PosCreditConfig:
    """Reload configuration from environment"""
    global config
    config = PosCreditConfig()
    return config
