from __future__ import annotations

import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime configuration resolved from environment variables."""

    def __init__(self) -> None:
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./procurement.db")
        self.app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Supplier response links
        self.response_token_ttl_days: int = int(os.getenv("RESPONSE_TOKEN_TTL_DAYS", "7"))
        self.max_alternative_suppliers: int = int(os.getenv("MAX_ALTERNATIVE_SUPPLIERS", "5"))
        self.auto_create_material_on_accept: bool = _env_flag("AUTO_CREATE_MATERIAL_ON_ACCEPT", "false")

        # Pending-response reminders
        self.reminder_scheduler_enabled: bool = _env_flag("REMINDER_SCHEDULER_ENABLED", "true")
        self.reminder_interval_minutes: int = int(os.getenv("REMINDER_INTERVAL_MINUTES", "60"))
        self.reminder_after_hours: int = int(os.getenv("REMINDER_AFTER_HOURS", "48"))
        self.reminder_throttle_hours: int = int(os.getenv("REMINDER_THROTTLE_HOURS", "24"))

        # SMS gateway; empty URL means messages are only logged
        self.sms_api_url: str = os.getenv("SMS_API_URL", "")
        self.sms_api_key: str = os.getenv("SMS_API_KEY", "")
        self.sms_sender_id: str = os.getenv("SMS_SENDER_ID", "PROCURE")
        self.sms_default_country_code: str = os.getenv("SMS_DEFAULT_COUNTRY_CODE", "+254")
        self.sms_timeout_seconds: float = float(os.getenv("SMS_TIMEOUT_SECONDS", "10"))

    def response_link(self, token: str) -> str:
        return f"{self.app_base_url}/supplier-response/{token}"


settings = Settings()
