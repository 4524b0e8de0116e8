from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    app_name: str = "Power Dialer"
    database_url: str = Field("sqlite:///./powerdialer.db", alias="DATABASE_URL")
    dialer_token: str = Field("change-me", alias="DIALER_TOKEN")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    telnyx_api_key: str | None = Field(None, alias="TELNYX_API_KEY")
    telnyx_api_base: str = Field("https://api.telnyx.com/v2", alias="TELNYX_API_BASE")
    telnyx_connection_id: str | None = Field(None, alias="TELNYX_CONNECTION_ID")
    telnyx_rtc_login: str | None = Field(None, alias="TELNYX_RTC_LOGIN")
    telnyx_rtc_sip_domain: str = Field("sip.telnyx.com", alias="TELNYX_RTC_SIP_DOMAIN")
    webhook_base_url: str = Field("http://localhost:8000", alias="WEBHOOK_BASE_URL")
    gateway_timeout_seconds: float = Field(10.0, alias="GATEWAY_TIMEOUT_SECONDS")

    default_caller_ids: list[str] = Field(default_factory=list, alias="DEFAULT_CALLER_IDS")
    default_max_lines: int = Field(3, alias="DEFAULT_MAX_LINES")
    max_allowed_lines: int = Field(10, alias="MAX_ALLOWED_LINES")
    call_timeout_seconds: int = Field(30, alias="CALL_TIMEOUT_SECONDS")
    call_time_limit_seconds: int = Field(600, alias="CALL_TIME_LIMIT_SECONDS")  # provider-side hard cutoff
    single_active_run: bool = Field(True, alias="SINGLE_ACTIVE_RUN")

    pending_call_max_age_seconds: int = Field(600, alias="PENDING_CALL_MAX_AGE_SECONDS")
    pending_call_sweep_seconds: int = Field(300, alias="PENDING_CALL_SWEEP_SECONDS")
    amd_fallback_seconds: float = Field(10.0, alias="AMD_FALLBACK_SECONDS")
    amd_fallback_action: Literal["transfer", "hangup"] = Field("transfer", alias="AMD_FALLBACK_ACTION")
    agent_hold_audio_url: str | None = Field(None, alias="AGENT_HOLD_AUDIO_URL")
    default_from_email: str | None = Field(None, alias="DEFAULT_FROM_EMAIL")

    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        alias="CORS_ORIGINS",
    )

    @property
    def agent_sip_uri(self) -> str | None:
        if not self.telnyx_rtc_login:
            return None
        return f"sip:{self.telnyx_rtc_login}@{self.telnyx_rtc_sip_domain}"

    @property
    def call_webhook_url(self) -> str:
        return f"{self.webhook_base_url.rstrip('/')}/api/dialer/webhooks/calls"

    @property
    def manual_call_webhook_url(self) -> str:
        return f"{self.webhook_base_url.rstrip('/')}/api/calls/manual-amd-webhook"


# Power dialer favours speed: a live person will not wait through a long greeting analysis.
POWER_DIALER_AMD_CONFIG = {
    "total_analysis_time_millis": 2500,
    "after_greeting_silence_millis": 800,
    "between_words_silence_millis": 400,
    "greeting_duration_millis": 2000,
    "initial_silence_millis": 1500,
    "maximum_number_of_words": 5,
    "silence_threshold": 256,
    "greeting_total_analysis_time_millis": 2500,
}

# Manual multi-line calls favour accuracy over speed to cut false machine results.
MANUAL_CALL_AMD_CONFIG = {
    "total_analysis_time_millis": 5000,
    "after_greeting_silence_millis": 1200,
    "between_words_silence_millis": 600,
    "greeting_duration_millis": 4000,
    "initial_silence_millis": 2500,
    "maximum_number_of_words": 8,
    "silence_threshold": 256,
    "greeting_total_analysis_time_millis": 5000,
}


def get_settings() -> Settings:
    return Settings()
