from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    database_url: str = Field(..., alias="DATABASE_URL")
    auth_jwks_url: str = Field(..., alias="AUTH_JWKS_URL")
    token_issuer: str = Field("authentication-svc", alias="TOKEN_ISSUER")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Event schedule wall-clock times are interpreted in this zone
    event_timezone: str = Field("Asia/Kolkata", alias="EVENT_TIMEZONE")
    attendance_window_margin_minutes: int = Field(30, alias="ATTENDANCE_WINDOW_MARGIN_MINUTES")
    attendance_token_ttl_minutes: int = Field(10, alias="ATTENDANCE_TOKEN_TTL_MINUTES")
    attendance_points: int = Field(10, alias="ATTENDANCE_POINTS")

    storage_timeout_seconds: float = Field(5.0, alias="STORAGE_TIMEOUT_SECONDS")

    # Redis
    redis_url: str = Field("redis://127.0.0.1:6379/0", alias="REDIS_URL")
    rl_enabled: bool = Field(default=True, alias="RL_ENABLED")
    rl_window_seconds: int = Field(default=60, alias="RL_WINDOW_SECONDS")
    rl_max_reqs: int = Field(default=60, alias="RL_MAX_REQS")

    # NATS
    nats_enabled: bool = Field(default=True, alias="NATS_ENABLED")
    nats_urls: str = Field("nats://127.0.0.1:4222", alias="NATS_URLS")
    nats_subject_attendance: str = Field("attendance.recorded", alias="NATS_SUBJECT_ATTENDANCE")

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False

_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
