from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    log_level: str = "INFO"

    # Infra
    redis_url: str = "redis://redis:6379/0"
    redis_timeout_seconds: float = 3.0
    namespace: str = "SMS"

    # Verification code policy (seconds / counts, 0 disables a limit)
    code_validity_seconds: int = 300
    request_interval_seconds: int = 60
    unused_code_ceiling: int = 5
    failure_ceiling: int = 10
    # failure-count threshold -> ban seconds, e.g. TEMPORARY_BANS='{"3": 40}'
    temporary_bans: dict[int, int] = Field(default_factory=lambda: {3: 40, 5: 120})

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
