from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    environment: str = "dev"
    port: int = 3000

    # The legacy deployment spelled the variable EXCHNAGE_API_URL.
    exchange_api_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("EXCHANGE_API_URL", "EXCHNAGE_API_URL"),
    )
    exchange_api_timeout_s: float = 10.0

    redis_url: str | None = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_connect_timeout_s: float = 5.0
    redis_socket_timeout_s: float = 5.0
    redis_connect_retries: int = 10
    redis_retry_step_s: float = 1.0

    queue_name: str = "currency-exchange-queue"
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def redis_dsn(self) -> str:
        if self.redis_url:
            return self.redis_url
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/0"


settings = Settings()
