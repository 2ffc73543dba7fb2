import os
import socket
from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal


def _default_consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    MAX_BODY_SIZE: int = 65536
    LOG_JSON: bool = True
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # Backend adapter selection: "memory" or "redis"
    BUS_ADAPTER: Literal["memory", "redis"] = "memory"
    REDIS_URL: AnyUrl | None = None
    # Channel names
    REQUEST_CHANNEL: str = "quote-requests"
    RESULT_CHANNEL: str = "quotes"
    # Redis Streams consumer settings
    STREAM_PREFIX: str = "quotebridge"
    CONSUMER_GROUP: str = "quotebridge"
    CONSUMER_NAME: str = Field(default_factory=_default_consumer_name)
    STREAM_MAXLEN: int = 10000
    # Run the calculator inside the HTTP process
    EMBEDDED_CALCULATOR: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
