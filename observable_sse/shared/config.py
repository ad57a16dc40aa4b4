"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every timing the client and the demo server rely on lives here: the reconnect
poll interval, the default communication type, how often the demo streams push
data. Per-connection options (`EventSourceConfig`) take their defaults from
these values, so an `.env` file can retune the whole system in one place.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PORT: int = 3000
    HOST: str = "0.0.0.0"
    LOG_LEVEL: str = "INFO"

    # EventSource client defaults
    SSE_DEFAULT_COMMUNICATION_TYPE: str = "both"
    SSE_AUTO_RECONNECT: bool = True
    SSE_AUTO_RECONNECT_INTERVAL_MS: int = 5000
    SSE_CONNECT_TIMEOUT_S: float = 10.0

    # Demo server streams
    SSE_EVENT_INTERVAL_S: float = 5.0
    SSE_TEXT_INTERVAL_S: float = 1.0
    SSE_PRODUCER_INTERVAL_S: float = 3.0
    SSE_FIXTURE_INTERVAL_S: float = 10.0
    SSE_QUEUE_MAXSIZE: int = 100
    SSE_PING_INTERVAL_S: int = 15

    class Config:
        env_file = ".env"
        # Tolerate missing env vars to allow easy out-of-the-box execution
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
