import os
from pydantic_settings import BaseSettings



class Settings(BaseSettings):
    database_url: str = os.getenv("GROUPWATCH_DATABASE_URL", "sqlite:///./groupwatch.db")

    # Base URL of the progress service used by HttpProgressStore
    api_base: str = os.getenv("GROUPWATCH_API_BASE", "http://localhost:8000")
    http_timeout_seconds: float = float(os.getenv("GROUPWATCH_HTTP_TIMEOUT_SECONDS", "10"))

    log_level: str = os.getenv("GROUPWATCH_LOG_LEVEL", "INFO")

    # Comma separated; "*" allows every origin
    cors_origins: str = os.getenv("GROUPWATCH_CORS_ORIGINS", "*")

    # Spoiler redaction on GET watchlist when the caller does not ask explicitly
    redact_spoilers_default: bool = os.getenv("GROUPWATCH_REDACT_SPOILERS", "false").lower() == "true"

settings = Settings()
