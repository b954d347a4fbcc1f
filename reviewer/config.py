from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    LLM_PROVIDER: str = "ollama"

    OLLAMA_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.2:1b"

    LLAMA_SERVER_URL: str = "http://localhost:8080"
    LLAMA_SERVER_MODEL: str = "qwen2.5-coder:3b"

    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    GROK_API_KEY: str = ""
    GROK_MODEL: str = "grok-beta"
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-3-haiku-20240307"
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # milliseconds
    REQUEST_TIMEOUT: int = 120000
    # seconds
    HEALTH_TIMEOUT: float = 5.0

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    UPLOAD_DIR: str = "uploads"
    REVIEWS_DIR: str = "uploads"
    SAVE_REVIEWS: bool = True

    MAX_UPLOAD_BYTES: int = 2 * 1024 * 1024
    MAX_CONTENT_CHARS: int = 10000
    TRUNCATE_AT: int = 5000

    MAX_TOKENS: int = 800
    TEMPERATURE: float = 0.3
    WARMUP_ON_STARTUP: bool = False

    RATE_LIMIT: str = "20/minute"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5500",
        "http://127.0.0.1:5500",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def timeout_seconds(self) -> float:
        return self.REQUEST_TIMEOUT / 1000

@lru_cache
def get_settings():
    return Settings()
