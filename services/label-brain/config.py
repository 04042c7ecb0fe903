"""Environment-based configuration for the label brain (extraction orchestrator)."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Label brain settings, loaded from environment variables."""

    # Server
    PORT: int = 8092
    SERVICE_VERSION: str = "1.1"

    # OCR provider (Google Cloud Vision REST, empty key = OCR unavailable)
    VISION_API_URL: str = "https://vision.googleapis.com/v1"
    VISION_API_KEY: str = ""
    OCR_LANGUAGE_HINTS: list[str] = ["it", "fr", "en", "de", "es"]
    OCR_TIMEOUT_SECONDS: int = 30
    OCR_CONNECT_TIMEOUT: int = 10
    OCR_RETRY_ATTEMPTS: int = 3
    OCR_RETRY_DELAY: float = 1.0
    OCR_RETRY_BACKOFF: float = 2.0

    # Language model provider (Anthropic Messages REST)
    LLM_API_URL: str = "https://api.anthropic.com"
    LLM_API_KEY: str = ""
    LLM_API_VERSION: str = "2023-06-01"
    LLM_MODEL: str = "claude-sonnet-4-20250514"
    LLM_MAX_TOKENS: int = 1024
    LLM_TIMEOUT_SECONDS: int = 45
    LLM_CONNECT_TIMEOUT: int = 10
    LLM_RETRY_ATTEMPTS: int = 2
    LLM_RETRY_DELAY: float = 1.0
    LLM_RETRY_BACKOFF: float = 2.0

    # Stores ("firestore" or "memory"; memory is for local runs, lost on restart)
    STORE_BACKEND: str = "firestore"
    FIRESTORE_API_URL: str = "https://firestore.googleapis.com/v1"
    FIRESTORE_PROJECT_ID: str = ""
    FIRESTORE_DATABASE: str = "(default)"
    FIRESTORE_ACCESS_TOKEN: str = ""  # empty against the emulator
    STORE_TIMEOUT_SECONDS: int = 10
    STORE_CONNECT_TIMEOUT: int = 5
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_DELAY: float = 0.5
    STORE_RETRY_BACKOFF: float = 2.0

    # Pipeline
    REQUEST_TIMEOUT_SECONDS: float = 60.0  # OCR and interpretation
    MATCH_TIMEOUT_SECONDS: float = 10.0  # after persistence, a timeout only drops suggestions
    MIN_OCR_TEXT_LENGTH: int = 5
    MATCH_POOL_LIMIT: int = 100  # linear scan bound, not a correctness bound
    MAX_SUGGESTED_MATCHES: int = 3

    model_config = {"env_prefix": "", "case_sensitive": True}


settings = Settings()
