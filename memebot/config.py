from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    REDIS_URL: str | None = None
    CACHE_KEY_PREFIX: str = "memebot"

    # Каталог шаблонов
    CATALOG_URL: str = "https://api.imgflip.com/get_memes"
    CATALOG_TTL_SECONDS: int = 24 * 60 * 60
    # stale catalog kept for fallback after freshness expires
    CATALOG_RETENTION_SECONDS: int = 7 * 24 * 60 * 60

    # Кэши результатов и сессий
    RESULT_TTL_SECONDS: int = 12 * 60 * 60
    TEMPLATE_IMAGE_TTL_SECONDS: int = 7 * 24 * 60 * 60
    SESSION_TTL_SECONDS: int = 60 * 60
    SUGGESTIONS_TTL_SECONDS: int = 60 * 60

    RESOLVE_OFFLOAD_THRESHOLD: int = Field(default=2000, ge=0)

    # Логи
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Прокси (если нужно)
    HTTP_PROXY_URL: str | None = None

    # HTTP клиенты
    HTTP_TIMEOUT_CONNECT: float = 3.0
    HTTP_TIMEOUT_READ: float = 15.0
    HTTP_TIMEOUT_WRITE: float = 15.0
    HTTP_TIMEOUT_TOTAL: float = 30.0
    HTTP_RETRY_ATTEMPTS: int = 2
    HTTP_RETRY_BACKOFF_INITIAL: float = 0.5
    HTTP_RETRY_BACKOFF_MAX: float = 8.0
    HTTP_RETRY_STATUS_CODES: tuple[int, ...] = (500, 502, 503, 504)
    HTTP_CIRCUIT_BREAKER_MAX_FAILURES: int = 5
    HTTP_CIRCUIT_BREAKER_BASE_DELAY: float = 1.0
    HTTP_CIRCUIT_BREAKER_MAX_DELAY: float = 30.0

    # OpenAI-совместимый генератор подсказок
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE: float = Field(default=0.8, ge=0.0, le=2.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator(
        "CATALOG_TTL_SECONDS",
        "CATALOG_RETENTION_SECONDS",
        "RESULT_TTL_SECONDS",
        "TEMPLATE_IMAGE_TTL_SECONDS",
        "SESSION_TTL_SECONDS",
        "SUGGESTIONS_TTL_SECONDS",
    )
    @classmethod
    def _positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("TTL must be positive")
        return v

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def _blank_redis_url(cls, v):
        # пустая строка в .env означает «без Redis»
        if v in (None, ""):
            return None
        return v


settings = Settings()
