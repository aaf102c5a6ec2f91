import json

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Resolve backend root (…/backend/) regardless of current working directory
BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    # Đọc đúng backend/.env và bỏ qua key thừa
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Gia Sư AI"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    # Có thể set 1 origin hoặc nhiều origin, ngăn cách bằng dấu phẩy
    # Ví dụ: "http://localhost:3000,https://giasu.example.com"
    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Supabase Postgres connection string (Project Settings -> Database -> URI)
    DATABASE_URL: str

    # ===== Async Queue (RQ/Redis) =====
    ASYNC_QUEUE_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    RQ_DEFAULT_TIMEOUT_SEC: int = 600

    # ===== Auth =====
    JWT_SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    # Cookie mirrored for client-side UI gating only (never read server-side)
    ROLE_COOKIE_NAME: str = "user-role"
    ROLE_COOKIE_MAX_AGE_SEC: int = 86400

    # Optional admin created on startup (idempotent)
    BOOTSTRAP_ADMIN_EMAIL: str | None = None
    BOOTSTRAP_ADMIN_PASSWORD: str | None = None

    # ===== LLM settings =====
    # OPENAI_API_KEY:
    # - Nếu dùng OpenAI API: set key thật.
    # - Nếu dùng LLM local (Ollama/LM Studio): có thể để trống và chỉ set OPENAI_BASE_URL.
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    # JSON object string, e.g. OPENAI_EXTRA_HEADERS_JSON={"X-Foo":"bar"}
    OPENAI_EXTRA_HEADERS_JSON: str | None = None
    OPENAI_CHAT_MODEL: str = "gpt-4o-mini"
    OPENAI_HTTP_TIMEOUT_SEC: int = 120
    OPENAI_MAX_RETRIES: int = 1
    OPENAI_STATUS_TEST_TIMEOUT_SEC: int = 12

    # ===== Token quota =====
    DEFAULT_TOKEN_QUOTA: int = 10000
    TEACHER_TOKEN_QUOTA: int = 50000
    # "Ngày" tính theo giờ Việt Nam
    QUOTA_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    DAILY_EXERCISE_LIMIT: int = 500
    DEFAULT_UNLOCK_QUOTA: int = 10
    UNLOCK_CODE_SECRET: str = "default-secret-key-change-in-production"

    # ===== Chat =====
    CHAT_HISTORY_LIMIT: int = 6
    CHAT_SYSTEM_PROMPT_MAX_CHARS: int = 1200
    CHAT_MAX_TOKENS: int = 1200

    # ===== Rate limits (fixed window) =====
    RATE_LIMIT_CHAT_PER_MIN: int = 30
    RATE_LIMIT_API_PER_MIN: int = 60
    RATE_LIMIT_AUTH_ATTEMPTS: int = 5
    RATE_LIMIT_AUTH_WINDOW_SEC: int = 900
    RATE_LIMIT_ADMIN_PER_MIN: int = 10

    # ===== Admin =====
    ADMIN_ENABLE_LOGGING: bool = True

    # ===== Chuyển khoản ngân hàng (VietQR) =====
    BANK_NAME: str = "LP Bank"
    BANK_BIN: str = "970449"
    BANK_ACCOUNT_NUMBER: str = "0762236886"
    BANK_ACCOUNT_NAME: str = "CAN HUU HUNG"
    VIETQR_TEMPLATE: str = "compact"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None or v == "":
            return []

        if isinstance(v, list):
            return v

        # Nếu là string: ưu tiên parse JSON list, fallback split by comma
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                try:
                    return json.loads(s)
                except ValueError:
                    pass
            return [item.strip() for item in s.split(",") if item.strip()]

        return v


settings = Settings()
