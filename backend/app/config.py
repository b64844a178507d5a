from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "PolicyPortal"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    APP_BASE_URL: str = "http://localhost:5000"

    # Sessions & passwords
    SESSION_TTL_HOURS: int = 24 * 7
    BCRYPT_ROUNDS: int = 10

    # Email acknowledgment flow
    ACK_CODE_TTL_MINUTES: int = 15

    # Super admin
    IMPERSONATION_TIMEOUT_HOURS: int = 8
    SUPERADMIN_MAX_FAILED_LOGINS: int = 5
    SUPERADMIN_LOCKOUT_WINDOW_MINUTES: int = 15
    SUPERADMIN_LOCKOUT_MINUTES: int = 30

    # Email delivery
    EMAIL_DEMO_MODE: bool = True
    EMAIL_FROM: str = "PolicyPortal <noreply@policyportal.local>"
    RESEND_API_KEY: str = ""
    RESEND_ENDPOINT: str = "https://api.resend.com"

    # AI provider
    AI_PROVIDER: str = "none"
    AI_ENDPOINT: str = "https://api.openai.com"
    AI_API_KEY: str = ""
    AI_MODEL: str = "gpt-4o"
    AI_MAX_TOKENS: int = 4096
    AI_TIMEOUT_SECONDS: int = 120

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


settings = Settings()
