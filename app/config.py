from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ─── Application ───────────────────────────────────────────────────────────
    APP_NAME: str = "Partii Auth Token Service"
    APP_ENV:  str = "development"
    APP_DEBUG: bool = True
    APP_HOST:  str = "0.0.0.0"
    APP_PORT:  int = 8000

    # ─── Database ──────────────────────────────────────────────────────────────
    DATABASE_URL:          str  = "sqlite:///./partii.db"
    DATABASE_POOL_SIZE:    int  = 10
    DATABASE_MAX_OVERFLOW: int  = 20
    DATABASE_POOL_TIMEOUT: int  = 30
    DATABASE_ECHO:         bool = False

    # ─── JWT ───────────────────────────────────────────────────────────────────
    JWT_ISSUER:                    str = "http://localhost:8000"
    JWT_ALGORITHM:                 str = "RS256"
    ACCESS_TOKEN_EXPIRE_MINUTES:   int = 30
    REFRESH_TOKEN_EXPIRE_DAYS:     int = 7

    # ─── Signing Keys ──────────────────────────────────────────────────────────
    # PEM-encoded pair; both must be set to skip key generation at startup
    RSA_PUBLIC_KEY:                str | None = None
    RSA_PRIVATE_KEY:               str | None = None
    RSA_KEY_SIZE:                  int = 2048
    KEY_ROTATION_INTERVAL_SECONDS: int = 3600
    KEY_ROTATION_ENABLED:          bool = True

    # ─── CORS ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    def get_cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}


settings = Settings()
