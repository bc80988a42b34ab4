from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # DB
    DATABASE_URL: str
    DB_AUTO_CREATE: bool = True

    # Identity provider
    IDENTITY_ISSUER: str | None = None
    IDENTITY_AUDIENCE: str | None = None
    IDENTITY_JWT_SECRET: str | None = None
    IDENTITY_JWT_ALG: str = "HS256"
    IDENTITY_JWKS_URL: str | None = None
    IDENTITY_API_URL: str | None = None
    IDENTITY_API_KEY: str | None = None
    IDENTITY_TIMEOUT_SECONDS: int = 10

    # Storage
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: str = "./uploads"
    STORAGE_BUCKET: str = "resources"
    MAX_UPLOAD_MB: int = 50
    OSS_ENDPOINT: str | None = None
    OSS_BUCKET: str | None = None
    OSS_ACCESS_KEY: str | None = None
    OSS_SECRET: str | None = None

    # Signed download
    SIGNED_URL_SECRET: str
    SIGNED_URL_EXPIRES_SECONDS: int = 300

    # Logging
    LOG_DIR: str = "./logs"
    LOG_LEVEL: str = "INFO"
    LOG_RETENTION_DAYS: int = 14
    LOG_TO_FILE: bool = True

    # App
    APP_NAME: str = "StudyStack API"
    ENVIRONMENT: str = "development"
    ALLOW_ORIGINS: str = "http://localhost:5173"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


def get_settings() -> Settings:
    return Settings()
