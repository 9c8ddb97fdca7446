"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./process_intake.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Chat / analysis backend
    # "mock" selects the deterministic slot-filling backend (no network)
    AI_PROVIDER: str = "mock"  # mock | openai | gemini
    AI_API_KEY: str = ""
    AI_MODEL: str = ""  # Empty uses the provider default
    AI_TIMEOUT_SECONDS: float = 60.0
    AI_MAX_CONCURRENCY: int = 4
    ANALYSIS_MAX_ATTACHMENTS: int = 5
    ANALYSIS_MAX_CHARS_PER_ATTACHMENT: int = 20000

    # Attachment storage
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_PATH: str = "/tmp/process-intake-attachments"
    S3_BUCKET: str = "process-intake-attachments"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""  # S3-compatible endpoints (MinIO, GCS XML API)
    S3_URL_STYLE: str = ""  # path | virtual
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    STORAGE_TIMEOUT_SECONDS: float = 120.0
    STORAGE_MAX_CONCURRENCY: int = 8
    MAX_ATTACHMENT_SIZE_BYTES: int = 200 * 1024 * 1024  # 200 MB

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def uses_mock_ai(self) -> bool:
        return self.AI_PROVIDER.strip().lower() in {"", "mock"}


settings = Settings()
