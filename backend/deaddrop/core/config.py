import os
from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Explicitly load .env file before defining Settings
env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
load_dotenv(env_path)

MiB = 1024 * 1024


class Settings(BaseSettings):
    PROJECT_NAME: str = "Dead Drop"
    API_V1_STR: str = "/api/v1"
    BASE_URL: str = "http://localhost:8899"
    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8899

    # Database
    DATABASE_URL: str = "sqlite:///./deaddrop.db"

    # Storage: "local" keeps blobs under UPLOAD_DIR, "s3" talks to an S3 compatible bucket
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: str = os.path.join(os.getcwd(), "upload_storage")
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_BUCKET: str = ""
    S3_SECURE: bool = True

    # Shared secret for the scheduled cleanup trigger. Empty disables the check.
    CRON_SECRET: Optional[str] = None

    # Admission control
    RATE_LIMIT_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_WINDOW_MS: int = 60 * 1000
    RATE_LIMIT_MAX_REQUESTS: int = 60

    # Uploads
    MAX_FILE_SIZE: int = 100 * MiB
    MAX_UPLOAD_SIZE: int = 1024 * MiB
    DEFAULT_EXPIRY_MINUTES: int = 60
    MAX_EXPIRY_MINUTES: int = 60 * 24 * 7
    DEFAULT_MAX_DOWNLOADS: int = 1
    UPLOAD_SESSION_TTL_MINUTES: int = 15

    # Downloads
    DOWNLOAD_TOKEN_TTL_SECONDS: int = 300

    # Shares
    MAX_SHARE_TEXT_SIZE: int = 1 * MiB
    MAX_SHARE_IMAGE_BYTES: int = 5 * MiB

    # Sweep
    SWEEP_BATCH_SIZE: int = 100

    class Config:
        case_sensitive = True


settings = Settings()
