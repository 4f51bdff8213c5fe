from typing import List, Optional
from pydantic_settings import BaseSettings

from shared_uploads.content_types import DEFAULT_ALLOWED_CONTENT_TYPES


class Settings(BaseSettings):
    PROJECT_NAME: str = "Music Upload API"
    JWT_SECRET_KEY: str = "JWT_SECRET_KEY"
    JWT_ALGORITHM: str = "HS256"
    CORS_ORIGINS: List[str] = ["http://localhost:8081", "*"]

    # S3 Config
    S3_ENDPOINT: Optional[str] = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY: str = "S3_ACCESS_KEY"
    S3_SECRET_KEY: str = "S3_SECRET_KEY"
    S3_BUCKET_NAME: str = "disco-music-bucket"
    # Defaults to https://{bucket}.s3.{region}.amazonaws.com
    S3_PUBLIC_BASE_URL: Optional[str] = None

    # Upload policy
    MAX_FILE_SIZE_BYTES: int = 100 * 1024 * 1024
    GRANT_LIFETIME_SECONDS: int = 900
    ALLOWED_CONTENT_TYPES: List[str] = sorted(DEFAULT_ALLOWED_CONTENT_TYPES)
    ORPHAN_GRACE_SECONDS: int = 24 * 3600

    # Message Queue, events are skipped when unset
    RABBITMQ_URL: Optional[str] = None
    EVENTS_EXCHANGE: str = "music_events"

    # Database
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "disco_music_db"

    class Config:
        env_file = ".env"


settings = Settings()
