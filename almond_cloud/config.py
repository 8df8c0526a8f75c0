"""
Almond Cloud Thingpedia Configuration

12-factor design:
- All config loaded from environment variables (or a local .env file)
- Shared by the Thingpedia RPC service and the training job CLI
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Thingpedia Cloud"
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # Database (if not set, a local SQLite file is used)
    DATABASE_URL: Optional[str] = None

    # Public URLs
    SERVER_ORIGIN: str = "http://127.0.0.1:8080"
    THINGPEDIA_URL: str = "/thingpedia"
    CDN_HOST: str = "/download"

    # Device that answers for the generic "messaging" kind
    MESSAGING_DEVICE: str = "org.thingpedia.builtin.matrix"

    # Object storage (S3/MinIO/R2)
    S3_ENDPOINT: Optional[str] = None  # None = AWS default endpoint
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    S3_REGION: str = "us-east-1"
    CODE_STORAGE_BUCKET: Optional[str] = None  # None = serve device packages from CDN_HOST
    DOWNLOAD_URL_EXPIRES: int = 30  # seconds

    # Location linking (Nominatim-compatible API)
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search/"
    LOCATION_TIMEOUT: float = 10.0

    # Training
    TRAINING_TASK_BACKEND: str = "local"  # "local" or "kubernetes"
    TRAINING_STARTUP_DELAY: int = 60  # seconds, kubernetes backend only
    TENSORBOARD_DIR: Optional[str] = None
    GENIE_COMMAND: str = "genie"
    WORKSPACE_DIR: str = "/tmp/training"  # Local staging area for s3:// job directories

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.DATABASE_URL:
            db_path = Path(self.WORKSPACE_DIR).parent / "thingpedia.db"
            self.DATABASE_URL = f"sqlite:///{db_path}"


settings = Settings()
