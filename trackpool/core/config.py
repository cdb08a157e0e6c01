from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # these must be set in the environment
    database_url: str
    jwt_secret: str

    # Optional Settings with default values
    access_token_expire_minutes: int = 60
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # tracking id pool
    low_quota_threshold: int = 5
    max_ingest_batch_size: int = 10000
    max_upload_size_mb: int = 5

    app_name: str = "Trackpool API Service"
    log_file: str = "app.log"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

settings = Settings()
