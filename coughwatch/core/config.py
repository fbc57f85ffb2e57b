from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "CoughWatch TB Monitor"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/coughwatch.db"

    upload_dir: str = "./data/uploads"
    max_upload_bytes: int = 5 * 1024 * 1024

    device_api_key: Optional[str] = None

    classifier_url: str = "http://localhost:8001/predict"
    classifier_timeout_seconds: float = 30.0

    offline_threshold_seconds: int = 180
    offline_sweep_interval_seconds: int = 60

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
