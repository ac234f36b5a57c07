from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "ProjectDrop"
    secret_key: str
    access_token_expire_minutes: int = 60
    share_token_expire_minutes: int = 15
    database_url: str

    upload_dir: str = "./uploads"
    email_log_dir: str = "./logs/emails"

    max_upload_size_bytes: int = 52428800
    allowed_mime_types: List[str] = [
        "image/jpeg", "image/png", "image/gif", "image/webp",
        "application/pdf", "text/plain", "text/csv",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/zip", "application/x-rar-compressed",
        "video/mp4", "video/avi", "video/mov",
        "audio/mpeg", "audio/wav", "audio/ogg",
    ]

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()
