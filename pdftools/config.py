"""Application configuration via environment variables."""

import os
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage layout (uploads/, outputs/, index/, data/ live under this)
    storage_dir: str = "var"

    # HTTP
    port: int = 4000
    public_base_url: str = ""
    cors_origins: str = "*"

    # Compression (Ghostscript)
    ghostscript_bin: str = "gs"
    ghostscript_timeout_seconds: float = 180
    max_upload_mb: int = 50

    # Merge
    merge_max_files: int = 50
    merge_timeout_seconds: float = 120

    # Job lifecycle
    file_ttl_minutes: int = 15
    merge_ttl_minutes: int = 60
    sweep_interval_seconds: float = 60

    # Email sharing
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_strict_tls: bool = False
    mail_from: str = "noreply@localhost"
    site_name: str = "PDF Tools"
    email_cooldown_seconds: float = 30

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "case_sensitive": False,
    }

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def upload_dir(self) -> str:
        return os.path.join(self.storage_dir, "uploads")

    @property
    def output_dir(self) -> str:
        return os.path.join(self.storage_dir, "outputs")

    @property
    def index_dir(self) -> str:
        return os.path.join(self.storage_dir, "index")

    @property
    def data_dir(self) -> str:
        return os.path.join(self.storage_dir, "data")

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host)


settings = Settings()
