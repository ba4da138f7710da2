from dataclasses import dataclass, field
from typing import List, Optional

from app.utils.env_helper import (
    env_bool,
    env_int,
    env_list,
    env_none_or_float,
    env_none_or_str,
)


@dataclass
class Settings:
    database_url: str = "sqlite:///./chat.db"
    database_echo: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    log_format: str = "default"
    # Seconds a single storage transaction may take; None disables the deadline
    request_timeout: Optional[float] = None
    photo_base_url: str = "/photos"
    max_photo_bytes: int = 10 * 1024 * 1024


def get_settings() -> Settings:
    return Settings(
        database_url=env_none_or_str("DATABASE_URL", "sqlite:///./chat.db"),
        database_echo=env_bool("DATABASE_ECHO", default=False),
        cors_origins=env_list("CORS_ORIGINS", ["*"]),
        log_level=env_none_or_str("LOG_LEVEL", "INFO"),
        log_format=env_none_or_str("LOG_FORMAT", "default"),
        request_timeout=env_none_or_float("REQUEST_TIMEOUT_SECONDS"),
        photo_base_url=env_none_or_str("PHOTO_BASE_URL", "/photos").rstrip("/"),
        max_photo_bytes=env_int("MAX_PHOTO_BYTES", 10 * 1024 * 1024),
    )
