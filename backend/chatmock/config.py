"""Configuration management for the mock chat backend.

Values come from environment variables (or a ``.env`` file in the working
directory). Kept lightweight with pydantic BaseSettings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional, Tuple


APP_NAME = "Chat Mock Backend"
APP_VERSION = "1.0.0"

ALLOWED_UPLOAD_TYPES: Tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class Settings(BaseSettings):
    backend_host: str = Field("0.0.0.0", alias="BACKEND_HOST")
    backend_port: int = Field(3000, alias="BACKEND_PORT")
    backend_log_level: str = Field("info", alias="BACKEND_LOG_LEVEL")
    allow_all_origins: bool = Field(True, alias="BACKEND_ALLOW_ALL_ORIGINS")

    # Seconds between streamed words on the network path
    stream_delay_min: float = Field(0.1, alias="STREAM_DELAY_MIN")
    stream_delay_max: float = Field(0.3, alias="STREAM_DELAY_MAX")
    # Simulated "typing" pause before a non-streaming reply; 0/0 disables it
    response_delay_min: float = Field(0.5, alias="RESPONSE_DELAY_MIN")
    response_delay_max: float = Field(1.5, alias="RESPONSE_DELAY_MAX")

    upload_dir: str = Field("uploads", alias="UPLOAD_DIR")
    upload_cleanup_seconds: float = Field(5.0, alias="UPLOAD_CLEANUP_SECONDS")
    upload_max_bytes: int = Field(10 * 1024 * 1024, alias="UPLOAD_MAX_BYTES")
    upload_max_files: int = Field(5, alias="UPLOAD_MAX_FILES")

    # Directory with the demo page; mounted at / when it exists
    static_dir: Optional[str] = Field(None, alias="STATIC_DIR")
    # Fixed seed makes reply selection and pacing reproducible
    random_seed: Optional[int] = Field(None, alias="RANDOM_SEED")

    @model_validator(mode="after")
    def check_delay_windows(self) -> "Settings":
        for name in ("stream_delay", "response_delay"):
            low, high = getattr(self, f"{name}_min"), getattr(self, f"{name}_max")
            if low < 0 or high < low:
                raise ValueError(f"{name.upper()}_MIN/MAX must satisfy 0 <= min <= max, got {low}/{high}")
        return self

    class Config:
        case_sensitive = False
        env_file = ".env"
        populate_by_name = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()  # type: ignore
    import logging
    logging.getLogger(__name__).info(
        "Loaded settings port=%s upload_dir=%s seed=%s", s.backend_port, s.upload_dir, s.random_seed
    )
    return s
