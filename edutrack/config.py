import logging
import os
from typing import Optional


class Settings:
    """Environment-driven settings, read once at import of the API module."""

    def __init__(self):
        self.groq_api_key: Optional[str] = os.getenv("GROQ_API_KEY")
        self.report_model: str = os.getenv("EDUTRACK_REPORT_MODEL", "llama-3.3-70b-versatile")
        self.data_file: Optional[str] = os.getenv("EDUTRACK_DATA_FILE")
        self.log_level: str = os.getenv("EDUTRACK_LOG_LEVEL", "INFO").upper()
        origins = os.getenv("EDUTRACK_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = [o.strip() for o in origins.split(",") if o.strip()]


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
