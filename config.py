"""
Runtime configuration for the Cinema Booking Backend.

Every setting comes from an environment variable so the same build can run
against the local SQLite file or a server database.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./cinema.db"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    # Bounded retry for serialization failures and lock timeouts
    store_retry_attempts: int = 3
    store_retry_delay: float = 0.1
    store_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", cls.port)),
            cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "*")),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            store_retry_attempts=max(1, int(os.getenv("STORE_RETRY_ATTEMPTS", cls.store_retry_attempts))),
            store_retry_delay=float(os.getenv("STORE_RETRY_DELAY", cls.store_retry_delay)),
            store_timeout=float(os.getenv("STORE_TIMEOUT", cls.store_timeout)),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
