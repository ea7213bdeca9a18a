# marketplace/config.py
"""
Runtime configuration, read from the environment (and `.env`)
"""
import os
from typing import Optional
from dotenv import load_dotenv

from .utils import logger

load_dotenv()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete"""
    pass


def _normalize_db_url(url: Optional[str]) -> Optional[str]:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Service configuration"""

    def __init__(self):
        # Database
        self.database_url = _normalize_db_url(os.getenv("POSTGRES_URL"))
        self.db_pool_size = int(os.getenv("DB_POOL_SIZE", 5))
        self.db_max_overflow = int(os.getenv("DB_MAX_OVERFLOW", 10))

        # Listing lifecycle
        self.retention_days = int(os.getenv("LISTING_RETENTION_DAYS", 7))
        self.sweep_enabled = _flag("SWEEP_ENABLED", "1")
        self.sweep_interval_hours = float(os.getenv("SWEEP_INTERVAL_HOURS", 24))
        self.sweep_batch_timeout = float(os.getenv("SWEEP_BATCH_TIMEOUT_SECONDS", 0))

        # Object storage (Cloudinary)
        self.cloudinary_cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME", "")
        self.cloudinary_api_key = os.getenv("CLOUDINARY_API_KEY", "")
        self.cloudinary_api_secret = os.getenv("CLOUDINARY_API_SECRET", "")
        self.storage_timeout = float(os.getenv("STORAGE_TIMEOUT_SECONDS", 10))
        self.storage_max_workers = int(os.getenv("STORAGE_MAX_WORKERS", 4))
        self.storage_retries = int(os.getenv("STORAGE_RETRIES", 2))

    @property
    def storage_configured(self) -> bool:
        return all((self.cloudinary_cloud_name, self.cloudinary_api_key, self.cloudinary_api_secret))

    def validate(self):
        """Validate required configuration"""
        if not self.database_url:
            raise ConfigurationError("POSTGRES_URL not set")
        if self.retention_days <= 0:
            raise ConfigurationError("LISTING_RETENTION_DAYS must be positive")
        creds = (self.cloudinary_cloud_name, self.cloudinary_api_key, self.cloudinary_api_secret)
        if any(creds) and not all(creds):
            raise ConfigurationError("Cloudinary credentials are only partially set")
        if not self.storage_configured:
            logger.warning("Cloudinary credentials not set; listing images will not be purged")


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = Config()
    return _config
