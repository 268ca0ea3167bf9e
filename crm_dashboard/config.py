# crm_dashboard/config.py
"""
Centralized Configuration Management

Version: 1.0.0
Features:
- Local (.env) loading via python-dotenv, environment variables win
- Singleton pattern for efficiency
- Type-safe getters with defaults
- Database settings validated lazily (the engine runs without a database)
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from typing import Dict, Any, Optional
from dataclasses import dataclass

# Initialize logger
logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Database configuration container"""
    driver: str
    host: str
    port: int
    user: str
    password: str
    database: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'driver': self.driver,
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database
        }

    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)


class Config:
    """
    Centralized configuration management

    Usage:
        from crm_dashboard.config import config

        # Get database config
        db_config = config.get_db_config()

        # Get app settings
        threshold = config.get_app_setting("TIER1_ACHIEVED_THRESHOLD", 10_000_000)
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._load_config()
        self._initialized = True

    def _load_config(self):
        """Load configuration from .env and the process environment"""
        self._load_env_file()
        self._load_db_config()
        self._load_app_config()
        self._log_config_status()

    def _load_env_file(self):
        """Find and load the first .env file found"""
        env_paths = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for env_path in env_paths:
            if env_path.exists():
                load_dotenv(env_path)
                logger.info(f"Loaded .env from: {env_path}")
                break

    def _load_db_config(self):
        """Load database settings (validated on first use)"""
        self._db_config = DatabaseConfig(
            driver=os.getenv("DB_DRIVER", "postgresql+psycopg2"),
            host=os.getenv("DB_HOST", ""),
            port=int(os.getenv("DB_PORT", "5432")),
            user=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            database=os.getenv("DB_NAME", os.getenv("DB_DATABASE", "postgres"))
        )

    def _load_app_config(self):
        """Load application-specific settings"""
        self._app_config = {
            # Database pool
            "DB_POOL_SIZE": int(os.getenv("DB_POOL_SIZE", "5")),
            "DB_POOL_RECYCLE": int(os.getenv("DB_POOL_RECYCLE", "3600")),

            # Localization
            "TIMEZONE": os.getenv("TIMEZONE", "Asia/Kolkata"),

            # Business logic
            "TIER1_ACHIEVED_THRESHOLD": float(os.getenv("TIER1_ACHIEVED_THRESHOLD", "10000000")),
        }

    def _log_config_status(self):
        """Log configuration status"""
        if self._db_config.is_configured():
            logger.info(f"✅ Database: {self._db_config.host}/{self._db_config.database}")
        else:
            logger.info("Database: not configured (engine-only mode)")

    # ==================== PUBLIC GETTERS ====================

    def get_db_config(self) -> Dict[str, Any]:
        """Get database configuration as dictionary"""
        if not self._db_config.is_configured():
            logger.error("Missing required database configuration")
            raise ValueError("Missing required database configuration. Please check .env file.")
        return self._db_config.to_dict()

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting with default"""
        return self._app_config.get(key, default)

    @property
    def app_config(self) -> Dict[str, Any]:
        return self._app_config.copy()


# ==================== SINGLETON INSTANCE ====================

config = Config()

__all__ = [
    'config',
    'Config',
    'DatabaseConfig',
]
