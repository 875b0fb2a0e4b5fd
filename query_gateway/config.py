"""
Centralized Configuration Management
====================================
All configuration values are read directly from environment variables.
A local .env file is loaded first for development convenience.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional

from dotenv import load_dotenv

load_dotenv()


class Environment(str, Enum):
    """Deployment environment types"""
    DEV = "dev"
    UAT = "uat"
    PROD = "prod"
    LOCAL = "local"


# Data-mutation, execution and administrative verbs that may never appear
# in a progress query. Entries ending in "_" are name prefixes.
DEFAULT_BLOCKED_KEYWORDS: FrozenSet[str] = frozenset({
    # DML / DDL
    'INSERT', 'UPDATE', 'DELETE', 'DROP', 'ALTER', 'CREATE', 'TRUNCATE',
    # Execution
    'EXEC', 'EXECUTE', 'SP_', 'XP_',
    # Administrative
    'BULK', 'BACKUP', 'RESTORE', 'GRANT', 'REVOKE', 'DENY',
    # External data access
    'OPENROWSET', 'OPENDATASOURCE',
})


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Environment-aware settings for the query tester service"""

    # ==================== ENVIRONMENT DETECTION ====================
    @staticmethod
    def get_environment() -> Environment:
        """Detect current deployment environment from ENV variable"""
        env = os.getenv("ENV", "local").lower()
        if env in ["dev", "development"]:
            return Environment.DEV
        elif env in ["uat", "staging"]:
            return Environment.UAT
        elif env in ["prod", "production"]:
            return Environment.PROD
        return Environment.LOCAL

    ENVIRONMENT = get_environment()

    # ==================== DATABASE CONFIGURATION ====================
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    # Connection URL for a principal that only holds read privileges.
    QUERY_DATABASE_URL: Optional[str] = os.getenv("QUERY_DATABASE_URL")

    DB_POOL_MIN_SIZE: int = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
    DB_POOL_MAX_SIZE: int = int(os.getenv("DB_POOL_MAX_SIZE", "5"))
    DB_LOCK_TIMEOUT_SECONDS: int = int(os.getenv("DB_LOCK_TIMEOUT_SECONDS", "5"))

    # ==================== QUERY EXECUTION LIMITS ====================
    QUERY_TIMEOUT_SECONDS: float = float(os.getenv("QUERY_TIMEOUT_SECONDS", "5"))
    QUERY_MAX_ROWS: int = int(os.getenv("QUERY_MAX_ROWS", "1000"))
    QUERY_MAX_LENGTH: int = int(os.getenv("QUERY_MAX_LENGTH", "10000"))
    QUERY_EXTRA_BLOCKED_KEYWORDS: List[str] = [
        keyword.upper()
        for keyword in _split_csv(os.getenv("QUERY_EXTRA_BLOCKED_KEYWORDS", ""))
    ]

    # ==================== SERVER CONFIGURATION ====================
    PORT: int = int(os.getenv("PORT", "5000"))
    HOST: str = os.getenv("HOST", "0.0.0.0")
    FRONTEND_URLS: List[str] = _split_csv(os.getenv("FRONTEND_URLS", ""))

    # ==================== LOGGING ====================
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def get_query_database_url(cls) -> Optional[str]:
        """Prefer the read-only principal when one is configured"""
        return cls.QUERY_DATABASE_URL or cls.DATABASE_URL

    @classmethod
    def get_cors_origins(cls) -> List[str]:
        """Get environment-specific CORS origins"""
        origins = list(cls.FRONTEND_URLS)
        if cls.ENVIRONMENT == Environment.LOCAL:
            origins.extend([
                "http://localhost:5000",
                "http://localhost:3000",
                "http://127.0.0.1:5000",
                "http://127.0.0.1:3000"
            ])
        return list(dict.fromkeys(origins))

    # ==================== VALIDATION ====================
    @classmethod
    def validate_config(cls) -> None:
        """Validate critical configuration settings"""
        errors = []

        if not cls.get_query_database_url():
            errors.append("DATABASE_URL (or QUERY_DATABASE_URL) is required")
        if cls.QUERY_TIMEOUT_SECONDS <= 0 or cls.QUERY_TIMEOUT_SECONDS > 60:
            errors.append("QUERY_TIMEOUT_SECONDS must be between 0 and 60")
        if cls.QUERY_MAX_ROWS < 1 or cls.QUERY_MAX_ROWS > 10000:
            errors.append("QUERY_MAX_ROWS must be between 1 and 10000")
        if cls.DB_POOL_MIN_SIZE < 0 or cls.DB_POOL_MAX_SIZE < max(cls.DB_POOL_MIN_SIZE, 1):
            errors.append("DB_POOL_MAX_SIZE must be at least DB_POOL_MIN_SIZE and 1")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


@dataclass(frozen=True)
class ExecutionLimits:
    """Per-request policy handed to the query tester"""
    timeout_seconds: float = 5.0
    max_rows: int = 1000
    blocked_keywords: FrozenSet[str] = field(default=DEFAULT_BLOCKED_KEYWORDS)

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError('Timeout must be positive')
        if self.max_rows < 1:
            raise ValueError('Max rows must be at least 1')

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout_seconds * 1000)

    @classmethod
    def from_config(cls) -> "ExecutionLimits":
        return cls(
            timeout_seconds=Config.QUERY_TIMEOUT_SECONDS,
            max_rows=Config.QUERY_MAX_ROWS,
            blocked_keywords=DEFAULT_BLOCKED_KEYWORDS | frozenset(Config.QUERY_EXTRA_BLOCKED_KEYWORDS),
        )
