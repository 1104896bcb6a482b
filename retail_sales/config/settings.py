"""
Retail Sales Analytics
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type safety.
Each pipeline stage reads its own section.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", env_file=".env", extra="ignore")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="retail_sales", alias="database", description="Database name")
    user: str = Field(default="analyst", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from host/port"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class DataLakeSettings(BaseSettings):
    """On-disk artifact locations"""

    model_config = SettingsConfigDict(env_prefix="DATA_", env_file=".env", extra="ignore")

    raw_path: str = Field(default="./data/raw", description="Raw input files")
    staging_path: str = Field(default="./data/staging", description="Cleaned files ready to load")
    quarantine_path: str = Field(default="./data/quarantine", description="Rejected rows")
    curated_path: str = Field(default="./data/curated", description="Exported report tables")

    raw_file: str = Field(default="superstore.csv", description="Default raw file name")
    cleaned_file: str = Field(default="superstore_clean.csv", description="Default cleaned file name")


class CleaningSettings(BaseSettings):
    """Cleaning Stage Configuration"""

    model_config = SettingsConfigDict(env_prefix="CLEANING_", env_file=".env", extra="ignore")

    default_encoding: str = Field(default="latin-1", description="Fallback when detection fails")
    output_encoding: str = Field(default="ascii", description="Encoding of the cleaned file: ascii or utf-8")
    detection_sample_bytes: int = Field(default=100_000, description="Bytes fed to the encoding detector")
    min_detection_confidence: float = Field(default=0.5, description="Below this the fallback encoding is used")
    date_formats: List[str] = Field(
        default=[
            "%Y-%m-%d",
            "%m/%d/%Y",
            "%d-%m-%Y",
            "%Y/%m/%d",
            "%d.%m.%Y",
            "%Y-%m-%d %H:%M:%S",
            "%m/%d/%Y %H:%M",
        ],
        description="Date formats tried in order, first match wins",
    )

    @field_validator("output_encoding")
    @classmethod
    def validate_output_encoding(cls, v: str) -> str:
        """Validate output encoding"""
        allowed = ["ascii", "utf-8"]
        if v.lower() not in allowed:
            raise ValueError(f"Output encoding must be one of: {allowed}")
        return v.lower()


class AnalyticsSettings(BaseSettings):
    """Analysis Stage Configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_", env_file=".env", extra="ignore")

    high_value_threshold: float = Field(default=10000.0, description="Sales above this are High-Value")
    mid_value_threshold: float = Field(default=5000.0, description="Sales above this are Mid-Value")
    top_n: int = Field(default=5, description="Rows returned by the top products query")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="text", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="retail-sales-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    cleaning: CleaningSettings = Field(default_factory=CleaningSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
