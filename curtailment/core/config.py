"""Application configuration settings."""

import os
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HardwareProfile(BaseModel):
    """Rated figures for one miner model."""

    hash_rate: Decimal = Field(..., gt=0, description="Hash rate in hashes per second")
    power_draw: Decimal = Field(..., gt=0, description="Power draw in watts")


def _default_hardware_profiles() -> Dict[str, HardwareProfile]:
    return {
        "S19J_PRO": HardwareProfile(hash_rate=Decimal("100e12"), power_draw=Decimal("3050")),
        "S9": HardwareProfile(hash_rate=Decimal("13.5e12"), power_draw=Decimal("1323")),
        "M20S": HardwareProfile(hash_rate=Decimal("68e12"), power_draw=Decimal("3360")),
    }


class MiningConfig(BaseModel):
    """Constants of the energy to hash power to coin model."""

    block_reward: Decimal = Decimal("3.125")
    block_interval_seconds: int = 600
    settlement_period_seconds: int = 1800
    difficulty_fallback: Decimal = Decimal("113757508810853")
    hardware_profiles: Dict[str, HardwareProfile] = Field(
        default_factory=_default_hardware_profiles
    )

    @property
    def miner_models(self) -> List[str]:
        return list(self.hardware_profiles)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Basic settings
    PROJECT_NAME: str = "Curtailment Mining Backend"
    DEBUG: bool = False
    API_V1_STR: str = "/api/v1"

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8001
    ALLOWED_HOSTS: List[str] = ["*"]

    # Database
    DATABASE_URL: Optional[PostgresDsn] = None
    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 0
    DB_ECHO: bool = False
    DB_POOL_PRE_PING: bool = True
    DB_POOL_RECYCLE: int = 300

    # Testing
    TESTING: bool = os.getenv("TESTING", "false").lower() == "true"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Elexon settlement stack
    ELEXON_BASE_URL: str = "https://data.elexon.co.uk/bmrs/api/v1"
    ELEXON_API_KEY: Optional[str] = None
    ELEXON_TIMEOUT: float = 30.0
    ELEXON_MAX_ATTEMPTS: int = 3
    ELEXON_RETRY_DELAY: float = 2.0
    ELEXON_RETRY_BACKOFF: Literal["fixed", "exponential"] = "exponential"

    # Unit reference
    UNIT_REFERENCE_PATH: str = "data/bmu_mapping.json"
    QUALIFYING_FUEL_TYPES: List[str] = ["WIND"]

    @field_validator("QUALIFYING_FUEL_TYPES", mode="before")
    @classmethod
    def assemble_fuel_types(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse a comma separated fuel type list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip().upper() for i in v.split(",") if i.strip()]
        return v

    # Run driver
    MAX_CONCURRENT_DAYS: int = 3
    LOOK_BACK_DAYS: int = 7

    # Network difficulty
    DIFFICULTY_API_URL: str = "https://mempool.space/api/v1/mining/difficulty-adjustments/all"
    DIFFICULTY_TIMEOUT: float = 15.0

    # Mining model
    MINING: MiningConfig = Field(default_factory=MiningConfig)

    # Celery settings
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None

    @property
    def database_url_async(self) -> Optional[str]:
        """Get asynchronous database URL for SQLAlchemy."""
        # Use SQLite for testing
        if self.TESTING:
            return "sqlite+aiosqlite:///:memory:"

        if not self.DATABASE_URL:
            return None

        url = str(self.DATABASE_URL)
        if url.startswith("postgresql://") and not url.startswith("postgresql+asyncpg://"):
            return url.replace("postgresql://", "postgresql+asyncpg://")
        return url


@lru_cache
def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
