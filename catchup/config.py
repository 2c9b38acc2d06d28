from dataclasses import dataclass
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Frozen view of the suggestion engine knobs handed to pure components."""

    group_threshold: float = 50.0
    individual_min_minutes: int = 30
    group_extra_minutes: int = 30
    max_slot_minutes: int = 120
    in_person_min_minutes: int = 60
    recently_met_multiplier: float = 0.5
    min_overdue_ratio: float = 1.0
    group_context_bonus: float = 0.5
    max_pending_per_user: int = 10
    priority_groups: tuple[str, ...] = ("Close Friends",)
    default_timezone: str = "UTC"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database settings
    DATABASE_URL: str = "postgresql://localhost:5432/catchup"

    # Bearer token verification for lifecycle routes
    JWT_SECRET: str | None = None
    JWT_AUDIENCE: str = "authenticated"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # =================================================================
    # SUGGESTION ENGINE SETTINGS
    # =================================================================
    SUGGESTION_GROUP_THRESHOLD: float = 50.0
    SUGGESTION_INDIVIDUAL_MIN_MINUTES: int = 30
    SUGGESTION_GROUP_EXTRA_MINUTES: int = 30
    SUGGESTION_MAX_SLOT_MINUTES: int = 120
    SUGGESTION_IN_PERSON_MIN_MINUTES: int = 60
    SUGGESTION_RECENTLY_MET_MULTIPLIER: float = 0.5
    SUGGESTION_MIN_OVERDUE_RATIO: float = 1.0
    SUGGESTION_GROUP_CONTEXT_BONUS: float = 0.5
    SUGGESTION_MAX_PENDING_PER_USER: int = 10
    SUGGESTION_PRIORITY_GROUPS: list[str] = ["Close Friends"]
    SUGGESTION_DEFAULT_TIMEZONE: str = "UTC"

    # =================================================================
    # GENERATION JOB SETTINGS
    # =================================================================
    SUGGESTION_LOOKAHEAD_DAYS: int = 14
    SUGGESTION_WINDOW_BUCKET_HOURS: int = 24
    SUGGESTION_GENERATION_INTERVAL_MINUTES: int = 360  # every 6 hours
    SUGGESTION_GENERATION_BATCH_SIZE: int = 50
    SUGGESTION_GENERATION_MAX_CONCURRENCY: int = 10
    SUGGESTION_GENERATION_USER_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # More conservative for local development
            config.update(
                {
                    "min_size": 2,
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config

    def engine_config(self) -> EngineConfig:
        """Snapshot the SUGGESTION_* values for the scoring and matching pipeline."""
        return EngineConfig(
            group_threshold=self.SUGGESTION_GROUP_THRESHOLD,
            individual_min_minutes=self.SUGGESTION_INDIVIDUAL_MIN_MINUTES,
            group_extra_minutes=self.SUGGESTION_GROUP_EXTRA_MINUTES,
            max_slot_minutes=self.SUGGESTION_MAX_SLOT_MINUTES,
            in_person_min_minutes=self.SUGGESTION_IN_PERSON_MIN_MINUTES,
            recently_met_multiplier=self.SUGGESTION_RECENTLY_MET_MULTIPLIER,
            min_overdue_ratio=self.SUGGESTION_MIN_OVERDUE_RATIO,
            group_context_bonus=self.SUGGESTION_GROUP_CONTEXT_BONUS,
            max_pending_per_user=self.SUGGESTION_MAX_PENDING_PER_USER,
            priority_groups=tuple(self.SUGGESTION_PRIORITY_GROUPS),
            default_timezone=self.SUGGESTION_DEFAULT_TIMEZONE,
        )


settings = Settings()
