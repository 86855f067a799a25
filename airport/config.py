"""Runtime configuration: env-driven.

Centralized config using pydantic-settings.  Reads from a .env file and
AIRPORT_* environment variables.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

from airport.models.status import AvailabilityState, MigrationAvailability


class AirportConfig(BaseSettings):
    """Airport configuration with environment variable overrides.

    Examples
    --------
    Put migrations on hold::

        export AIRPORT_MIGRATION_STATE=maintenance
        export AIRPORT_MIGRATION_MESSAGE="Back in an hour."

    Or via .env file::

        AIRPORT_LOG_LEVEL=DEBUG
        AIRPORT_PROPAGATION_DELAY_SECONDS=2
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AIRPORT_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Network
    request_timeout_seconds: float = 60.0
    blob_size_limit_bytes: int = 200 * 1024 * 1024

    # Orchestration
    propagation_delay_seconds: float = 0.5
    override_threshold: int = 2

    # Availability gate
    migration_state: AvailabilityState = AvailabilityState.UP
    migration_message: str = ""

    @property
    def allow_migration(self) -> bool:
        """Migrations are refused only while in maintenance."""
        return self.migration_state != AvailabilityState.MAINTENANCE


def availability_from_config(cfg: AirportConfig) -> MigrationAvailability:
    """Build the availability gate result from configuration."""
    message = cfg.migration_message
    if not message and cfg.migration_state == AvailabilityState.MAINTENANCE:
        message = "Migrations are temporarily unavailable for maintenance."
    return MigrationAvailability(
        state=cfg.migration_state,
        message=message,
        allow_migration=cfg.allow_migration,
    )


# Module-level singleton: import as `from airport.config import config`
config = AirportConfig()
