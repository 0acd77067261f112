"""Ledger configuration — tick interval, output location, stores, capture toggles."""

from pydantic import BaseModel, field_validator

from ledger.log import get_logger

DEFAULT_BASE_PATH = "ModData/ledger"
DEFAULT_INTERVAL_SECONDS = 60
MIN_INTERVAL_SECONDS = 5

logger = get_logger("config")


class CaptureConfig(BaseModel):
    """Which enrichment field groups are collected on each tick."""

    vitals: bool = True
    equipment: bool = True
    world: bool = True
    position: bool = True


class LedgerConfig(BaseModel):
    """Configuration for the ledger service."""

    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    base_path: str = DEFAULT_BASE_PATH
    enable_json: bool = True
    enable_sqlite: bool = False
    sqlite_filename: str = "ledger.db"
    log_level: str = "INFO"
    capture: CaptureConfig = CaptureConfig()

    @field_validator("interval_seconds")
    @classmethod
    def _clamp_interval(cls, value: int) -> int:
        if value < MIN_INTERVAL_SECONDS:
            logger.warning(
                "interval_clamped",
                requested=value,
                applied=MIN_INTERVAL_SECONDS,
            )
            return MIN_INTERVAL_SECONDS
        return value

    @field_validator("base_path")
    @classmethod
    def _default_base_path(cls, value: str) -> str:
        return value.strip() or DEFAULT_BASE_PATH
