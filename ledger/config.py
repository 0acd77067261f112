"""Loading and saving LedgerConfig as a JSON file."""

from pathlib import Path

from pydantic import ValidationError

from ledger.log import get_logger
from ledger.models.config import LedgerConfig

CONFIG_FILENAME = "ledgerconfig.json"

logger = get_logger("config")


class ConfigError(Exception):
    """The configuration file exists but cannot be used."""


def load_config(path: str) -> LedgerConfig:
    """Read the config file, writing a default one if it does not exist yet."""
    config_path = Path(path)
    if not config_path.exists():
        config = LedgerConfig()
        save_config(config, path)
        logger.info("config_created", path=str(config_path))
        return config

    try:
        config = LedgerConfig.model_validate_json(config_path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise ConfigError(f"Cannot load {config_path}: {exc}") from exc

    logger.info("config_loaded", path=str(config_path))
    return config


def save_config(config: LedgerConfig, path: str) -> None:
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
