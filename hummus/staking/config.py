# hummus/staking/config.py
import configparser
import json
import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_FARM_CONFIG = {
    "owner": "owner",
    "token_per_sec": 10**18,
    "diluting_repartition": 375,
    "max_boost": 2500,
    "start_timestamp": 0,
    "epoch_length": 7 * 86400,
    "vote_alloc_points": 1000,
    "rewarder_atomic": False,
    "decaying_escrow": True,
    "database_url": "sqlite:///:memory:",
}

_INT_KEYS = (
    "token_per_sec",
    "diluting_repartition",
    "max_boost",
    "start_timestamp",
    "epoch_length",
    "vote_alloc_points",
)
_BOOL_KEYS = ("rewarder_atomic", "decaying_escrow")
_STR_KEYS = ("owner", "database_url")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _read_config_file(config_file: Path) -> dict:
    """Read a JSON config file, falling back to an INI file with a [Farm] section."""
    try:
        with open(config_file, "r") as f:
            file_config = json.load(f)
        logger.info(f"Loaded farm config (JSON) from: {config_file}")
        return file_config
    except json.JSONDecodeError:
        config_parser = configparser.ConfigParser()
        config_parser.read(config_file)
        file_config = {}
        if "Farm" in config_parser:
            section = config_parser["Farm"]
            for key in _INT_KEYS:
                if key in section:
                    file_config[key] = section.getint(key)
            for key in _BOOL_KEYS:
                if key in section:
                    file_config[key] = section.getboolean(key)
            for key in _STR_KEYS:
                if key in section:
                    file_config[key] = section.get(key)
        logger.info(f"Loaded farm config (INI) from: {config_file}")
        return file_config


def load_farm_config(config_override=None, config_files=None):
    """
    Load farm configuration from multiple sources with precedence.

    Precedence:
    1. Environment Variables (HUMMUS_*, a .env file is loaded first)
    2. `config_override` dictionary (if provided)
    3. Config file (JSON or INI) in ./config/farm.cfg or ./farm.cfg
    4. Config file (JSON or INI) in ~/.hummus/farm.cfg
    5. Default values

    Args:
        config_override: Optional dictionary to override loaded config.
        config_files: Optional list of paths searched instead of the default locations.

    Returns:
        dict: The final farm configuration.
    """
    load_dotenv(find_dotenv(usecwd=True))
    config = dict(DEFAULT_FARM_CONFIG)

    if config_files is None:
        config_files = [
            Path("./config/farm.cfg"),
            Path("./farm.cfg"),
            Path.home() / ".hummus" / "farm.cfg",
        ]

    for config_file in config_files:
        config_file = Path(config_file)
        if not config_file.exists():
            continue
        try:
            config.update(_read_config_file(config_file))
            break
        except (OSError, configparser.Error, ValueError) as e:
            logger.error(f"Error reading farm config file {config_file}: {e}")
    else:
        logger.debug("No farm configuration file found, using defaults")

    if config_override and isinstance(config_override, dict):
        config.update(config_override)
        logger.debug(f"Farm config updated with override dict: {config_override}")

    env_config = {}
    for key in _INT_KEYS:
        value = os.environ.get(f"HUMMUS_{key.upper()}")
        if value:
            try:
                env_config[key] = int(value)
            except ValueError:
                logger.warning(f"Invalid HUMMUS_{key.upper()} environment variable. Using default/config value.")
    for key in _BOOL_KEYS:
        value = os.environ.get(f"HUMMUS_{key.upper()}")
        if value:
            env_config[key] = _parse_bool(value)
    for key in _STR_KEYS:
        value = os.environ.get(f"HUMMUS_{key.upper()}")
        if value:
            env_config[key] = value

    if env_config:
        config.update(env_config)
        logger.info(f"Farm config updated with environment variables: {list(env_config.keys())}")

    for key in _INT_KEYS:
        config[key] = int(config[key])
    for key in _BOOL_KEYS:
        config[key] = _parse_bool(config[key])

    logger.debug(f"Final farm config: {config}")
    return config


def save_farm_config(config, config_file=None):
    """
    Save farm configuration as JSON.

    Args:
        config: Dictionary containing the farm configuration to save.
        config_file: Target path, ~/.hummus/farm.cfg by default.
    """
    config_file = Path(config_file) if config_file else Path.home() / ".hummus" / "farm.cfg"
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config, f, indent=4)
    logger.info(f"Farm configuration saved to: {config_file}")
    return config_file
