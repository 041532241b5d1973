import json
import logging
import os
from typing import Dict, Optional, Any

from ixfeed.errors import ConfigError
from ixfeed.models import DEFAULT_SEARCHENGINE

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = os.environ.get("IXFEED_CONFIG", "config.json")

DEFAULT_MAX_BATCH_SIZE = 10_000

DEFAULTS: Dict[str, Any] = {
    "db_path": os.path.join("data", "ixfeed.db"),
    "data_directory": "data",
    "user_agent": None,          # filled from the package version when unset
    "timeout": 30,
    "max_retries": 3,
    "download_delay": 0,
    "max_batch_size": DEFAULT_MAX_BATCH_SIZE,
    "default_searchengine": DEFAULT_SEARCHENGINE,
    "max_sitemap_depth": 10,
    "change_log": True,
    "log_level": "INFO",
}

_POSITIVE_INT_KEYS = ("timeout", "max_batch_size", "max_sitemap_depth")
_NON_NEGATIVE_KEYS = ("max_retries", "download_delay")


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Loads the configuration from config.json, falling back to defaults when absent.

    Raises:
        ConfigError: the file is unreadable, not JSON, or fails validation
    """
    path = path or CONFIG_FILE_PATH
    config = dict(DEFAULTS)
    if not os.path.exists(path):
        logger.debug(f"Configuration file not found: {path}. Using defaults.")
        return config
    try:
        with open(path, 'r') as f:
            config_data = json.load(f)
        logger.info(f"Successfully loaded configuration from {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error decoding JSON from {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read configuration file {path}: {e}") from e
    if not validate_config(config_data):
        raise ConfigError(f"Invalid configuration in {path}")
    config.update(config_data)
    return config


def validate_config(config: Dict[str, Any]) -> bool:
    """Validates the structure and content of the configuration."""
    if not isinstance(config, dict):
        logger.error("Configuration must be a dictionary.")
        return False

    unknown = sorted(set(config) - set(DEFAULTS))
    if unknown:
        logger.warning(f"Ignoring unknown configuration keys: {unknown}")

    for key in _POSITIVE_INT_KEYS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                logger.error(f"'{key}' must be a positive integer, got {value!r}.")
                return False

    for key in _NON_NEGATIVE_KEYS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                logger.error(f"'{key}' must be a non-negative number, got {value!r}.")
                return False

    for key in ("db_path", "data_directory", "default_searchengine"):
        if key in config and (not isinstance(config[key], str) or not config[key].strip()):
            logger.error(f"Value for key '{key}' must be a non-empty string.")
            return False

    if "user_agent" in config and config["user_agent"] is not None:
        if not isinstance(config["user_agent"], str) or not config["user_agent"].strip():
            logger.warning("'user_agent' is not a non-empty string. The default one will be used.")
            config["user_agent"] = None

    if "log_level" in config and str(config["log_level"]).upper() not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        logger.error(f"'log_level' must be one of DEBUG, INFO, WARNING, ERROR, got {config['log_level']!r}.")
        return False

    logger.debug("Configuration validation successful.")
    return True
