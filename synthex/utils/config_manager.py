"""
Client Settings Persistence
===========================

This module loads and saves the runtime settings of the Synthex client:
where the API lives, how long to wait for it, where durable records are
stored, and the paging/search defaults.

Key Responsibilities:
---------------------
- File-System Persistence: Stores settings in a hidden JSON file in the
  user's home directory (`~/.synthex_client.json`).
- Environment Overrides: `SYNTHEX_API_URL` and `SYNTHEX_STORAGE_DIR` win
  over the file, so deployments can redirect the client without editing it.
- Security Logging: Interfaces with the logger to record save/load events
  while automatically redacting sensitive fields.

Author: Synthex Project
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from synthex.core.config import (
    DEBOUNCE_WINDOW_SECONDS,
    DEFAULT_API_URL,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_STORAGE_DIR,
    NETWORK_TIMEOUT_SECONDS,
)
from synthex.utils.logger import log_config

CONFIG_PATH = Path.home() / ".synthex_client.json"

ENV_API_URL = "SYNTHEX_API_URL"
ENV_STORAGE_DIR = "SYNTHEX_STORAGE_DIR"


@dataclass
class ClientSettings:
    """Runtime settings of one SynthexClient."""
    api_url: str = DEFAULT_API_URL
    timeout: float = NETWORK_TIMEOUT_SECONDS
    storage_dir: str = str(DEFAULT_STORAGE_DIR)
    page_limit: int = DEFAULT_PAGE_LIMIT
    search_limit: int = DEFAULT_SEARCH_LIMIT
    debounce_window: float = DEBOUNCE_WINDOW_SECONDS


def save_settings(settings: ClientSettings, path: Optional[Path] = None) -> bool:
    """
    Persist settings to the configuration file as pretty-printed JSON.

    Returns:
        True if the file was written
    """
    logger = logging.getLogger(__name__)
    path = Path(path) if path is not None else CONFIG_PATH

    try:
        data = asdict(settings)

        log_config("Saving Settings", data, logger)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        logger.info(f"Settings saved successfully to {path}")
        return True

    except OSError as e:
        logger.error(f"Failed to save settings: {e}", exc_info=True)
        return False


def load_settings(path: Optional[Path] = None) -> ClientSettings:
    """
    Build the effective settings.

    Defaults are overlaid with the configuration file (if any), then with
    the environment. Unknown keys in the file are ignored; a corrupted file
    is logged and ignored as a whole.
    """
    logger = logging.getLogger(__name__)
    path = Path(path) if path is not None else CONFIG_PATH
    settings = ClientSettings()

    if path.exists():
        try:
            logger.info(f"Loading settings from {path}")

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")

            log_config("Loaded Settings", data, logger)

            known = {f.name for f in fields(ClientSettings)}
            for k, v in data.items():
                if k in known:
                    setattr(settings, k, v)
                else:
                    logger.debug(f"Ignoring unknown setting '{k}'")

        except json.JSONDecodeError as e:
            logger.error(f"Settings file is corrupted, using defaults: {e}", exc_info=True)
            settings = ClientSettings()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load settings, using defaults: {e}", exc_info=True)
            settings = ClientSettings()
    else:
        logger.info(f"No existing settings file found at {path}")

    api_url = os.environ.get(ENV_API_URL)
    if api_url:
        settings.api_url = api_url
        logger.debug(f"API URL overridden by {ENV_API_URL}")

    storage_dir = os.environ.get(ENV_STORAGE_DIR)
    if storage_dir:
        settings.storage_dir = storage_dir
        logger.debug(f"Storage directory overridden by {ENV_STORAGE_DIR}")

    return settings
