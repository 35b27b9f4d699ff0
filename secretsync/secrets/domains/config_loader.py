"""Configuration loader for secretsync."""
import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .errors import ConfigError
from .preferences import get_preference

logger = logging.getLogger(__name__)

CATALOG_BACKENDS = ("context", "env", "gcp")

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "github": {
        "source_repo": None,
        "workflow": "propagate-secrets.yml",
        "event_type": "propagate-secrets",
    },
    "policy": {
        "default": "provisioning-only",
        "provisioning_only": [],
        "syncable": [],
        "encodings": {},
    },
    "catalog": {
        "backends": ["context", "env"],
    },
    "sync": {
        "max_workers": 4,
        "write_timeout": 30,
    },
    "presence": {
        "initial_delay": 5,
        "poll_interval": 2,
        "max_attempts": 30,
    },
    "gcp": {
        "project_id": None,
    },
    "authentication": {},
}


def default_config_path() -> Path:
    return Path.home() / ".config" / "secretsync" / "config.yml"


def _get_config_path() -> str:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/secretsync/preferences.json)
    2. Default location: ~/.config/secretsync/config.yml

    Returns:
        Absolute path to config file

    Raises:
        FileNotFoundError: If config file doesn't exist in any location
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Set one up using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   secretsync config set-path /path/to/your/config.yml\n\n"
        "3. Run interactive setup:\n"
        "   secretsync config init\n"
    )


def _merge(config: Dict[str, Any], config_path: str) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULTS)
    for section, values in config.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Section '{section}' in {config_path} must be a mapping")
        merged.setdefault(section, {}).update(values)
    return merged


def _validate(config: Dict[str, Any], config_path: str) -> None:
    backends = config["catalog"]["backends"]
    if not isinstance(backends, list) or not backends:
        raise ConfigError("'catalog.backends' must be a non-empty list")
    unknown = [b for b in backends if b not in CATALOG_BACKENDS]
    if unknown:
        raise ConfigError(
            f"Unknown catalog backend(s) {', '.join(map(str, unknown))} in {config_path}\n"
            f"Supported backends: {', '.join(CATALOG_BACKENDS)}"
        )

    sync = config["sync"]
    if not isinstance(sync["max_workers"], int) or sync["max_workers"] < 1:
        raise ConfigError("'sync.max_workers' must be a positive integer")
    if not isinstance(sync["write_timeout"], (int, float)) or sync["write_timeout"] <= 0:
        raise ConfigError("'sync.write_timeout' must be a positive number of seconds")

    for key in ("initial_delay", "poll_interval", "max_attempts"):
        value = config["presence"][key]
        if not isinstance(value, (int, float)) or value < 0:
            raise ConfigError(f"'presence.{key}' must be a non-negative number")

    auth = config["authentication"]
    if auth:
        if auth.get("type") != "service_account":
            raise ConfigError(
                f"Unsupported authentication type: {auth.get('type')}\n"
                f"Only 'service_account' is supported."
            )
        service_account_path = auth.get("service_account_path")
        if not service_account_path:
            raise ConfigError(
                "Missing 'authentication.service_account_path' in config\n"
                "Please specify the absolute path to your service account JSON file."
            )
        if not os.path.isfile(service_account_path):
            raise ConfigError(
                f"Service account file not found at: {service_account_path}\n"
                f"Please ensure the file exists or update the path in {config_path}"
            )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    The file is optional: when none is found, built-in defaults are returned.
    The path is resolved on every call so preference changes apply immediately.

    Returns:
        Dict with the sections of DEFAULTS, overlaid with the file's values and
        the SECRETSYNC_SOURCE_REPO / GCP_PROJECT environment overrides

    Raises:
        ConfigError: If the config file exists but is invalid
    """
    if config_path is None:
        try:
            config_path = _get_config_path()
        except FileNotFoundError:
            logger.info("No config file found, using built-in defaults")
            config_path = None

    if config_path is None:
        config = copy.deepcopy(DEFAULTS)
    else:
        try:
            with open(config_path, 'r') as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read config file at {config_path}: {e}")

        if not raw:
            raise ConfigError(f"Config file at {config_path} is empty")
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file at {config_path} must contain a mapping")

        config = _merge(raw, config_path)
        _validate(config, config_path)
        logger.info(f"Configuration loaded successfully from {config_path}")

    source_repo = os.getenv("SECRETSYNC_SOURCE_REPO")
    if source_repo:
        logger.debug(f"Using SECRETSYNC_SOURCE_REPO from environment: {source_repo}")
        config["github"]["source_repo"] = source_repo

    gcp_project = os.getenv("GCP_PROJECT")
    if gcp_project:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project}")
        config["gcp"]["project_id"] = gcp_project

    return config
