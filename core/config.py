"""
Configuration Management Module

Reads config.yaml once per process, fills in defaults for anything the
file leaves out and rejects values the service cannot run with.

Two environment variables take precedence over the file:
    FACEID_CONFIG      Path to an alternative YAML file.
    FACEID_SECRET_KEY  Signing key for session credentials.

Usage:
    from core.config import get_config, get_matching_config
    threshold = get_matching_config()["similarity_threshold"]
"""

import copy
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit


CONFIG_ENV_VAR = "FACEID_CONFIG"
SECRET_ENV_VAR = "FACEID_SECRET_KEY"

STORAGE_BACKENDS = ("memory", "sqlite")

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "matching": {
        "descriptor_dim": 128,
        "similarity_threshold": 0.6,
        "max_candidates": None,
        "scan_timeout_sec": None,
    },
    "storage": {
        "backend": "sqlite",
        "db_path": "storage/faceid.sqlite",
        "retention_days": 90,
    },
    "session": {
        "algorithm": "HS256",
        "issuer": None,
        "audience": None,
        "ttl_days": 7,
        "revocation_enabled": False,
    },
    "api": {
        "base_url": "http://localhost:8000",
        "cors_origins": [],
    },
}

# Parsed configuration shared by the whole process
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Locate the directory that holds config.yaml.

    Searches this package's parent directories, nearest first.

    Raises:
        FileNotFoundError: If no parent directory contains config.yaml.
    """
    for candidate in Path(__file__).resolve().parents:
        if (candidate / "config.yaml").exists():
            return candidate

    raise FileNotFoundError(
        f"config.yaml not found in any parent of {Path(__file__).resolve().parent}; "
        f"run from the project directory or set {CONFIG_ENV_VAR}."
    )


def _with_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULTS)
    for section, values in raw.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Reject settings the service cannot start with.

    Raises:
        ValueError: Naming the offending key.
    """
    matching = config["matching"]
    if not isinstance(matching["descriptor_dim"], int) or matching["descriptor_dim"] <= 0:
        raise ValueError(f"matching.descriptor_dim must be a positive integer, got {matching['descriptor_dim']!r}")
    if not 0.0 <= float(matching["similarity_threshold"]) < 1.0:
        raise ValueError(
            f"matching.similarity_threshold must be within [0, 1), got {matching['similarity_threshold']!r}"
        )
    for key in ("max_candidates", "scan_timeout_sec"):
        if matching[key] is not None and matching[key] <= 0:
            raise ValueError(f"matching.{key} must be positive or null, got {matching[key]!r}")

    storage = config["storage"]
    if storage["backend"] not in STORAGE_BACKENDS:
        raise ValueError(f"storage.backend must be one of {STORAGE_BACKENDS}, got {storage['backend']!r}")
    if storage["retention_days"] < 0:
        raise ValueError(f"storage.retention_days must be >= 0, got {storage['retention_days']!r}")

    if config["session"]["ttl_days"] <= 0:
        raise ValueError(f"session.ttl_days must be positive, got {config['session']['ttl_days']!r}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load, complete and validate a YAML configuration file.

    Args:
        config_path: Optional path to the config file. Falls back to
                     $FACEID_CONFIG, then to config.yaml in the project root.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If a setting is out of range.
    """
    config_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    path = Path(config_path) if config_path else get_project_root() / "config.yaml"

    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping of sections")

    config = _with_defaults(raw)
    validate_config(config)
    return config


def get_config(reload: bool = False) -> Dict[str, Any]:
    """Return the process-wide configuration, loading it on first use."""
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = load_config()

    return _config_instance


def set_config(config: Optional[Dict[str, Any]]) -> None:
    """Replace the cached configuration (None clears it)."""
    global _config_instance
    _config_instance = config


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Get one section of the configuration.

    Raises:
        KeyError: If the section doesn't exist.
    """
    config = get_config()
    try:
        return config[section_name]
    except KeyError:
        raise KeyError(f"No '{section_name}' section in configuration (have: {sorted(config)})") from None


def get_matching_config() -> Dict[str, Any]:
    return get_section("matching")


def get_storage_config() -> Dict[str, Any]:
    return get_section("storage")


def get_session_config() -> Dict[str, Any]:
    """
    Get session credential configuration.

    The signing key from $FACEID_SECRET_KEY wins over the file value so
    that production keys never have to live in config.yaml.

    Raises:
        ValueError: If neither source provides a signing key.
    """
    section = dict(get_section("session"))
    secret = os.environ.get(SECRET_ENV_VAR)
    if secret:
        section["secret_key"] = secret
    if not section.get("secret_key"):
        raise ValueError(f"No session signing key: set session.secret_key or {SECRET_ENV_VAR}")
    return section


def get_api_config() -> Dict[str, Any]:
    return get_section("api")


def get_server_config() -> Dict[str, Any]:
    """
    Bind address for uvicorn, derived from api.base_url.

    A localhost base URL binds every interface; a missing or unparsable
    port falls back to 8000.
    """
    parts = urlsplit(get_api_config().get("base_url", "http://localhost:8000"))

    host = parts.hostname or "localhost"
    if host == "localhost":
        host = "0.0.0.0"

    try:
        port = parts.port or 8000
    except ValueError:
        port = 8000

    return {"host": host, "port": port}
