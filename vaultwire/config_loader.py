"""Config Loader - Builds a VaultConfig from YAML or the process environment.

YAML files support ${ENV_VAR} substitution in any string value. A PEM file
referenced by ssl.pem_file (YAML) or VAULT_SSL_CERT (environment) is read
at load time so the resulting config carries the certificate text itself.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from vaultwire.errors import VaultError
from vaultwire.models import VaultConfig


class ConfigError(VaultError):
    """Raised when configuration loading fails."""


_FALSE_VALUES = {"false", "0", "no", "off"}


def load_config(config_path: Path) -> VaultConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    ssl_section = raw_config.get("ssl")
    if isinstance(ssl_section, dict) and "pem_file" in ssl_section:
        ssl_section = dict(ssl_section)
        pem_path = _resolve_relative(config_path, str(ssl_section.pop("pem_file")))
        ssl_section["pem_utf8"] = load_pem(pem_path)
        raw_config["ssl"] = ssl_section

    try:
        return VaultConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def load_config_from_env(
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> VaultConfig:
    """Build a config from VAULT_* environment variables.

    Explicit keyword overrides win over the environment. Recognized variables:
    VAULT_ADDR, VAULT_TOKEN, VAULT_NAMESPACE, VAULT_OPEN_TIMEOUT,
    VAULT_READ_TIMEOUT, VAULT_SSL_VERIFY, VAULT_SSL_CERT (path to a PEM
    file), VAULT_MAX_RETRIES, VAULT_RETRY_INTERVAL_MS, VAULT_ENGINE_VERSION.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    simple = {
        "VAULT_ADDR": "address",
        "VAULT_TOKEN": "token",
        "VAULT_NAMESPACE": "namespace",
        "VAULT_OPEN_TIMEOUT": "open_timeout",
        "VAULT_READ_TIMEOUT": "read_timeout",
        "VAULT_MAX_RETRIES": "max_retries",
        "VAULT_RETRY_INTERVAL_MS": "retry_interval_ms",
        "VAULT_ENGINE_VERSION": "engine_version",
    }
    for env_name, field_name in simple.items():
        value = env.get(env_name)
        if value:
            values[field_name] = value

    # Literal[1, 2] does not coerce strings
    if "engine_version" in values:
        try:
            values["engine_version"] = int(values["engine_version"])
        except ValueError as e:
            raise ConfigError(f"VAULT_ENGINE_VERSION must be 1 or 2: {e}") from e

    ssl_values: dict[str, Any] = {}
    verify = env.get("VAULT_SSL_VERIFY")
    if verify:
        ssl_values["verify"] = verify.strip().lower() not in _FALSE_VALUES
    cert_path = env.get("VAULT_SSL_CERT")
    if cert_path:
        ssl_values["pem_utf8"] = load_pem(Path(cert_path))
    if ssl_values:
        values["ssl"] = ssl_values

    values.update({k: v for k, v in overrides.items() if v is not None})

    if "address" not in values:
        raise ConfigError("No address configured: set VAULT_ADDR or pass address=")

    try:
        return VaultConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration from environment: {e}") from e


def load_pem(pem_path: Path) -> str:
    """Read a PEM certificate file as UTF-8 text."""
    if not pem_path.exists():
        raise ConfigError(f"PEM file not found: {pem_path}")
    try:
        return pem_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read PEM file {pem_path}: {e}") from e


def _resolve_relative(config_path: Path, ref: str) -> Path:
    """Resolve ref relative to config_path's directory. Absolute paths pass through."""
    path = Path(ref)
    if path.is_absolute():
        return path
    return (config_path.parent / path).resolve()


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return pattern.sub(replacer, s)
