from __future__ import annotations
import os
import re
from dotenv import load_dotenv
import yaml

from timetrack.errors import ConfigError

load_dotenv()

DEFAULT_CONFIG_PATH = os.path.join("config", "config.yaml")

_ENV_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

def _env_expand(value: str) -> str:
    # supports ${VAR} interpolation for YAML strings
    def repl(m):
        return os.getenv(m.group(1), "")
    return _ENV_PATTERN.sub(repl, value)

def load_config(path: str = DEFAULT_CONFIG_PATH) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Error loading config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error decoding config file {path}: {exc}") from exc
    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    # recursively expand env vars
    def walk(obj):
        if isinstance(obj, dict):
            return {k: walk(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        if isinstance(obj, str):
            return _env_expand(obj)
        return obj
    return walk(cfg)

def section(config: dict, name: str) -> dict:
    """Return a required mapping section of the config."""
    value = (config or {}).get(name)
    if not isinstance(value, dict):
        raise ConfigError(f"Missing '{name}' section in config")
    return value

def require(cfg: dict, section_name: str, key: str) -> str:
    value = cfg.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(f"Missing '{section_name}.{key}' in config")
    return value

def number(cfg: dict, section_name: str, key: str, default, kind=int):
    """Optional numeric setting; ``default`` when unset."""
    value = cfg.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{section_name}.{key}' must be a number, got {value!r}") from exc
