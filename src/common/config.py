"""Runtime settings.

Values are layered, later layers winning:

1. Built-in defaults from ``constants.Constants``.
2. A YAML file: the explicit path, ``$ROCKYARD_CONFIG``, ``./.rockyard.yaml``
   or ``~/.config/rockyard/config.yaml`` (first one found).
3. ``ROCKYARD_*`` environment variables (``ROCKYARD_STRICT=false``).
4. Explicit overrides, usually from a parsed CLI namespace.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

from common.errors import ConfigError
from constants import Constants
from versioning.models import ResolutionStrategy

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Tunables shared by the resolver, lockfile manager and installer."""

    registry_url: str = Constants.REGISTRY_URL
    resolution_strategy: ResolutionStrategy = ResolutionStrategy.HIGHEST
    strict: bool = True
    checksum_algorithm: str = Constants.DEFAULT_CHECKSUM_ALGORITHM
    max_concurrency: int = Constants.MAX_CONCURRENT_INSTALLS
    fail_fast: bool = False
    request_timeout: float = Constants.REQUEST_TIMEOUT
    retry_max: int = Constants.HTTP_RETRY_MAX
    retry_base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC
    verify_checksums: bool = True
    install_dir: str = Constants.INSTALL_DIR

    def merged(self, overrides: Mapping[str, Any], origin: str = "overrides") -> "Settings":
        """Return a copy with ``overrides`` coerced and applied."""
        known = {f.name: f for f in dataclasses.fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            name = str(key).replace("-", "_").lower()
            if name not in known:
                raise ConfigError(f"{origin}: unknown setting '{key}'")
            if value is None:
                continue
            changes[name] = _coerce(name, value, origin)
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_args(cls, args: Any, base: Optional["Settings"] = None) -> "Settings":
        """Apply attributes of an argparse-style namespace on top of ``base``.

        Attributes that are missing or None leave the base value untouched.
        """
        settings = base if base is not None else load_settings(getattr(args, "config", None))
        overrides = {}
        for f in dataclasses.fields(cls):
            value = getattr(args, f.name, None)
            if value is not None:
                overrides[f.name] = value
        return settings.merged(overrides, origin="arguments")


def _coerce(name: str, value: Any, origin: str) -> Any:
    try:
        if name == "resolution_strategy":
            return ResolutionStrategy.parse(value)
        if name in ("strict", "fail_fast", "verify_checksums"):
            return _to_bool(value)
        if name in ("max_concurrency", "retry_max"):
            number = int(value)
            if number < 1:
                raise ValueError("must be at least 1")
            return number
        if name in ("request_timeout", "retry_base_delay"):
            number = float(value)
            if number < 0:
                raise ValueError("must not be negative")
            return number
        if name == "checksum_algorithm":
            algo = str(value).strip().lower()
            if algo not in Constants.SUPPORTED_CHECKSUM_ALGORITHMS:
                raise ValueError(
                    f"unsupported algorithm; use one of {', '.join(Constants.SUPPORTED_CHECKSUM_ALGORITHMS)}"
                )
            return algo
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{origin}: invalid value for {name}: {value!r} ({exc})") from None


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError("expected a boolean")


def _find_config_file(path: Optional[str], environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"Config file not found: {path}")
        return path
    env = os.environ if environ is None else environ
    env_path = env.get(Constants.ENV_CONFIG)
    if env_path:
        if not os.path.isfile(env_path):
            raise ConfigError(f"Config file not found: {env_path} (from {Constants.ENV_CONFIG})")
        return env_path
    for candidate in Constants.CONFIG_SEARCH_PATHS:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            return expanded
    return None


def load_config_file(path: str) -> Dict[str, Any]:
    """Read a YAML settings file; an empty file yields an empty mapping."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect ``ROCKYARD_<SETTING>`` variables that name a known setting."""
    env = os.environ if environ is None else environ
    names = {f.name for f in dataclasses.fields(Settings)}
    found = {}
    for key, value in env.items():
        if not key.startswith(Constants.ENV_PREFIX):
            continue
        name = key[len(Constants.ENV_PREFIX):].lower()
        if name in names:
            found[name] = value
    return found


def load_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from defaults, the YAML file and the environment."""
    settings = Settings()
    config_path = _find_config_file(path, environ)
    if config_path:
        logger.debug("Loading settings from %s", config_path)
        settings = settings.merged(load_config_file(config_path), origin=config_path)
    return settings.merged(env_overrides(environ), origin="environment")
