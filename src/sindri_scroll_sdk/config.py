"""
Configuration loading for the Sindri cloud prover.

The configuration document is the JSON file mounted by the Helm chart
(``/sdk_prover/config.json``); TOML documents with the same layout are accepted
as well. The lookup order for the file is:

1. Explicit ``path`` argument.
2. ``SINDRI_CONFIG_PATH`` environment variable.
3. ``config.json`` in the current working directory.

Call :func:`load_config_from_env` to retrieve a :class:`CloudProverConfig` with
environment overrides applied (``PROVING_SERVICE_BASE_URL``,
``PROVING_SERVICE_API_KEY`` and the SDK-level variables listed in
:data:`SDK_ENV_OVERRIDES`).
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .adapters.base import ConfigError

DEFAULT_CONFIG_FILENAME = "config.json"
ENV_CONFIG_PATH = "SINDRI_CONFIG_PATH"
ENV_BASE_URL = "PROVING_SERVICE_BASE_URL"
ENV_API_KEY = "PROVING_SERVICE_API_KEY"

DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_WAIT_TIME_SEC = 5
DEFAULT_CONNECTION_TIMEOUT_SEC = 60


@dataclass(frozen=True, slots=True)
class CoordinatorConfig:
    """Connection settings for the Scroll coordinator the SDK runtime talks to."""

    base_url: str = ""
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_wait_time_sec: int = DEFAULT_RETRY_WAIT_TIME_SEC
    connection_timeout_sec: int = DEFAULT_CONNECTION_TIMEOUT_SEC


@dataclass(frozen=True, slots=True)
class L2GethConfig:
    endpoint: str = ""


@dataclass(frozen=True, slots=True)
class ProverSettings:
    """Which circuits the runtime requests from this prover and how many tasks run at once."""

    circuit_types: List[int] = field(default_factory=list)
    circuit_version: str = ""
    n_workers: int = 1


@dataclass(frozen=True, slots=True)
class SdkConfig:
    """Settings for the generic proving SDK runtime that wraps the adapter."""

    prover_name_prefix: str = ""
    keys_dir: str = "keys"
    db_path: str = "db"
    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
    l2geth: L2GethConfig = field(default_factory=L2GethConfig)
    prover: ProverSettings = field(default_factory=ProverSettings)
    health_listener_addr: str = ""


# environment variable -> (section, attribute); ``None`` section means top level of SdkConfig
SDK_ENV_OVERRIDES: Dict[str, tuple[Optional[str], str]] = {
    "COORDINATOR_BASE_URL": ("coordinator", "base_url"),
    "L2GETH_ENDPOINT": ("l2geth", "endpoint"),
    "PROVER_NAME_PREFIX": (None, "prover_name_prefix"),
    "KEYS_DIR": (None, "keys_dir"),
    "DB_PATH": (None, "db_path"),
}


@dataclass(frozen=True, slots=True)
class CloudProverConfig:
    """
    Immutable settings for :class:`~sindri_scroll_sdk.adapters.api.sindri.CloudProver`.

    Attributes
    ----------
    sdk_config:
        Nested settings for the SDK runtime.
    base_url:
        Sindri host, e.g. ``https://sindri.app``. The API root is derived from it.
    api_key:
        Bearer credential. May be empty; calls then fail at request time.
    retry_count:
        Maximum number of retries for a single HTTP call.
    retry_wait_time_sec:
        Upper bound of the backoff delay. The lower bound is half of it.
    connection_timeout_sec:
        Timeout applied to each HTTP attempt.
    """

    base_url: str
    api_key: str = ""
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_wait_time_sec: float = DEFAULT_RETRY_WAIT_TIME_SEC
    connection_timeout_sec: float = DEFAULT_CONNECTION_TIMEOUT_SEC
    sdk_config: SdkConfig = field(default_factory=SdkConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CloudProverConfig":
        if not isinstance(raw, Mapping):
            raise ConfigError("Configuration document must be an object.")
        base_url = _extract_str(raw, "base_url")
        if base_url is None:
            raise ConfigError("Configuration is missing 'base_url'.")
        return cls(
            base_url=base_url,
            api_key=_extract_str(raw, "api_key") or "",
            retry_count=_extract_int(raw, "retry_count", DEFAULT_RETRY_COUNT),
            retry_wait_time_sec=_extract_number(raw, "retry_wait_time_sec", DEFAULT_RETRY_WAIT_TIME_SEC),
            connection_timeout_sec=_extract_number(raw, "connection_timeout_sec", DEFAULT_CONNECTION_TIMEOUT_SEC),
            sdk_config=_extract_sdk_config(raw.get("sdk_config")),
        )

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "CloudProverConfig":
        env = os.environ if environ is None else environ
        updated = self
        if ENV_BASE_URL in env:
            updated = replace(updated, base_url=env[ENV_BASE_URL])
        if ENV_API_KEY in env:
            updated = replace(updated, api_key=env[ENV_API_KEY])

        sdk = updated.sdk_config
        for variable, (section, attribute) in SDK_ENV_OVERRIDES.items():
            if variable not in env:
                continue
            value = env[variable]
            if section is None:
                sdk = replace(sdk, **{attribute: value})
            else:
                nested = replace(getattr(sdk, section), **{attribute: value})
                sdk = replace(sdk, **{section: nested})
        return replace(updated, sdk_config=sdk)


def _extract_str(section: Mapping[str, Any], key: str) -> Optional[str]:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string.")
    return value


def _extract_int(section: Mapping[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"'{key}' must be a non-negative integer.")
    return value


def _extract_number(section: Mapping[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"'{key}' must be a non-negative number.")
    return float(value)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{key}' must be an object.")
    return value


def _extract_sdk_config(raw: Any) -> SdkConfig:
    if raw is None:
        return SdkConfig()
    if not isinstance(raw, Mapping):
        raise ConfigError("'sdk_config' must be an object.")

    coordinator = _section(raw, "coordinator")
    l2geth = _section(raw, "l2geth")
    prover = _section(raw, "prover")

    circuit_types = prover.get("circuit_types", [])
    if not isinstance(circuit_types, list) or not all(isinstance(item, int) for item in circuit_types):
        raise ConfigError("'prover.circuit_types' must be a list of integers.")

    return SdkConfig(
        prover_name_prefix=_extract_str(raw, "prover_name_prefix") or "",
        keys_dir=_extract_str(raw, "keys_dir") or "keys",
        db_path=_extract_str(raw, "db_path") or "db",
        coordinator=CoordinatorConfig(
            base_url=_extract_str(coordinator, "base_url") or "",
            retry_count=_extract_int(coordinator, "retry_count", DEFAULT_RETRY_COUNT),
            retry_wait_time_sec=_extract_int(coordinator, "retry_wait_time_sec", DEFAULT_RETRY_WAIT_TIME_SEC),
            connection_timeout_sec=_extract_int(coordinator, "connection_timeout_sec", DEFAULT_CONNECTION_TIMEOUT_SEC),
        ),
        l2geth=L2GethConfig(endpoint=_extract_str(l2geth, "endpoint") or ""),
        prover=ProverSettings(
            circuit_types=list(circuit_types),
            circuit_version=_extract_str(prover, "circuit_version") or "",
            n_workers=_extract_int(prover, "n_workers", 1),
        ),
        health_listener_addr=_extract_str(raw, "health_listener_addr") or "",
    )


def _resolve_path(path: Optional[Path | str]) -> Path:
    if path:
        return Path(path).expanduser()
    env_override = os.getenv(ENV_CONFIG_PATH)
    if env_override:
        return Path(env_override).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


def _load_document(path: Path) -> Mapping[str, Any]:
    try:
        if path.suffix.lower() == ".toml":
            with path.open("rb") as handle:
                return tomllib.load(handle)
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file '{path}' does not exist.") from exc
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to parse configuration file '{path}': {exc}") from exc


def load_config(path: Optional[Path | str] = None) -> CloudProverConfig:
    """Read the configuration document without applying environment overrides."""

    return CloudProverConfig.from_mapping(_load_document(_resolve_path(path)))


def load_config_from_env(path: Optional[Path | str] = None, *, environ: Optional[Mapping[str, str]] = None) -> CloudProverConfig:
    """
    Read the configuration document and apply environment overrides.

    Parameters
    ----------
    path:
        Configuration file. Falls back to ``SINDRI_CONFIG_PATH`` then ``./config.json``.
    environ:
        Mapping used instead of :data:`os.environ`; handy in tests.
    """

    return load_config(path).with_env_overrides(environ)
