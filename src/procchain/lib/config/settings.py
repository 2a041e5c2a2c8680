"""Operational config loader for procchain."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import cast

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "procchain.toml"


@dataclass(frozen=True, slots=True)
class ProcchainConfig:
    """Resolved operational configuration for procchain."""

    timeout_seconds: float = 0.0
    kill_grace_seconds: float = 2.0


_SECTION_KEY_MAP: dict[str, dict[str, str]] = {
    "timeouts": {
        "seconds": "timeout_seconds",
        "timeout_seconds": "timeout_seconds",
        "kill_grace_seconds": "kill_grace_seconds",
    },
}

_TOP_LEVEL_KEY_MAP: dict[str, str] = {
    "timeout_seconds": "timeout_seconds",
    "kill_grace_seconds": "kill_grace_seconds",
}

_ENV_OVERRIDE_MAP: dict[str, str] = {
    "PROCCHAIN_TIMEOUT_SECONDS": "timeout_seconds",
    "PROCCHAIN_KILL_GRACE_SECONDS": "kill_grace_seconds",
}


def _coerce_float(*, raw_value: object, source: str) -> float:
    if isinstance(raw_value, bool) or not isinstance(raw_value, int | float):
        raise ValueError(
            f"Invalid value for '{source}': expected float, got "
            f"{type(raw_value).__name__} ({raw_value!r})."
        )
    value = float(raw_value)
    if value < 0:
        raise ValueError(f"Invalid value for '{source}': expected a value >= 0, got {value}.")
    return value


def _coerce_env_value(*, raw_value: str, source: str) -> float:
    try:
        parsed = float(raw_value.strip())
    except ValueError as exc:
        raise ValueError(
            f"Invalid value for '{source}': expected float, got {raw_value!r}."
        ) from exc
    return _coerce_float(raw_value=parsed, source=source)


def _apply_table(values: dict[str, object], table: dict[str, object]) -> None:
    for key, raw_value in table.items():
        section_map = _SECTION_KEY_MAP.get(key)
        if section_map is not None:
            if not isinstance(raw_value, dict):
                raise ValueError(f"Invalid value for '{key}': expected table.")
            for sub_key, sub_value in cast("dict[str, object]", raw_value).items():
                field_name = section_map.get(sub_key)
                if field_name is None:
                    logger.warning("Ignoring unknown procchain config key '%s.%s'.", key, sub_key)
                    continue
                values[field_name] = _coerce_float(
                    raw_value=sub_value, source=f"{key}.{sub_key}"
                )
            continue

        field_name = _TOP_LEVEL_KEY_MAP.get(key)
        if field_name is None:
            logger.warning("Ignoring unknown procchain config key '%s'.", key)
            continue
        values[field_name] = _coerce_float(raw_value=raw_value, source=key)


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    return cast("dict[str, object]", payload)


def load_config(
    path: Path | None = None,
    *,
    env: dict[str, str] | None = None,
) -> ProcchainConfig:
    """Load config from a TOML file, then apply ``PROCCHAIN_*`` env overrides.

    Without an explicit path, ``procchain.toml`` in the working directory is
    read when it exists. An explicit path that does not exist is an error.
    """

    values: dict[str, object] = {}
    config_path = path if path is not None else Path.cwd() / DEFAULT_CONFIG_FILENAME
    if path is not None or config_path.is_file():
        _apply_table(values, _read_config_file(config_path))

    environ = os.environ if env is None else env
    for env_name, field_name in _ENV_OVERRIDE_MAP.items():
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        values[field_name] = _coerce_env_value(raw_value=raw, source=env_name)

    known = {item.name for item in fields(ProcchainConfig)}
    return replace(ProcchainConfig(), **{k: v for k, v in values.items() if k in known})
