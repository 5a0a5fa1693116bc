"""
Settings persistence: Config <-> JSON document.

Missing keys keep their defaults, unknown keys are ignored with a warning,
and values that do not validate raise ConfigurationError.
"""

import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Union

from config import (
    Config,
    ConfigurationError,
    RodConfig,
    SETTINGS_VERSION,
    SawToothConfig,
    SineConfig,
    SquareWaveConfig,
)

logger = logging.getLogger(__name__)

_SECTIONS = {
    "square_wave": SquareWaveConfig,
    "sine": SineConfig,
    "saw_tooth": SawToothConfig,
}


def _known(cls, data: Dict[str, Any], where: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ConfigurationError(f"{where}: expected an object, got {type(data).__name__}")
    names = {f.name for f in fields(cls)}
    for key in data.keys() - names:
        logger.warning("ignoring unknown settings key %s.%s", where, key)
    return {k: v for k, v in data.items() if k in names}


def _build(cls, data: Dict[str, Any], where: str):
    try:
        return cls(**_known(cls, data, where))
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{where}: {e}") from e


def config_to_dict(cfg: Config) -> Dict[str, Any]:
    data = asdict(cfg)
    data["settings_version"] = SETTINGS_VERSION
    return data


def config_from_dict(data: Dict[str, Any]) -> Config:
    if not isinstance(data, dict):
        raise ConfigurationError("settings document must be a JSON object")
    data = dict(data)
    version = data.pop("settings_version", None)
    if version is not None and version != SETTINGS_VERSION:
        logger.warning("settings version %s differs from %s, loading what matches", version, SETTINGS_VERSION)

    kwargs = _known(Config, data, "settings")
    if "rods" in kwargs:
        rods = kwargs["rods"]
        if not isinstance(rods, list):
            raise ConfigurationError("settings.rods must be a list")
        kwargs["rods"] = [_build(RodConfig, r, f"rods[{i}]") for i, r in enumerate(rods)]
    for key, cls in _SECTIONS.items():
        if key in kwargs:
            kwargs[key] = _build(cls, kwargs[key], key)
    return _build(Config, kwargs, "settings")


def save_settings(cfg: Config, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_text(json.dumps(config_to_dict(cfg), indent=2), encoding="utf-8")
    logger.debug("saved settings to %s", path)
    return path


def load_settings(path: Union[str, Path]) -> Config:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path}: not valid JSON ({e})") from e
    cfg = config_from_dict(data)
    logger.debug("loaded settings from %s (%d rods)", path, len(cfg.rods))
    return cfg
