"""
Configuration loader for the ConverseScript dialog engine.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class DialogConfig:
    default_thread: str = "default"
    multiple_separator: str = "\n"      # joins repeated captures for collect.multiple
    max_steps_per_turn: int = 50        # stops runaway jump/repeat loops
    random_seed: Optional[int] = None   # fixes text-variant selection when set


@dataclass
class Settings:
    app_name: str = "ConverseScript"
    debug: bool = False
    dialogs: DialogConfig = field(default_factory=DialogConfig)
    scripts: dict[str, dict[str, list[Any]]] = field(default_factory=dict)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "SCRIPTFLOW_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "dialogs" in raw:
            d = raw["dialogs"] or {}
            defaults = DialogConfig()
            seed = d.get("random_seed", defaults.random_seed)
            settings.dialogs = DialogConfig(
                default_thread=d.get("default_thread", defaults.default_thread),
                multiple_separator=d.get("multiple_separator", defaults.multiple_separator),
                max_steps_per_turn=int(d.get("max_steps_per_turn", defaults.max_steps_per_turn)),
                random_seed=int(seed) if seed is not None else None,
            )

        settings.scripts = raw.get("scripts", {}) or {}

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
