from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional


CONFIG_ENV = "RETROEMU_CONFIG"
WORKSPACE_ENV = "RETROEMU_WORKSPACE"

INT_SETTINGS = {
    "asm_step_limit": (1, 1_000_000),
    "pascal_step_limit": (1, 10_000_000),
    "memory_dump_size": (0, 0x10000),
}


class ConfigError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class EmulatorConfig:
    workspace: Path = Path("workspace")
    asm_step_limit: int = 1000
    pascal_step_limit: int = 10000
    memory_dump_size: int = 256


def _load_json(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config: {exc}") from exc


def _validate(data: dict, path: Path) -> EmulatorConfig:
    if not isinstance(data, dict):
        raise ConfigError("Config must be a JSON object.")
    unknown = set(data) - set(INT_SETTINGS) - {"workspace"}
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
    config = EmulatorConfig()
    workspace = data.get("workspace")
    if workspace is not None:
        if not isinstance(workspace, str) or not workspace.strip():
            raise ConfigError("workspace must be a non-empty string.")
        resolved = Path(workspace).expanduser()
        if not resolved.is_absolute():
            resolved = path.parent / resolved
        config = replace(config, workspace=resolved)
    for key, (low, high) in INT_SETTINGS.items():
        if key not in data:
            continue
        value = data[key]
        # bool is an int subclass
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(f"{key} must be an integer.")
        if not low <= value <= high:
            raise ConfigError(f"{key} must be between {low} and {high}.")
        config = replace(config, **{key: value})
    return config


def load_config(path: Path | str | None = None) -> EmulatorConfig:
    """Build the configuration from an optional JSON file and the environment.

    The file named by ``path`` (or ``$RETROEMU_CONFIG``) supplies the base
    values; ``$RETROEMU_WORKSPACE`` overrides the workspace directory.
    """
    config_path: Optional[Path] = None
    if path is not None:
        config_path = Path(path)
    elif os.environ.get(CONFIG_ENV):
        config_path = Path(os.environ[CONFIG_ENV])

    if config_path is None:
        config = EmulatorConfig()
    else:
        resolved = config_path.expanduser().resolve()
        config = _validate(_load_json(resolved), resolved)

    workspace_override = os.environ.get(WORKSPACE_ENV)
    if workspace_override:
        config = replace(config, workspace=Path(workspace_override).expanduser())
    return config
