# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# CONFIGURATION LOADER
# -----------------------------------------------------------------------------
# Responsibility: Produce one immutable BuildConfiguration per invocation by
# deep-merging defaults with the project's beni.config.yaml.
#
# A malformed file is never fatal: the loader prints an advisory and falls
# back to the defaults. Ports can be overridden from the environment (.env).
# -----------------------------------------------------------------------------

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from beni.domain.models import BuildConfiguration

console = Console()

CONFIG_FILENAME = "beni.config.yaml"

# Environment overrides (VAR -> dotted config key)
ENV_OVERRIDES = {
    "BENI_DEV_PORT": "dev_server.port",
    "BENI_DEV_HOST": "dev_server.host",
    "BENI_SERVE_PORT": "prod_server.port",
    "BENI_SERVE_HOST": "prod_server.host",
}


class ConfigLoadError(Exception):
    """Raised when beni.config.yaml cannot be parsed or validated."""

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(message)
        self.path = path


def default_config(root: Path) -> BuildConfiguration:
    """Return the built-in defaults anchored at the project root."""
    return BuildConfiguration(root=root.resolve())


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge two nested mappings; values from override win.

    Nested dicts are merged key by key, every other value (lists included)
    is replaced wholesale.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def read_config_file(path: Path) -> dict[str, Any]:
    """
    Read and parse a YAML configuration file.

    Returns:
        The parsed mapping ({} for an empty file).

    Raises:
        ConfigLoadError: If the YAML is malformed or not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Malformed YAML in {path.name}: {e}", path) from e
    except OSError as e:
        raise ConfigLoadError(f"Cannot read {path}: {e}", path) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"{path.name} must contain a mapping at the root", path)
    return data


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    for var, dotted in ENV_OVERRIDES.items():
        value = os.getenv(var)
        if not value:
            continue
        section, key = dotted.split(".")
        data.setdefault(section, {})
        if not isinstance(data[section], dict):
            data[section] = {}
        data[section][key] = value
    return data


def load_config(root: Path, config_path: Path | None = None) -> BuildConfiguration:
    """
    Load the configuration of the project rooted at root.

    Args:
        root: Project root directory.
        config_path: Explicit configuration file (defaults to
            <root>/beni.config.yaml).

    Returns:
        A frozen BuildConfiguration. Falls back to defaults (with a warning)
        when the file is malformed or fails validation.
    """
    root = root.resolve()
    load_dotenv(root / ".env")
    path = config_path or root / CONFIG_FILENAME
    defaults = default_config(root).model_dump(exclude={"root"})

    overrides: dict[str, Any] = {}
    if path.exists():
        try:
            overrides = read_config_file(path)
        except ConfigLoadError as e:
            console.print(f"[yellow][CONFIG] {e} - using defaults[/yellow]")
            overrides = {}
    else:
        console.print(f"[dim][CONFIG] {path.name} not found, using defaults[/dim]")

    merged = _apply_env_overrides(deep_merge(defaults, overrides))
    merged.pop("root", None)

    try:
        config = BuildConfiguration(root=root, **merged)
    except ValidationError as e:
        error = ConfigLoadError(f"Invalid configuration in {path.name}: {e}", path)
        console.print(f"[yellow][CONFIG] {error} - using defaults[/yellow]")
        # Environment overrides still apply on top of pure defaults
        try:
            config = BuildConfiguration(root=root, **_apply_env_overrides(defaults))
        except ValidationError:
            config = default_config(root)

    console.print(f"[dim][CONFIG] Project root: {root}[/dim]")
    return config
