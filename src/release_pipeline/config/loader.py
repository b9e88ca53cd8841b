"""Configuration loading from pyproject.toml."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from release_pipeline.config.models import ReleasePipelineConfig
from release_pipeline.exceptions import ConfigNotFoundError, ConfigValidationError

TOOL_KEY = "release-pipeline"


def find_pyproject_toml(start: Path | None = None) -> Path:
    """Walk up from ``start`` until a pyproject.toml is found.

    Raises:
        ConfigNotFoundError: If no pyproject.toml exists in the tree
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    raise ConfigNotFoundError(f"No pyproject.toml found in {current} or its parents")


def load_pyproject_toml(path: Path) -> dict[str, Any]:
    """Parse a pyproject.toml file."""
    if not path.is_file():
        raise ConfigNotFoundError(f"Configuration file not found: {path}")
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise ConfigValidationError(f"Invalid TOML in {path}: {e}") from e


def extract_config(pyproject: dict[str, Any]) -> dict[str, Any]:
    """Return the [tool.release-pipeline] table, or an empty dict."""
    tool = pyproject.get("tool", {})
    section = tool.get(TOOL_KEY, {})
    return dict(section) if isinstance(section, dict) else {}


def load_config(path: Path | None = None) -> ReleasePipelineConfig:
    """Load and validate configuration for the project at ``path``.

    Args:
        path: Project directory (or pyproject.toml itself); defaults to cwd

    Returns:
        Validated configuration; defaults when no section is present

    Raises:
        ConfigNotFoundError: If pyproject.toml is missing
        ConfigValidationError: If the section fails validation
    """
    if path is not None and path.is_file():
        pyproject_path = path
    else:
        pyproject_path = find_pyproject_toml(path)

    raw = extract_config(load_pyproject_toml(pyproject_path))
    try:
        return ReleasePipelineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid [tool.{TOOL_KEY}] configuration:\n{e}") from e


def get_project_name(path: Path | None = None) -> str:
    """Return [project].name (or [tool.poetry].name)."""
    data = load_pyproject_toml(find_pyproject_toml(path))
    name = data.get("project", {}).get("name") or (
        data.get("tool", {}).get("poetry", {}).get("name")
    )
    if not name:
        raise ConfigValidationError("Project name not found in pyproject.toml")
    return str(name)
