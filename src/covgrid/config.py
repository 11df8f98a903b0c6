#!/usr/bin/env python3
"""covgrid.config

Shared configuration utilities for covgrid CLI subsystems.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Settings are layered: DEFAULT_SETTINGS < YAML `covariates:` < CLI flags.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    Config errors should fail fast.
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def load_covariates_yaml(path: Path) -> Dict[str, Any]:
    """Load the `covariates:` section of a config YAML.

    Expects structure like:
        covariates:
          formula: "~ depth + temp"
          covariate_data: data/interim/tables/covariates.csv
          ...

    Raises ValueError if structure is invalid.
    """
    data = load_yaml(path)
    section = data.get("covariates")
    if not isinstance(section, dict):
        raise ValueError(f"{path} must have a top-level 'covariates:' mapping.")
    return section


# -----------------------------------------------------------------------------
# Settings precedence
# -----------------------------------------------------------------------------

def merge_settings(
    default: Mapping[str, Any],
    override: Mapping[str, Any],
    keys: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Combine two mappings, with `override` taking precedence over `default`.

    Keys only present in `override` are appended after the defaults. If `keys`
    is given, the result is restricted to those keys (in result order).
    """
    out = dict(default)
    for k, v in override.items():
        out[k] = v
    if keys is not None:
        wanted = set(keys)
        out = {k: v for k, v in out.items() if k in wanted}
    return out


def drop_unset(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop None values, so unset CLI flags don't override config."""
    return {k: v for k, v in values.items() if v is not None}


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_COVARIATES_YAML = Path("config/covariates.yaml")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "formula": None,
    "covariate_data": None,
    "sample_locations": None,
    "grid_cells": None,
    "out": "data/processed/covariates.npz",
    "sd_threshold": 10.0,
}
