# src/meshlab/config/loader.py

import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import ValidationError

from .models import MeshConfig

# directory settings; relative values in a config file are relative to that file
PATH_KEYS = ("charts_dir", "manifests_dir")


class ConfigError(ValueError):
    pass


def load_config(
    path: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> MeshConfig:
    """
    Build the run's MeshConfig.

    Values come from the optional YAML file (with ${VAR} expansion) and are
    then overlaid by `overrides`; keys whose value is None are ignored so
    unset CLI flags never mask the file. Relative directories from the file
    are anchored at the file's directory; relative overrides are left for
    `MeshConfig.resolve_paths`.
    """
    data: dict = {}

    if path is not None:
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f"config file not found: {p}")
        # expand environment variables like ${KUBE_CONTEXT}
        expanded = os.path.expandvars(p.read_text())
        loaded = yaml.safe_load(expanded) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{p}: expected a mapping at the top level")
        data.update({k.replace("-", "_"): v for k, v in loaded.items()})
        for key in PATH_KEYS:
            if data.get(key):
                value = Path(str(data[key])).expanduser()
                data[key] = value if value.is_absolute() else p.resolve().parent / value

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return MeshConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
