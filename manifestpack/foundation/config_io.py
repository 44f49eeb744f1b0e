from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

import yaml

CONFIG_ENV_VAR = "MANIFESTPACK_CONFIG"
CONFIG_FILE_NAME = "manifestpack.yaml"
LOCAL_CONFIG_FILE_NAME = "manifestpack.local.yaml"


def _load_yaml_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except FileNotFoundError:
        raise
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def deep_merge(base: Any, overlay: Any, *, path: str = "") -> Any:
    """Merge `overlay` onto `base`; mappings recurse, lists and scalars replace.

    A None overlay value leaves the base value in place, so unset CLI flags can
    be merged without masking the config file.
    """

    if overlay is None:
        return base

    if base is None:
        return overlay

    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ValueError(
                f"Invalid config overlay merge at {path}: base is mapping but overlay is {type(overlay).__name__}"
            )
        merged: dict[str, Any] = dict(base)
        for key, overlay_value in overlay.items():
            next_path = f"{path}.{key}" if path else str(key)
            if key in base:
                merged[key] = deep_merge(base[key], overlay_value, path=next_path)
            elif overlay_value is not None:
                merged[key] = overlay_value
        return merged

    if isinstance(base, (list, tuple)):
        if not isinstance(overlay, (list, tuple)):
            raise ValueError(
                f"Invalid config overlay merge at {path}: base is list but overlay is {type(overlay).__name__}"
            )
        return list(overlay)

    if isinstance(overlay, (Mapping, list, tuple)):
        raise ValueError(
            f"Invalid config overlay merge at {path}: base is {type(base).__name__} but overlay is {type(overlay).__name__}"
        )

    return overlay


def load_config(
    *,
    config_path: str | None = None,
    env_var: str | None = CONFIG_ENV_VAR,
    start_dir: str | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Load run settings from YAML, returning (config, meta).

    Resolution order:
      1. `config_path` (explicit), or the file named by `env_var`: single file, no overlay.
      2. `<start_dir>/manifestpack.yaml` with `manifestpack.local.yaml` merged on top.
      3. Nothing found: an empty config (every setting may come from the CLI).
    """

    explicit_path = None
    if config_path is not None:
        explicit_path = str(config_path).strip() or None
    elif env_var:
        raw_env = os.environ.get(str(env_var), "")
        explicit_path = raw_env.strip() or None

    if explicit_path:
        expanded = os.path.abspath(os.path.expandvars(os.path.expanduser(explicit_path)))
        if not os.path.exists(expanded):
            raise FileNotFoundError(f"Missing config file: {expanded}")
        cfg = _load_yaml_mapping(expanded)
        meta = {
            "mode": "env" if config_path is None else "explicit",
            "paths": [expanded],
            "env_var": env_var,
        }
        return cfg, meta

    config_directory = os.path.abspath(start_dir or os.getcwd())
    base_config_path = os.path.join(config_directory, CONFIG_FILE_NAME)
    local_overlay_path = os.path.join(config_directory, LOCAL_CONFIG_FILE_NAME)

    if not os.path.exists(base_config_path):
        return {}, {"mode": "none", "paths": [], "env_var": env_var}

    cfg = _load_yaml_mapping(base_config_path)
    loaded_paths = [base_config_path]
    mode = "base"

    if os.path.exists(local_overlay_path):
        overlay = _load_yaml_mapping(local_overlay_path)
        cfg = deep_merge(cfg, overlay, path="")
        loaded_paths.append(local_overlay_path)
        mode = "base+local"

    meta = {"mode": mode, "paths": loaded_paths, "env_var": env_var}
    return cfg, meta
