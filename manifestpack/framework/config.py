from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from manifestpack.framework.errors import ConfigurationError
from manifestpack.framework.project import read_project_file
from manifestpack.framework.versions import parse_version

DEFAULT_OUTPUT_DIR = "packagemanifests"
DEFAULT_KUSTOMIZE_DIR = os.path.join("config", "manifests")

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR")

CONFIG_SCHEMA: Mapping[str, Any] = {
    "strict": None,
    "version": None,
    "from_version": None,
    "package": {"name": None, "layout": None},
    "inputs": {
        "input_dir": None,
        "deploy_dir": None,
        "crds_dir": None,
        "kustomize_dir": None,
    },
    "output": {"dir": None, "stdout": None, "update_objects": None},
    "channel": {"name": None, "default": None},
    "logging": {"log_dir": None, "level": None},
}


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts:
      - True/False
      - 0/1 (ints)
      - strings: true/false/1/0/yes/no (case-insensitive, surrounding whitespace ignored)

    Raises:
      ConfigurationError for anything else, with the provided config key path.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ConfigurationError(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
        raise ConfigurationError(f"Invalid boolean for {path}: {value!r}")

    raise ConfigurationError(f"Invalid boolean for {path}: {value!r}")


def collect_unknown_keys(mapping: Any, schema: Mapping[str, Any], *, prefix: str = "") -> list[str]:
    if not isinstance(mapping, Mapping):
        return []
    unknown: list[str] = []
    for key, value in mapping.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if key not in schema:
            unknown.append(full_key)
            continue
        subschema = schema.get(key)
        if isinstance(subschema, Mapping):
            unknown.extend(collect_unknown_keys(value, subschema, prefix=full_key))
    return unknown


@dataclass(frozen=True)
class RunConfig:
    version: str
    from_version: str | None

    package_name: str
    project_layout: str | None

    input_dir: str | None
    deploy_dir: str | None
    crds_dir: str | None
    kustomize_dir: str

    output_dir: str | None
    stdout: bool
    update_objects: bool

    channel_name: str | None
    is_default_channel: bool

    read_stdin: bool

    log_dir: str | None
    log_level: int

    @staticmethod
    def from_dict(
        cfg: Mapping[str, Any],
        *,
        stdin_piped: bool,
        project_dir: str | None = None,
    ) -> tuple["RunConfig", list[str]]:
        """
        Parse, validate, and default run settings, returning (RunConfig, warnings).

        `stdin_piped` is decided once by the caller; when true the manifest
        stream is read and the deploy/CRD directories become optional.
        Nothing here writes to disk.

        Raises:
            ConfigurationError: missing, invalid, or conflicting settings.
            ParseError: `version` or `from_version` is not a semantic version.
        """

        if not isinstance(cfg, Mapping):
            raise ConfigurationError("Config must be a mapping")

        warnings: list[str] = []

        strict_unknown_keys = False
        if "strict" in cfg and cfg.get("strict") is not None:
            strict_unknown_keys = parse_bool(cfg.get("strict"), "strict")

        unknown_keys = sorted(set(collect_unknown_keys(cfg, CONFIG_SCHEMA)))
        if unknown_keys:
            if strict_unknown_keys:
                raise ConfigurationError("Unknown config keys: " + ", ".join(unknown_keys))
            warnings.extend(f"Unknown config key: {key}" for key in unknown_keys)

        def lookup(path: str) -> Any:
            cur: Any = cfg
            for part in path.split("."):
                if not isinstance(cur, Mapping) or part not in cur:
                    return None
                cur = cur[part]
            return cur

        def optional_str(path: str) -> str | None:
            value = lookup(path)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ConfigurationError(f"Invalid config type for {path}: expected string")
            return value.strip() or None

        def optional_path(path: str) -> str | None:
            value = optional_str(path)
            if value is None:
                return None
            return os.path.normpath(os.path.expandvars(os.path.expanduser(value)))

        def optional_bool(path: str, *, default: bool) -> bool:
            value = lookup(path)
            if value is None:
                return default
            return parse_bool(value, path)

        raw_version = lookup("version")
        if raw_version is None or (isinstance(raw_version, str) and not raw_version.strip()):
            raise ConfigurationError("Missing required config: version (--version must be set)")
        version = parse_version(str(raw_version), "version")

        from_version: str | None = None
        raw_from_version = lookup("from_version")
        if raw_from_version is not None and str(raw_from_version).strip():
            from_version = parse_version(str(raw_from_version), "from_version")

        deploy_dir = optional_path("inputs.deploy_dir")
        crds_dir = optional_path("inputs.crds_dir")
        if not stdin_piped:
            if deploy_dir is None:
                raise ConfigurationError(
                    "Missing required config: inputs.deploy_dir (--deploy-dir must be set if not reading from stdin)"
                )
            if crds_dir is None:
                raise ConfigurationError(
                    "Missing required config: inputs.crds_dir (--crds-dir must be set if not reading from stdin)"
                )

        stdout = optional_bool("output.stdout", default=False)
        output_dir = optional_path("output.dir")
        if stdout and output_dir is not None:
            raise ConfigurationError("output.dir (--output-dir) cannot be set if writing to stdout")

        channel_name = optional_str("channel.name")
        is_default_channel = optional_bool("channel.default", default=False)
        if is_default_channel and channel_name is None:
            raise ConfigurationError("channel.default (--default-channel) can only be set if channel.name (--channel) is set")

        package_name = optional_str("package.name")
        project_layout = optional_str("package.layout")
        if package_name is None or project_layout is None:
            project = read_project_file(project_dir)
            if project is not None:
                if package_name is None:
                    package_name = project.name
                    warnings.append(f"Using package name {package_name!r} from PROJECT file")
                if project_layout is None:
                    project_layout = project.layout
        if package_name is None:
            raise ConfigurationError(
                "Missing required config: package.name (--package must be set outside a project with a PROJECT file)"
            )
        if os.sep in package_name or "/" in package_name:
            raise ConfigurationError(f"Invalid package name {package_name!r}: must not contain path separators")

        if not stdout and output_dir is None:
            output_dir = DEFAULT_OUTPUT_DIR
        input_dir = optional_path("inputs.input_dir") or output_dir
        kustomize_dir = optional_path("inputs.kustomize_dir") or DEFAULT_KUSTOMIZE_DIR

        raw_level = optional_str("logging.level") or "INFO"
        level_name = raw_level.upper()
        if level_name not in LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown logging.level: {raw_level!r} (expected one of {', '.join(LOG_LEVELS)})"
            )

        return (
            RunConfig(
                version=version,
                from_version=from_version,
                package_name=package_name,
                project_layout=project_layout,
                input_dir=input_dir,
                deploy_dir=deploy_dir,
                crds_dir=crds_dir,
                kustomize_dir=kustomize_dir,
                output_dir=output_dir,
                stdout=stdout,
                update_objects=optional_bool("output.update_objects", default=False),
                channel_name=channel_name,
                is_default_channel=is_default_channel,
                read_stdin=stdin_piped,
                log_dir=optional_path("logging.log_dir"),
                log_level=getattr(logging, level_name),
            ),
            warnings,
        )
