from __future__ import annotations

import argparse
import dataclasses
import io
import logging
import os
import stat
import sys
from collections.abc import Sequence
from typing import IO, Any

from manifestpack import __version__
from manifestpack.foundation.config_io import deep_merge, load_config
from manifestpack.foundation.logging_utils import generate_run_id, setup_operational_logger
from manifestpack.foundation.yaml_io import dump_document
from manifestpack.framework.config import RunConfig
from manifestpack.framework.errors import ConfigurationError, ManifestPackError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="manifestpack", add_help=True)
    parser.add_argument("--tool-version", action="version", version=f"manifestpack {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser(
        "generate",
        help="Generate a versioned package manifests directory and package record",
    )
    _add_run_arguments(generate)

    show = sub.add_parser("show-config", help="Print the resolved run configuration")
    _add_run_arguments(show)

    return parser


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="YAML config file (default: ./manifestpack.yaml)")
    parser.add_argument("--version", dest="version", help="Semantic version of the packaged operator")
    parser.add_argument("--from-version", dest="from_version", help="Version this version replaces")
    parser.add_argument("--package", dest="package_name", help="Package name (default: PROJECT file)")
    parser.add_argument("--input-dir", dest="input_dir", help="Directory holding an existing package record")
    parser.add_argument("--deploy-dir", dest="deploy_dir", help="Directory of cluster-ready manifests")
    parser.add_argument("--crds-dir", dest="crds_dir", help="Directory of CRD manifests")
    parser.add_argument("--kustomize-dir", dest="kustomize_dir", help="Directory containing bases/<package>.clusterserviceversion.yaml")
    parser.add_argument("--output-dir", dest="output_dir", help="Root directory for package manifests")
    parser.add_argument("--stdout", action="store_true", default=None, help="Write manifests to stdout")
    parser.add_argument("--channel", dest="channel_name", help="Channel the version is published on")
    parser.add_argument("--default-channel", dest="default_channel", action="store_true", default=None, help="Make --channel the package default")
    parser.add_argument("--update-objects", dest="update_objects", action="store_true", default=None, help="Also write non-CSV objects")
    parser.add_argument("--log-dir", dest="log_dir", help="Directory for the operational log file")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors")


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map CLI flags onto the config file schema; unset flags stay None."""

    return {
        "version": args.version,
        "from_version": args.from_version,
        "package": {"name": args.package_name},
        "inputs": {
            "input_dir": args.input_dir,
            "deploy_dir": args.deploy_dir,
            "crds_dir": args.crds_dir,
            "kustomize_dir": args.kustomize_dir,
        },
        "output": {
            "dir": args.output_dir,
            "stdout": args.stdout,
            "update_objects": args.update_objects,
        },
        "channel": {"name": args.channel_name, "default": args.default_channel},
        "logging": {"log_dir": args.log_dir, "level": "WARNING" if args.quiet else None},
    }


def is_piped(stream: Any) -> bool:
    """True only when `stream` is a named pipe; files, /dev/null and TTYs are not input."""

    if stream is None:
        return False
    try:
        return stat.S_ISFIFO(os.fstat(stream.fileno()).st_mode)
    except (AttributeError, OSError, ValueError, io.UnsupportedOperation):
        return False


def resolve_run_config(
    args: argparse.Namespace, *, stdin_piped: bool
) -> tuple[RunConfig, list[str], dict[str, Any]]:
    try:
        file_cfg, meta = load_config(config_path=args.config)
        merged = deep_merge(file_cfg, overrides_from_args(args))
    except (FileNotFoundError, ValueError) as exc:
        raise ConfigurationError(str(exc)) from exc
    cfg, warnings = RunConfig.from_dict(merged, stdin_piped=stdin_piped)
    return cfg, warnings, meta


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: IO[str] | None = None,
    stdout: IO[str] | None = None,
) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout

    run_id = generate_run_id()
    try:
        cfg, warnings, meta = resolve_run_config(args, stdin_piped=is_piped(stdin))
    except ManifestPackError as exc:
        logger, _ = setup_operational_logger(None, run_id)
        logger.error("%s", exc)
        return 1

    logger, _ = setup_operational_logger(cfg.log_dir, run_id, level=cfg.log_level)
    if meta.get("paths"):
        logger.info("Loaded config (%s) from %s", meta["mode"], ", ".join(meta["paths"]))
    for warning in warnings:
        logger.warning("%s", warning)

    if args.command == "show-config":
        payload = dataclasses.asdict(cfg)
        payload["log_level"] = logging.getLevelName(cfg.log_level)
        stdout.write(dump_document(payload))
        return 0

    if args.command == "generate":
        from manifestpack.app.generate import run_packagemanifests

        try:
            run_packagemanifests(cfg, stdin=stdin, stdout=stdout, logger=logger)
        except ManifestPackError as exc:
            logger.error("%s", exc)
            return 1
        return 0

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
