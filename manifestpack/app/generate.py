from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import IO, Any

from manifestpack.foundation.logging_utils import LOGGER_NAME
from manifestpack.framework.annotations import make_bundle_object_annotations
from manifestpack.framework.bases import base_path, resolve_base
from manifestpack.framework.collector import ManifestCollector, ManifestSet
from manifestpack.framework.config import RunConfig
from manifestpack.framework.descriptor import generate_descriptor
from manifestpack.framework.errors import ConfigurationError
from manifestpack.framework.package_index import PackageIndexGenerator, PackageRecord
from manifestpack.framework.writers import DirectoryWriter, ObjectWriter, StreamWriter


@dataclass
class RunResult:
    descriptor: dict[str, Any]
    package_record: PackageRecord | None = None
    package_record_path: str | None = None
    written: list[str] = field(default_factory=list)


def collect_manifests(cfg: RunConfig, stdin: IO[str] | None) -> ManifestSet:
    collector = ManifestCollector()
    if cfg.read_stdin:
        if stdin is None:
            raise ConfigurationError("RunConfig expects piped input but no stream was provided")
        collector.update_from_reader(stdin)
    if cfg.deploy_dir:
        collector.update_from_dirs(cfg.deploy_dir, cfg.crds_dir)
    return collector.build()


def load_descriptor_base(
    cfg: RunConfig, manifests: ManifestSet, logger: logging.Logger
) -> dict[str, Any] | None:
    if manifests.cluster_service_versions:
        logger.info("Using the ClusterServiceVersion supplied with the input manifests")
        return None

    path = base_path(cfg.kustomize_dir, cfg.package_name)
    base = resolve_base(path)
    if base is None:
        logger.info("Building a ClusterServiceVersion without an existing base")
    return base


def build_writer(cfg: RunConfig, stdout: IO[str]) -> ObjectWriter:
    if cfg.stdout:
        return StreamWriter(stdout)
    assert cfg.output_dir is not None
    return DirectoryWriter(os.path.join(cfg.output_dir, cfg.version))


def run_packagemanifests(
    cfg: RunConfig,
    *,
    stdin: IO[str] | None = None,
    stdout: IO[str] | None = None,
    logger: logging.Logger | None = None,
    writer: ObjectWriter | None = None,
) -> RunResult:
    """
    Generate package manifests for one version.

    Every input (manifests, base, existing package record) is read and
    validated, and every output destination is named, before the first write. Writes then happen in order: package
    record and version directory, ClusterServiceVersion, extra objects.
    """

    logger = logger or logging.getLogger(LOGGER_NAME)
    stdout = stdout if stdout is not None else sys.stdout

    logger.info("Generating package manifests version %s", cfg.version)

    manifests = collect_manifests(cfg, stdin)
    logger.info(
        "Collected %d deployment(s), %d CRD(s), %d other object(s)",
        len(manifests.deployments),
        len(manifests.custom_resource_definitions),
        len(manifests.others),
    )

    base = load_descriptor_base(cfg, manifests, logger)
    descriptor = generate_descriptor(
        base,
        manifests,
        package_name=cfg.package_name,
        version=cfg.version,
        from_version=cfg.from_version,
        annotations=make_bundle_object_annotations(cfg.project_layout),
    )

    objects: list[dict[str, Any]] = [descriptor]
    if cfg.update_objects:
        objects.extend(manifests.extra_objects())

    writer = writer or build_writer(cfg, stdout)
    destinations = writer.plan(objects)
    logger.debug("Planned %d output(s)", len(destinations))

    result = RunResult(descriptor=descriptor)
    package_generator = PackageIndexGenerator()
    record: PackageRecord | None = None
    if cfg.stdout:
        logger.info("Writing to stdout; skipping the package record")
    else:
        assert cfg.output_dir is not None
        record = package_generator.plan(
            cfg.package_name,
            cfg.version,
            cfg.output_dir,
            channel_name=cfg.channel_name,
            is_default_channel=cfg.is_default_channel,
            base_dir=cfg.input_dir,
        )

    # nothing has been written up to here
    if record is not None:
        assert cfg.output_dir is not None
        result.package_record = record
        result.package_record_path = package_generator.write(record, cfg.version, cfg.output_dir)
    result.written = writer.write(objects)

    if cfg.stdout:
        logger.info("Package manifests written to stdout (%d document(s))", len(result.written))
    else:
        logger.info("Package manifests generated successfully in %s", cfg.output_dir)
    return result
