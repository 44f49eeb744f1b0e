from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping, Sequence
from typing import IO, Any, Protocol

from manifestpack.foundation.yaml_io import dump_document
from manifestpack.framework.bases import CSV_FILE_SUFFIX
from manifestpack.framework.collector import (
    CRD_KIND,
    CSV_KIND,
    api_group,
    api_version_only,
    object_name,
)
from manifestpack.framework.errors import ConsistencyError, ManifestIOError, ParseError

logger = logging.getLogger(__name__)


class ObjectWriter(Protocol):
    def plan(self, objects: Sequence[Mapping[str, Any]]) -> list[str]:
        """Validate objects and return their destinations without writing anything."""
        ...

    def write(self, objects: Iterable[Mapping[str, Any]]) -> list[str]:
        """Write objects in order; returns one destination label per object."""
        ...


def object_file_name(obj: Mapping[str, Any]) -> str:
    """
    Deterministic file name for a manifest.

    - ClusterServiceVersion: `<package>.clusterserviceversion.yaml`, where the
      package is the CSV name without its `.v<version>` suffix.
    - CustomResourceDefinition: `<group>_<plural>.yaml`.
    - Anything else: `<name>_<group>_<version>_<kind>.yaml`, dropping the
      group for core resources.
    """

    kind = str(obj.get("kind") or "")
    name = object_name(obj)
    if not name:
        raise ParseError(f"Cannot name a file for a {kind or 'manifest'} without metadata.name")

    if kind == CSV_KIND:
        spec = obj.get("spec") or {}
        version = spec.get("version")
        suffix = f".v{version}"
        package = name[: -len(suffix)] if version and name.endswith(suffix) else name
        return package + CSV_FILE_SUFFIX

    if kind == CRD_KIND:
        spec = obj.get("spec") or {}
        group = spec.get("group")
        plural = (spec.get("names") or {}).get("plural")
        if group and plural:
            return f"{group}_{plural}.yaml"

    group = api_group(obj)
    version = api_version_only(obj)
    parts = [name, group, version, kind.lower()] if group else [name, version, kind.lower()]
    return "_".join(parts) + ".yaml"


class StreamWriter:
    """Writes every object as one document of a multi-document YAML stream."""

    def __init__(self, sink: IO[str]):
        self._sink = sink

    def plan(self, objects: Sequence[Mapping[str, Any]]) -> list[str]:
        return [f"<stream>#{index}" for index in range(len(objects))]

    def write(self, objects: Iterable[Mapping[str, Any]]) -> list[str]:
        labels: list[str] = []
        for obj in objects:
            self._sink.write("---\n" + dump_document(obj))
            labels.append(f"<stream>#{len(labels)}")
        self._sink.flush()
        return labels


class DirectoryWriter:
    """Writes every object to its own file under `directory`.

    Files written before a failure stay in place; the failing path is reported.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def plan(self, objects: Sequence[Mapping[str, Any]]) -> list[str]:
        """
        Output path for every object, in order.

        Raises:
            ParseError: an object has no metadata.name.
            ConsistencyError: two objects map to the same file.
        """

        paths: list[str] = []
        for obj in objects:
            path = os.path.join(self.directory, object_file_name(obj))
            if path in paths:
                raise ConsistencyError(f"Two manifests map to the same output file: {path}")
            paths.append(path)
        return paths

    def write(self, objects: Iterable[Mapping[str, Any]]) -> list[str]:
        objects = list(objects)
        paths = self.plan(objects)
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as exc:
            raise ManifestIOError("Failed to create output directory", self.directory) from exc

        written: list[str] = []
        for obj, path in zip(objects, paths):
            try:
                with open(path, "w", encoding="utf-8", newline="\n") as handle:
                    handle.write(dump_document(obj))
            except OSError as exc:
                raise ManifestIOError("Failed to write manifest", path) from exc
            logger.debug("Wrote %s", path)
            written.append(path)
        return written
