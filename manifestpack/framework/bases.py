from __future__ import annotations

import logging
import os
from typing import Any

from manifestpack.foundation.yaml_io import load_mapping_file
from manifestpack.framework.collector import CSV_KIND
from manifestpack.framework.errors import ManifestIOError, ParseError

logger = logging.getLogger(__name__)

CSV_FILE_SUFFIX = ".clusterserviceversion.yaml"


def base_path(kustomize_dir: str, package_name: str) -> str:
    return os.path.join(kustomize_dir, "bases", package_name + CSV_FILE_SUFFIX)


def resolve_base(path: str) -> dict[str, Any] | None:
    """
    Load a ClusterServiceVersion base from `path`.

    Returns None when the file does not exist; callers fall back to an empty
    descriptor. An unreadable or malformed file is fatal.

    Raises:
        ParseError: invalid YAML, not a mapping, empty, or not a ClusterServiceVersion.
        ManifestIOError: the file exists but cannot be read.
    """

    if not os.path.isfile(path):
        logger.debug("No ClusterServiceVersion base at %s", path)
        return None

    try:
        payload = load_mapping_file(path)
    except ValueError as exc:
        raise ParseError(f"Error reading ClusterServiceVersion base: {exc}") from exc
    except OSError as exc:
        raise ManifestIOError("Failed to read ClusterServiceVersion base", path) from exc

    if payload is None:
        raise ParseError(f"ClusterServiceVersion base is empty: {path}")
    kind = payload.get("kind")
    if kind != CSV_KIND:
        raise ParseError(f"ClusterServiceVersion base has kind {kind!r}, expected {CSV_KIND!r}: {path}")

    logger.info("Loaded ClusterServiceVersion base from %s", path)
    return payload
