from __future__ import annotations

import os
from dataclasses import dataclass

from manifestpack.foundation.yaml_io import load_mapping_file
from manifestpack.framework.errors import ParseError

PROJECT_FILE_NAME = "PROJECT"


@dataclass(frozen=True)
class ProjectInfo:
    name: str
    layout: str | None


def read_project_file(project_dir: str | None = None) -> ProjectInfo | None:
    """
    Read the project name and layout from a kubebuilder-style PROJECT file.

    Returns None when `project_dir` has no PROJECT file. A file without
    `projectName` falls back to the directory name. List layouts (plugin
    chains) are joined with commas.
    """

    directory = os.path.abspath(project_dir or os.getcwd())
    path = os.path.join(directory, PROJECT_FILE_NAME)
    if not os.path.isfile(path):
        return None

    try:
        payload = load_mapping_file(path) or {}
    except ValueError as exc:
        raise ParseError(str(exc)) from exc

    name = payload.get("projectName")
    if not isinstance(name, str) or not name.strip():
        name = os.path.basename(directory)

    raw_layout = payload.get("layout")
    layout: str | None
    if isinstance(raw_layout, str):
        layout = raw_layout.strip() or None
    elif isinstance(raw_layout, list):
        layout = ",".join(str(item).strip() for item in raw_layout if str(item).strip()) or None
    else:
        layout = None

    return ProjectInfo(name=name.strip(), layout=layout)
