from __future__ import annotations

from manifestpack import __version__

BUILDER_ANNOTATION = "operators.operatorframework.io/builder"
LAYOUT_ANNOTATION = "operators.operatorframework.io/project_layout"
ALM_EXAMPLES_ANNOTATION = "alm-examples"


def builder_value() -> str:
    return f"manifestpack-v{__version__}"


def make_bundle_object_annotations(layout: str | None) -> dict[str, str]:
    """Annotations stamped on every generated ClusterServiceVersion."""

    annotations = {BUILDER_ANNOTATION: builder_value()}
    if layout:
        annotations[LAYOUT_ANNOTATION] = layout
    return annotations
