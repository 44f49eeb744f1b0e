"""YAML helpers shared by the collector, base resolver, and writers.

Serialization here is the single source of byte layout for every generated
file, so identical objects always dump to identical bytes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import IO, Any

import yaml


def load_documents(stream: IO[str] | str, *, source: str) -> list[Any]:
    """Load every document from a YAML stream, keeping empty documents out.

    Raises:
        ValueError: if the stream is not valid YAML; the message names `source`.
    """

    try:
        documents = list(yaml.safe_load_all(stream))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {source}: {exc}") from exc
    return [doc for doc in documents if doc is not None]


def load_mapping_file(path: str) -> dict[str, Any] | None:
    """Load a single-document YAML file that must hold a mapping.

    Returns None for an empty file.
    """

    with open(path, "r", encoding="utf-8") as handle:
        documents = load_documents(handle, source=path)

    if not documents:
        return None
    if len(documents) != 1:
        raise ValueError(f"Expected a single YAML document in {path}, found {len(documents)}")
    payload = documents[0]
    if not isinstance(payload, Mapping):
        raise ValueError(f"YAML file must contain a mapping: {path}")
    return dict(payload)


def dump_document(obj: Mapping[str, Any]) -> str:
    return yaml.safe_dump(
        _plain(obj),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    )


def _plain(value: Any) -> Any:
    # safe_dump refuses mapping subclasses and tuples; normalize to dict/list.
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
