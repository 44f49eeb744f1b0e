"""Collect Kubernetes manifests into typed buckets.

Documents arrive either as a multi-document YAML stream or as files in a
deploy directory plus a CRD directory. Ingestion is all-or-nothing: one bad
document fails the whole collection.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import IO, Any

from manifestpack.foundation.yaml_io import load_documents
from manifestpack.framework.errors import ManifestIOError, ParseError

logger = logging.getLogger(__name__)

MANIFEST_EXTENSIONS: tuple[str, ...] = (".yaml", ".yml", ".json")

CSV_KIND = "ClusterServiceVersion"
CRD_KIND = "CustomResourceDefinition"

# kind -> ManifestSet field
_BUCKETS: dict[str, str] = {
    CSV_KIND: "cluster_service_versions",
    CRD_KIND: "custom_resource_definitions",
    "Role": "roles",
    "ClusterRole": "cluster_roles",
    "RoleBinding": "role_bindings",
    "ClusterRoleBinding": "cluster_role_bindings",
    "ServiceAccount": "service_accounts",
    "Deployment": "deployments",
    "Service": "services",
    "ValidatingWebhookConfiguration": "validating_webhooks",
    "MutatingWebhookConfiguration": "mutating_webhooks",
}


def api_group(obj: Mapping[str, Any]) -> str:
    api_version = str(obj.get("apiVersion") or "")
    return api_version.split("/", 1)[0] if "/" in api_version else ""


def api_version_only(obj: Mapping[str, Any]) -> str:
    return str(obj.get("apiVersion") or "").rsplit("/", 1)[-1]


def object_name(obj: Mapping[str, Any]) -> str:
    metadata = obj.get("metadata")
    if isinstance(metadata, Mapping):
        name = metadata.get("name")
        if isinstance(name, str):
            return name
    return ""


@dataclass(frozen=True)
class ManifestSet:
    cluster_service_versions: tuple[dict[str, Any], ...] = ()
    custom_resource_definitions: tuple[dict[str, Any], ...] = ()
    roles: tuple[dict[str, Any], ...] = ()
    cluster_roles: tuple[dict[str, Any], ...] = ()
    role_bindings: tuple[dict[str, Any], ...] = ()
    cluster_role_bindings: tuple[dict[str, Any], ...] = ()
    service_accounts: tuple[dict[str, Any], ...] = ()
    deployments: tuple[dict[str, Any], ...] = ()
    services: tuple[dict[str, Any], ...] = ()
    validating_webhooks: tuple[dict[str, Any], ...] = ()
    mutating_webhooks: tuple[dict[str, Any], ...] = ()
    others: tuple[dict[str, Any], ...] = ()

    def crd_kinds(self) -> set[tuple[str, str]]:
        kinds: set[tuple[str, str]] = set()
        for crd in self.custom_resource_definitions:
            spec = crd.get("spec") or {}
            names = spec.get("names") or {}
            group = spec.get("group")
            kind = names.get("kind")
            if isinstance(group, str) and isinstance(kind, str):
                kinds.add((group, kind))
        return kinds

    def custom_resources(self) -> list[dict[str, Any]]:
        """Objects in `others` whose group/kind is defined by a collected CRD."""

        kinds = self.crd_kinds()
        return [obj for obj in self.others if (api_group(obj), str(obj.get("kind"))) in kinds]

    def deployment_service_accounts(self) -> set[str]:
        names: set[str] = set()
        for deployment in self.deployments:
            pod_spec = ((deployment.get("spec") or {}).get("template") or {}).get("spec") or {}
            names.add(str(pod_spec.get("serviceAccountName") or "default"))
        return names

    def extra_objects(self) -> list[dict[str, Any]]:
        """
        Objects shipped next to the ClusterServiceVersion rather than inside it.

        CRDs come first, then Services, RBAC not bound to an operator
        deployment, service accounts no deployment runs as, and every
        remaining object that is not a custom resource example.
        """

        operator_accounts = self.deployment_service_accounts()
        custom_resources = {id(obj) for obj in self.custom_resources()}

        def bound_to_operator(binding: Mapping[str, Any]) -> bool:
            return bool(_service_account_subjects(binding) & operator_accounts)

        bound_roles = {
            _role_ref(binding)
            for binding in (*self.role_bindings, *self.cluster_role_bindings)
            if bound_to_operator(binding)
        }

        objects: list[dict[str, Any]] = []
        objects.extend(self.custom_resource_definitions)
        objects.extend(self.services)
        objects.extend(r for r in self.roles if ("Role", object_name(r)) not in bound_roles)
        objects.extend(
            r for r in self.cluster_roles if ("ClusterRole", object_name(r)) not in bound_roles
        )
        objects.extend(b for b in self.role_bindings if not bound_to_operator(b))
        objects.extend(b for b in self.cluster_role_bindings if not bound_to_operator(b))
        objects.extend(sa for sa in self.service_accounts if object_name(sa) not in operator_accounts)
        objects.extend(obj for obj in self.others if id(obj) not in custom_resources)
        return objects


def _service_account_subjects(binding: Mapping[str, Any]) -> set[str]:
    subjects = binding.get("subjects") or []
    return {
        str(subject.get("name"))
        for subject in subjects
        if isinstance(subject, Mapping) and subject.get("kind") == "ServiceAccount"
    }


def _role_ref(binding: Mapping[str, Any]) -> tuple[str, str]:
    ref = binding.get("roleRef") or {}
    return str(ref.get("kind") or ""), str(ref.get("name") or "")


@dataclass
class ManifestCollector:
    """Mutable accumulator; call `build()` for the read-only `ManifestSet`."""

    _buckets: dict[str, list[dict[str, Any]]] = field(
        default_factory=lambda: {name: [] for name in (*_BUCKETS.values(), "others")}
    )

    def update_from_reader(self, stream: IO[str] | str, *, source: str = "<stdin>") -> int:
        documents = self._parse(stream, source=source)
        for doc in documents:
            self._add(doc)
        logger.debug("Collected %d document(s) from %s", len(documents), source)
        return len(documents)

    def update_from_dirs(self, deploy_dir: str, crds_dir: str | None = None) -> int:
        """Read top-level manifests of `deploy_dir` and every manifest under `crds_dir`.

        All files are parsed before any is added, so a bad file leaves the
        collector unchanged.
        """

        paths = list(_list_manifest_files(deploy_dir, recursive=False))
        if crds_dir:
            seen = set(paths)
            paths.extend(p for p in _list_manifest_files(crds_dir, recursive=True) if p not in seen)

        parsed: list[dict[str, Any]] = []
        for path in paths:
            try:
                with open(path, "r", encoding="utf-8") as handle:
                    parsed.extend(self._parse(handle, source=path))
            except OSError as exc:
                raise ManifestIOError("Failed to read manifest", path) from exc

        for doc in parsed:
            self._add(doc)
        logger.debug("Collected %d document(s) from %d file(s)", len(parsed), len(paths))
        return len(parsed)

    def build(self) -> ManifestSet:
        return ManifestSet(**{name: tuple(items) for name, items in self._buckets.items()})

    def _add(self, doc: dict[str, Any]) -> None:
        self._buckets[_BUCKETS.get(str(doc["kind"]), "others")].append(doc)

    @staticmethod
    def _parse(stream: IO[str] | str, *, source: str) -> list[dict[str, Any]]:
        try:
            documents = load_documents(stream, source=source)
        except ValueError as exc:
            raise ParseError(str(exc)) from exc
        return list(_flatten(documents, source=source))


def _flatten(documents: Iterable[Any], *, source: str) -> Iterable[dict[str, Any]]:
    for index, doc in enumerate(documents):
        if not isinstance(doc, Mapping):
            raise ParseError(
                f"Invalid manifest in {source} (document {index}): expected a mapping, got {type(doc).__name__}"
            )
        api_version = doc.get("apiVersion")
        kind = doc.get("kind")
        if not isinstance(api_version, str) or not api_version.strip():
            raise ParseError(f"Invalid manifest in {source} (document {index}): missing apiVersion")
        if not isinstance(kind, str) or not kind.strip():
            raise ParseError(f"Invalid manifest in {source} (document {index}): missing kind")

        if kind == "List":
            items = doc.get("items") or []
            if not isinstance(items, list):
                raise ParseError(f"Invalid List in {source} (document {index}): items must be a list")
            yield from _flatten(items, source=f"{source}[{index}]")
            continue

        yield dict(doc)


def _list_manifest_files(directory: str, *, recursive: bool) -> Iterable[str]:
    if not os.path.isdir(directory):
        raise ManifestIOError("Manifest directory does not exist", directory)

    if not recursive:
        entries = sorted(os.listdir(directory))
        for entry in entries:
            path = os.path.join(directory, entry)
            if os.path.isfile(path) and entry.lower().endswith(MANIFEST_EXTENSIONS):
                yield path
        return

    found: list[str] = []
    for root, dirs, files in os.walk(directory):
        dirs.sort()
        for entry in files:
            if entry.lower().endswith(MANIFEST_EXTENSIONS):
                found.append(os.path.join(root, entry))
    yield from sorted(found)
