"""ClusterServiceVersion generation.

A generated CSV is a seed document (a CSV from the input stream, else the
base, else an empty CSV) with its install specification replaced by data
derived from the collected manifests. Replacement is wholesale: install,
owned CRDs and webhook definitions are rebuilt from scratch on every run, and
human metadata is taken from the seed as a whole. Fields are never merged one
by one.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any

from manifestpack.framework.annotations import ALM_EXAMPLES_ANNOTATION
from manifestpack.framework.collector import (
    CSV_KIND,
    ManifestSet,
    api_version_only,
    object_name,
)
from manifestpack.framework.errors import ParseError
from manifestpack.framework.versions import csv_name

logger = logging.getLogger(__name__)

CSV_API_VERSION = "operators.coreos.com/v1alpha1"
INSTALL_STRATEGY = "deployment"

DEFAULT_INSTALL_MODES: tuple[tuple[str, bool], ...] = (
    ("OwnNamespace", True),
    ("SingleNamespace", True),
    ("MultiNamespace", False),
    ("AllNamespaces", True),
)

WEBHOOK_TYPES: dict[str, str] = {
    "ValidatingWebhookConfiguration": "ValidatingAdmissionWebhook",
    "MutatingWebhookConfiguration": "MutatingAdmissionWebhook",
}


def display_name(package_name: str) -> str:
    words = package_name.replace("_", "-").split("-")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def new_empty_descriptor(package_name: str) -> dict[str, Any]:
    return {
        "apiVersion": CSV_API_VERSION,
        "kind": CSV_KIND,
        "metadata": {
            "name": package_name,
            "namespace": "placeholder",
            "annotations": {},
        },
        "spec": {
            "displayName": display_name(package_name),
            "description": "",
            "installModes": [
                {"type": mode, "supported": supported} for mode, supported in DEFAULT_INSTALL_MODES
            ],
            "keywords": [],
            "links": [],
            "maintainers": [],
            "maturity": "alpha",
            "provider": {},
        },
    }


def select_seed(
    base: Mapping[str, Any] | None, manifests: ManifestSet
) -> tuple[Mapping[str, Any] | None, str]:
    """Pick the document whose metadata the generated CSV keeps.

    A CSV supplied with the input manifests wins over the base; the base is
    ignored entirely in that case.
    """

    if manifests.cluster_service_versions:
        if len(manifests.cluster_service_versions) > 1:
            logger.warning(
                "Found %d ClusterServiceVersions in input; using the first (%s)",
                len(manifests.cluster_service_versions),
                object_name(manifests.cluster_service_versions[0]) or "<unnamed>",
            )
        return manifests.cluster_service_versions[0], "input"
    if base is not None:
        return base, "base"
    return None, "empty"


def generate_descriptor(
    base: Mapping[str, Any] | None,
    manifests: ManifestSet,
    *,
    package_name: str,
    version: str,
    from_version: str | None = None,
    annotations: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """
    Build the ClusterServiceVersion for `package_name` at `version`.

    Raises:
        ParseError: the seed document, or its metadata or spec, is not a mapping.
    """

    seed, source = select_seed(base, manifests)
    logger.debug("ClusterServiceVersion seed: %s", source)

    if seed is None:
        csv = new_empty_descriptor(package_name)
    else:
        if not isinstance(seed, Mapping):
            raise ParseError(f"ClusterServiceVersion {source} must be a mapping")
        csv = copy.deepcopy(dict(seed))
    csv["apiVersion"] = CSV_API_VERSION
    csv["kind"] = CSV_KIND

    metadata = _mapping_field(csv, "metadata", source)
    spec = _mapping_field(csv, "spec", source)
    existing_annotations = metadata.get("annotations") or {}
    if not isinstance(existing_annotations, Mapping):
        raise ParseError(f"ClusterServiceVersion {source} metadata.annotations must be a mapping")

    metadata["name"] = csv_name(package_name, version)

    merged_annotations: dict[str, Any] = dict(existing_annotations)
    examples = manifests.custom_resources()
    if examples:
        merged_annotations[ALM_EXAMPLES_ANNOTATION] = json.dumps(
            [copy.deepcopy(cr) for cr in examples], indent=2
        )
    merged_annotations.update(annotations or {})
    if merged_annotations:
        metadata["annotations"] = merged_annotations
    else:
        metadata.pop("annotations", None)

    spec["install"] = {"strategy": INSTALL_STRATEGY, "spec": build_install_spec(manifests)}

    owned = owned_crd_descriptions(manifests)
    if owned:
        spec["customresourcedefinitions"] = {"owned": owned}
    else:
        spec.pop("customresourcedefinitions", None)

    webhooks = webhook_definitions(manifests)
    if webhooks:
        spec["webhookdefinitions"] = webhooks
    else:
        spec.pop("webhookdefinitions", None)

    spec["version"] = version
    if from_version:
        spec["replaces"] = csv_name(package_name, from_version)
    else:
        spec.pop("replaces", None)

    return csv


def _mapping_field(csv: dict[str, Any], key: str, source: str) -> dict[str, Any]:
    value = csv.get(key)
    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        raise ParseError(f"ClusterServiceVersion {source} {key} must be a mapping")
    value = dict(value)
    csv[key] = value
    return value


def build_install_spec(manifests: ManifestSet) -> dict[str, Any]:
    install: dict[str, Any] = {}

    deployments = [_deployment_spec(d) for d in manifests.deployments]
    operator_accounts = manifests.deployment_service_accounts()

    rules_by_role = {("Role", object_name(r)): r.get("rules") or [] for r in manifests.roles}
    rules_by_role.update(
        {("ClusterRole", object_name(r)): r.get("rules") or [] for r in manifests.cluster_roles}
    )

    permissions = _permissions(manifests.role_bindings, rules_by_role, operator_accounts)
    cluster_permissions = _permissions(
        manifests.cluster_role_bindings, rules_by_role, operator_accounts
    )

    if cluster_permissions:
        install["clusterPermissions"] = cluster_permissions
    install["deployments"] = deployments
    if permissions:
        install["permissions"] = permissions
    return install


def _deployment_spec(deployment: Mapping[str, Any]) -> dict[str, Any]:
    entry: dict[str, Any] = {"name": object_name(deployment)}
    labels = (deployment.get("metadata") or {}).get("labels")
    if labels:
        entry["label"] = copy.deepcopy(dict(labels))
    entry["spec"] = copy.deepcopy(deployment.get("spec") or {})
    return entry


def _permissions(
    bindings: tuple[dict[str, Any], ...],
    rules_by_role: Mapping[tuple[str, str], list[Any]],
    operator_accounts: set[str],
) -> list[dict[str, Any]]:
    by_account: dict[str, list[Any]] = {}
    for binding in bindings:
        ref = binding.get("roleRef") or {}
        key = (str(ref.get("kind") or ""), str(ref.get("name") or ""))
        rules = rules_by_role.get(key)
        if rules is None:
            logger.debug("Binding %s references unknown %s %s", object_name(binding), *key)
            continue
        for subject in binding.get("subjects") or []:
            if not isinstance(subject, Mapping) or subject.get("kind") != "ServiceAccount":
                continue
            account = str(subject.get("name") or "")
            if account not in operator_accounts:
                continue
            by_account.setdefault(account, []).extend(copy.deepcopy(rules))

    return [{"rules": rules, "serviceAccountName": account} for account, rules in by_account.items()]


def owned_crd_descriptions(manifests: ManifestSet) -> list[dict[str, Any]]:
    owned: dict[tuple[str, str], dict[str, Any]] = {}
    for crd in manifests.custom_resource_definitions:
        spec = crd.get("spec") or {}
        kind = (spec.get("names") or {}).get("kind")
        name = object_name(crd)
        for version in _crd_versions(crd):
            # first definition of a name/version wins
            owned.setdefault((name, version), {"kind": kind, "name": name, "version": version})
    return [owned[key] for key in sorted(owned)]


def _crd_versions(crd: Mapping[str, Any]) -> list[str]:
    spec = crd.get("spec") or {}
    versions: list[str] = []
    for entry in spec.get("versions") or []:
        if not isinstance(entry, Mapping):
            continue
        if api_version_only(crd) == "v1beta1" or entry.get("served", True):
            name = entry.get("name")
            if isinstance(name, str) and name not in versions:
                versions.append(name)
    legacy = spec.get("version")
    if isinstance(legacy, str) and legacy not in versions:
        versions.append(legacy)
    return versions


def webhook_definitions(manifests: ManifestSet) -> list[dict[str, Any]]:
    definitions: list[dict[str, Any]] = []
    for configs in (manifests.validating_webhooks, manifests.mutating_webhooks):
        for config in configs:
            webhook_type = WEBHOOK_TYPES[str(config.get("kind"))]
            for webhook in config.get("webhooks") or []:
                if isinstance(webhook, Mapping):
                    definitions.append(_webhook_description(webhook, webhook_type, manifests))
    return definitions


def _webhook_description(
    webhook: Mapping[str, Any], webhook_type: str, manifests: ManifestSet
) -> dict[str, Any]:
    client_service = (webhook.get("clientConfig") or {}).get("service") or {}
    service = _find_service(manifests, client_service)

    container_port = client_service.get("port") or 443
    target_port: Any = None
    deployment_name: str | None = None
    if service is not None:
        target_port = _service_target_port(service, container_port)
        deployment_name = _deployment_for_service(manifests, service)
    if deployment_name is None:
        logger.warning(
            "Could not resolve a deployment for webhook %s (service %s)",
            webhook.get("name"),
            client_service.get("name"),
        )

    description: dict[str, Any] = {
        "admissionReviewVersions": copy.deepcopy(webhook.get("admissionReviewVersions")),
        "containerPort": container_port,
        "deploymentName": deployment_name,
        "failurePolicy": webhook.get("failurePolicy"),
        "generateName": webhook.get("name"),
        "matchPolicy": webhook.get("matchPolicy"),
        "objectSelector": copy.deepcopy(webhook.get("objectSelector")),
        "reinvocationPolicy": webhook.get("reinvocationPolicy"),
        "rules": copy.deepcopy(webhook.get("rules")),
        "sideEffects": webhook.get("sideEffects"),
        "targetPort": target_port,
        "timeoutSeconds": webhook.get("timeoutSeconds"),
        "type": webhook_type,
        "webhookPath": client_service.get("path"),
    }
    return {key: value for key, value in description.items() if value is not None}


def _find_service(
    manifests: ManifestSet, reference: Mapping[str, Any]
) -> Mapping[str, Any] | None:
    name = reference.get("name")
    if not name:
        return None
    for service in manifests.services:
        if object_name(service) == name:
            return service
    return None


def _service_target_port(service: Mapping[str, Any], port: Any) -> Any:
    for entry in (service.get("spec") or {}).get("ports") or []:
        if isinstance(entry, Mapping) and entry.get("port") == port:
            return entry.get("targetPort", port)
    return None


def _deployment_for_service(manifests: ManifestSet, service: Mapping[str, Any]) -> str | None:
    selector = (service.get("spec") or {}).get("selector") or {}
    if not selector:
        return None
    for deployment in manifests.deployments:
        template = (deployment.get("spec") or {}).get("template") or {}
        labels = (template.get("metadata") or {}).get("labels") or {}
        if all(labels.get(key) == value for key, value in selector.items()):
            return object_name(deployment)
    return None
