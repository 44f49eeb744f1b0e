"""Sample memcached-operator manifests shared by the tests."""

from __future__ import annotations

from pathlib import Path

import yaml

CRD = {
    "apiVersion": "apiextensions.k8s.io/v1",
    "kind": "CustomResourceDefinition",
    "metadata": {"name": "memcacheds.cache.example.com"},
    "spec": {
        "group": "cache.example.com",
        "names": {"kind": "Memcached", "plural": "memcacheds", "singular": "memcached"},
        "scope": "Namespaced",
        "versions": [
            {"name": "v1alpha1", "served": True, "storage": True},
        ],
    },
}

DEPLOYMENT = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "memcached-operator-controller-manager", "labels": {"control-plane": "controller-manager"}},
    "spec": {
        "replicas": 1,
        "selector": {"matchLabels": {"control-plane": "controller-manager"}},
        "template": {
            "metadata": {"labels": {"control-plane": "controller-manager"}},
            "spec": {
                "serviceAccountName": "memcached-operator-controller-manager",
                "containers": [{"name": "manager", "image": "controller:latest"}],
            },
        },
    },
}

SERVICE_ACCOUNT = {
    "apiVersion": "v1",
    "kind": "ServiceAccount",
    "metadata": {"name": "memcached-operator-controller-manager"},
}

CLUSTER_ROLE = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "ClusterRole",
    "metadata": {"name": "memcached-operator-manager-role"},
    "rules": [{"apiGroups": ["cache.example.com"], "resources": ["memcacheds"], "verbs": ["get", "list", "watch"]}],
}

CLUSTER_ROLE_BINDING = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "ClusterRoleBinding",
    "metadata": {"name": "memcached-operator-manager-rolebinding"},
    "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": "memcached-operator-manager-role"},
    "subjects": [{"kind": "ServiceAccount", "name": "memcached-operator-controller-manager", "namespace": "system"}],
}

ROLE = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "Role",
    "metadata": {"name": "memcached-operator-leader-election-role"},
    "rules": [{"apiGroups": [""], "resources": ["configmaps"], "verbs": ["get", "create"]}],
}

ROLE_BINDING = {
    "apiVersion": "rbac.authorization.k8s.io/v1",
    "kind": "RoleBinding",
    "metadata": {"name": "memcached-operator-leader-election-rolebinding"},
    "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "Role", "name": "memcached-operator-leader-election-role"},
    "subjects": [{"kind": "ServiceAccount", "name": "memcached-operator-controller-manager", "namespace": "system"}],
}

METRICS_SERVICE = {
    "apiVersion": "v1",
    "kind": "Service",
    "metadata": {"name": "memcached-operator-metrics-service"},
    "spec": {"ports": [{"name": "https", "port": 8443, "targetPort": "https"}], "selector": {"control-plane": "controller-manager"}},
}

CUSTOM_RESOURCE = {
    "apiVersion": "cache.example.com/v1alpha1",
    "kind": "Memcached",
    "metadata": {"name": "memcached-sample"},
    "spec": {"size": 3},
}

BASE_CSV = {
    "apiVersion": "operators.coreos.com/v1alpha1",
    "kind": "ClusterServiceVersion",
    "metadata": {
        "name": "memcached-operator.v0.0.0",
        "namespace": "placeholder",
        "annotations": {"capabilities": "Basic Install"},
    },
    "spec": {
        "displayName": "Memcached Operator",
        "description": "Runs memcached.",
        "icon": [{"base64data": "aWNvbg==", "mediatype": "image/png"}],
        "maintainers": [{"name": "Cache Team", "email": "cache@example.com"}],
        "provider": {"name": "Example"},
        "keywords": ["cache"],
        "install": {"strategy": "deployment", "spec": {"deployments": [{"name": "stale", "spec": {}}]}},
        "customresourcedefinitions": {
            "owned": [{"name": "stale.example.com", "version": "v1", "kind": "Stale"}],
            "required": [{"name": "other.example.com", "version": "v1", "kind": "Other"}],
        },
        "version": "0.0.0",
        "replaces": "memcached-operator.v0.0.0-old",
    },
}

DEPLOY_OBJECTS = [
    DEPLOYMENT,
    SERVICE_ACCOUNT,
    CLUSTER_ROLE,
    CLUSTER_ROLE_BINDING,
    ROLE,
    ROLE_BINDING,
    METRICS_SERVICE,
    CUSTOM_RESOURCE,
]


def to_stream(*objects: dict) -> str:
    return "".join("---\n" + yaml.safe_dump(obj, sort_keys=False) for obj in objects)


def write_project(root: Path) -> dict[str, Path]:
    """Lay out deploy/, deploy/crds/ and config/manifests/bases under `root`."""

    deploy = root / "deploy"
    crds = deploy / "crds"
    crds.mkdir(parents=True)
    names = [
        "deployment.yaml",
        "service_account.yaml",
        "cluster_role.yaml",
        "cluster_role_binding.yaml",
        "role.yaml",
        "role_binding.yaml",
        "service.yaml",
        "memcached_sample.yaml",
    ]
    for name, obj in zip(names, DEPLOY_OBJECTS):
        (deploy / name).write_text(yaml.safe_dump(obj, sort_keys=False), encoding="utf-8")
    (crds / "cache.example.com_memcacheds.yaml").write_text(yaml.safe_dump(CRD, sort_keys=False), encoding="utf-8")

    bases = root / "config" / "manifests" / "bases"
    bases.mkdir(parents=True)
    return {"deploy": deploy, "crds": crds, "bases": bases, "kustomize": root / "config" / "manifests"}


def write_base(bases_dir: Path, csv: dict | None = None, *, package: str = "memcached-operator") -> Path:
    path = bases_dir / f"{package}.clusterserviceversion.yaml"
    path.write_text(yaml.safe_dump(csv or BASE_CSV, sort_keys=False), encoding="utf-8")
    return path
