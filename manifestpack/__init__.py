"""Assemble operator package manifests from Kubernetes resource manifests."""

__version__ = "0.1.0"
