from __future__ import annotations


class ManifestPackError(Exception):
    """Base class for every failure surfaced by a package manifests run."""


class ConfigurationError(ManifestPackError, ValueError):
    """Missing, invalid, or mutually exclusive run settings."""


class ParseError(ManifestPackError, ValueError):
    """Invalid version string, resource document, base, or package record."""


class ManifestIOError(ManifestPackError):
    def __init__(self, message: str, path: str):
        super().__init__(f"{message}: {path}")
        self.path = path


class ConsistencyError(ManifestPackError):
    """Package record invariants do not hold after an update."""
