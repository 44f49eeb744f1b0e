from __future__ import annotations

from typing import Any

import semver

from manifestpack.framework.errors import ParseError


def parse_version(value: Any, path: str = "version") -> str:
    """
    Validate a strict semantic version and return its canonical string.

    A leading "v" is rejected, as are partial versions like "1.0".

    Raises:
        ParseError: if the value is not a valid semantic version.
    """

    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"Invalid semantic version for {path}: {value!r}")
    try:
        parsed = semver.Version.parse(value.strip())
    except ValueError as exc:
        raise ParseError(f"Invalid semantic version for {path}: {value!r} ({exc})") from exc
    return str(parsed)


def csv_name(package_name: str, version: str) -> str:
    return f"{package_name}.v{version}"
