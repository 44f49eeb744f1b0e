"""Package record (`<package>.package.yaml`) generation.

The record maps channel names to the ClusterServiceVersion each channel
currently serves. Updates are upserts: a run touches only its own channel
(and possibly the default designation), never other channels or version
directories.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from manifestpack.foundation.yaml_io import dump_document, load_mapping_file
from manifestpack.framework.errors import (
    ConfigurationError,
    ConsistencyError,
    ManifestIOError,
    ParseError,
)
from manifestpack.framework.versions import csv_name

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_NAME = "alpha"
PACKAGE_FILE_SUFFIX = ".package.yaml"


@dataclass
class Channel:
    name: str
    current_csv: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "currentCSV": self.current_csv}


@dataclass
class PackageRecord:
    package_name: str
    channels: list[Channel] = field(default_factory=list)
    default_channel: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, source: str) -> "PackageRecord":
        name = payload.get("packageName")
        if not isinstance(name, str) or not name.strip():
            raise ParseError(f"Package record missing packageName: {source}")

        raw_channels = payload.get("channels") or []
        if not isinstance(raw_channels, list):
            raise ParseError(f"Package record channels must be a list: {source}")
        channels: list[Channel] = []
        for idx, entry in enumerate(raw_channels):
            if not isinstance(entry, Mapping):
                raise ParseError(f"Package record channels[{idx}] must be a mapping: {source}")
            channel_name = entry.get("name")
            current_csv = entry.get("currentCSV")
            if not isinstance(channel_name, str) or not isinstance(current_csv, str):
                raise ParseError(
                    f"Package record channels[{idx}] needs string name and currentCSV: {source}"
                )
            channels.append(Channel(name=channel_name, current_csv=current_csv))

        default = payload.get("defaultChannel")
        if default is not None and not isinstance(default, str):
            raise ParseError(f"Package record defaultChannel must be a string: {source}")

        return cls(package_name=name, channels=channels, default_channel=default or None)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "packageName": self.package_name,
            "channels": [channel.to_dict() for channel in self.channels],
        }
        if self.default_channel:
            payload["defaultChannel"] = self.default_channel
        return payload

    def get_channel(self, name: str) -> Channel | None:
        for channel in self.channels:
            if channel.name == name:
                return channel
        return None

    def upsert_channel(self, name: str, current_csv: str) -> bool:
        """Point `name` at `current_csv`; returns True when the channel is new."""

        existing = self.get_channel(name)
        if existing is not None:
            existing.current_csv = current_csv
            return False
        self.channels.append(Channel(name=name, current_csv=current_csv))
        return True


def validate_package_record(record: PackageRecord) -> None:
    """
    Raises:
        ConsistencyError: empty package name, no channels, duplicate channel
            names, empty currentCSV, or a default channel that is not a channel.
    """

    problems: list[str] = []
    if not record.package_name.strip():
        problems.append("packageName is empty")
    if not record.channels:
        problems.append("no channels")

    seen: set[str] = set()
    for channel in record.channels:
        if not channel.name.strip():
            problems.append("channel with empty name")
        if channel.name in seen:
            problems.append(f"duplicate channel {channel.name!r}")
        seen.add(channel.name)
        if not channel.current_csv.strip():
            problems.append(f"channel {channel.name!r} has empty currentCSV")

    if record.default_channel is not None and record.default_channel not in seen:
        problems.append(f"default channel {record.default_channel!r} is not a channel")

    if problems:
        raise ConsistencyError(
            f"Invalid package record for {record.package_name!r}: " + "; ".join(problems)
        )


def package_file_path(directory: str, package_name: str) -> str:
    return os.path.join(directory, package_name + PACKAGE_FILE_SUFFIX)


def load_package_record(path: str) -> PackageRecord | None:
    if not os.path.isfile(path):
        return None
    try:
        payload = load_mapping_file(path)
    except ValueError as exc:
        raise ParseError(f"Error reading package record: {exc}") from exc
    except OSError as exc:
        raise ManifestIOError("Failed to read package record", path) from exc
    if payload is None:
        raise ParseError(f"Package record is empty: {path}")
    return PackageRecord.from_dict(payload, source=path)


class PackageIndexGenerator:
    def plan(
        self,
        package_name: str,
        version: str,
        output_root: str,
        *,
        channel_name: str | None = None,
        is_default_channel: bool = False,
        base_dir: str | None = None,
    ) -> PackageRecord:
        """Compute the updated record without touching the filesystem."""

        if is_default_channel and not channel_name:
            raise ConfigurationError("A default channel can only be set when a channel name is given")

        channel = channel_name or DEFAULT_CHANNEL_NAME
        source_path = package_file_path(base_dir or output_root, package_name)
        record = load_package_record(source_path)
        if record is None:
            logger.debug("No package record at %s; starting a new one", source_path)
            record = PackageRecord(package_name=package_name)
        elif record.package_name != package_name:
            raise ConsistencyError(
                f"Package record at {source_path} is for {record.package_name!r}, not {package_name!r}"
            )

        created = record.upsert_channel(channel, csv_name(package_name, version))
        logger.debug("%s channel %s -> %s", "Added" if created else "Updated", channel, version)

        if is_default_channel or len(record.channels) == 1 or not record.default_channel:
            record.default_channel = channel

        validate_package_record(record)
        return record

    def write(self, record: PackageRecord, version: str, output_root: str) -> str:
        version_dir = os.path.join(output_root, version)
        try:
            os.makedirs(version_dir, exist_ok=True)
        except OSError as exc:
            raise ManifestIOError("Failed to create version directory", version_dir) from exc

        path = package_file_path(output_root, record.package_name)
        try:
            with open(path, "w", encoding="utf-8", newline="\n") as handle:
                handle.write(dump_document(record.to_dict()))
        except OSError as exc:
            raise ManifestIOError("Failed to write package record", path) from exc
        logger.info("Wrote package record %s", path)
        return path

    def generate(
        self,
        package_name: str,
        version: str,
        output_root: str,
        *,
        channel_name: str | None = None,
        is_default_channel: bool = False,
        base_dir: str | None = None,
    ) -> PackageRecord:
        record = self.plan(
            package_name,
            version,
            output_root,
            channel_name=channel_name,
            is_default_channel=is_default_channel,
            base_dir=base_dir,
        )
        self.write(record, version, output_root)
        return record
