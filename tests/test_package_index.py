import pytest
import yaml

from manifestpack.framework.errors import ConfigurationError, ConsistencyError, ParseError
from manifestpack.framework.package_index import (
    Channel,
    PackageIndexGenerator,
    PackageRecord,
    package_file_path,
    validate_package_record,
)

PACKAGE = "memcached-operator"


def _read_record(root) -> dict:
    return yaml.safe_load((root / f"{PACKAGE}.package.yaml").read_text(encoding="utf-8"))


def test_fresh_record_uses_default_alpha_channel(tmp_path):
    record = PackageIndexGenerator().generate(PACKAGE, "0.0.1", str(tmp_path))

    assert record.channels == [Channel(name="alpha", current_csv="memcached-operator.v0.0.1")]
    assert record.default_channel == "alpha"
    assert (tmp_path / "0.0.1").is_dir()
    assert _read_record(tmp_path) == {
        "packageName": PACKAGE,
        "channels": [{"name": "alpha", "currentCSV": "memcached-operator.v0.0.1"}],
        "defaultChannel": "alpha",
    }


def test_channel_upsert_updates_in_place_and_keeps_prior_versions(tmp_path):
    generator = PackageIndexGenerator()
    generator.generate(PACKAGE, "0.0.1", str(tmp_path), channel_name="stable")
    prior_file = tmp_path / "0.0.1" / "memcached-operator.clusterserviceversion.yaml"
    prior_file.write_text("kind: ClusterServiceVersion\n", encoding="utf-8")

    generator.generate(PACKAGE, "0.0.2", str(tmp_path), channel_name="stable")

    payload = _read_record(tmp_path)
    assert payload["channels"] == [{"name": "stable", "currentCSV": "memcached-operator.v0.0.2"}]
    assert prior_file.read_text(encoding="utf-8") == "kind: ClusterServiceVersion\n"


def test_new_channel_is_appended_without_touching_others(tmp_path):
    generator = PackageIndexGenerator()
    generator.generate(PACKAGE, "0.0.1", str(tmp_path), channel_name="stable")
    generator.generate(PACKAGE, "0.0.2", str(tmp_path), channel_name="alpha")

    payload = _read_record(tmp_path)
    assert payload["channels"] == [
        {"name": "stable", "currentCSV": "memcached-operator.v0.0.1"},
        {"name": "alpha", "currentCSV": "memcached-operator.v0.0.2"},
    ]
    assert payload["defaultChannel"] == "stable"


def test_default_channel_is_exclusive(tmp_path):
    generator = PackageIndexGenerator()
    generator.generate(PACKAGE, "0.0.1", str(tmp_path), channel_name="stable", is_default_channel=True)
    record = generator.generate(PACKAGE, "0.0.2", str(tmp_path), channel_name="alpha", is_default_channel=True)

    assert record.default_channel == "alpha"
    assert _read_record(tmp_path)["defaultChannel"] == "alpha"


def test_default_without_channel_rejected_before_io(tmp_path):
    output_root = tmp_path / "out"
    with pytest.raises(ConfigurationError, match="default channel"):
        PackageIndexGenerator().generate(PACKAGE, "0.0.1", str(output_root), is_default_channel=True)
    assert not output_root.exists()


def test_repeated_generation_is_byte_identical(tmp_path):
    generator = PackageIndexGenerator()
    generator.generate(PACKAGE, "1.0.0", str(tmp_path), channel_name="stable")
    first = (tmp_path / f"{PACKAGE}.package.yaml").read_bytes()
    generator.generate(PACKAGE, "1.0.0", str(tmp_path), channel_name="stable")
    assert (tmp_path / f"{PACKAGE}.package.yaml").read_bytes() == first


def test_existing_record_is_read_from_base_dir(tmp_path):
    input_dir = tmp_path / "in"
    input_dir.mkdir()
    (input_dir / f"{PACKAGE}.package.yaml").write_text(
        "packageName: memcached-operator\n"
        "channels:\n"
        "- name: beta\n"
        "  currentCSV: memcached-operator.v0.0.9\n"
        "defaultChannel: beta\n",
        encoding="utf-8",
    )
    output_root = tmp_path / "out"

    record = PackageIndexGenerator().generate(
        PACKAGE, "1.0.0", str(output_root), channel_name="stable", base_dir=str(input_dir)
    )

    assert [c.name for c in record.channels] == ["beta", "stable"]
    assert record.default_channel == "beta"
    assert (output_root / f"{PACKAGE}.package.yaml").exists()


def test_plan_does_not_touch_disk(tmp_path):
    record = PackageIndexGenerator().plan(PACKAGE, "0.0.1", str(tmp_path / "out"), channel_name="stable")
    assert record.default_channel == "stable"
    assert not (tmp_path / "out").exists()


def test_malformed_record_is_a_parse_error(tmp_path):
    (tmp_path / f"{PACKAGE}.package.yaml").write_text("packageName: x\nchannels: {}\n", encoding="utf-8")
    with pytest.raises(ParseError, match="channels must be a list"):
        PackageIndexGenerator().plan(PACKAGE, "0.0.1", str(tmp_path))


def test_record_for_another_package_is_rejected(tmp_path):
    (tmp_path / f"{PACKAGE}.package.yaml").write_text(
        "packageName: other\nchannels:\n- name: alpha\n  currentCSV: other.v1.0.0\n", encoding="utf-8"
    )
    with pytest.raises(ConsistencyError, match="is for 'other'"):
        PackageIndexGenerator().plan(PACKAGE, "0.0.1", str(tmp_path))


def test_stale_default_is_reported_before_persisting(tmp_path):
    path = tmp_path / f"{PACKAGE}.package.yaml"
    original = (
        "packageName: memcached-operator\n"
        "channels:\n"
        "- name: alpha\n"
        "  currentCSV: memcached-operator.v0.0.1\n"
        "defaultChannel: gone\n"
    )
    path.write_text(original, encoding="utf-8")

    with pytest.raises(ConsistencyError, match="default channel 'gone' is not a channel"):
        PackageIndexGenerator().generate(PACKAGE, "0.0.2", str(tmp_path), channel_name="beta")
    assert path.read_text(encoding="utf-8") == original
    assert not (tmp_path / "0.0.2").exists()


def test_validate_rejects_duplicate_channels():
    record = PackageRecord(
        package_name=PACKAGE,
        channels=[Channel("stable", "a.v1.0.0"), Channel("stable", "a.v2.0.0")],
        default_channel="stable",
    )
    with pytest.raises(ConsistencyError, match="duplicate channel 'stable'"):
        validate_package_record(record)


def test_package_file_path(tmp_path):
    assert package_file_path(str(tmp_path), PACKAGE) == str(tmp_path / "memcached-operator.package.yaml")
