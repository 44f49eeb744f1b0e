import os

import pytest

from manifestpack.foundation.config_io import deep_merge, load_config


def test_load_config_without_file_is_empty(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MANIFESTPACK_CONFIG", raising=False)

    cfg, meta = load_config(start_dir=str(tmp_path), env_var="TEST_MANIFESTPACK_CONFIG")

    assert cfg == {}
    assert meta["mode"] == "none"
    assert meta["paths"] == []


def test_load_config_base_only(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MANIFESTPACK_CONFIG", raising=False)
    (tmp_path / "manifestpack.yaml").write_text("version: 0.0.1\nchannel:\n  name: alpha\n", encoding="utf-8")

    cfg, meta = load_config(start_dir=str(tmp_path), env_var="TEST_MANIFESTPACK_CONFIG")

    assert cfg == {"version": "0.0.1", "channel": {"name": "alpha"}}
    assert meta["mode"] == "base"
    assert os.path.basename(meta["paths"][0]) == "manifestpack.yaml"


def test_load_config_base_plus_local_overlay(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MANIFESTPACK_CONFIG", raising=False)
    (tmp_path / "manifestpack.yaml").write_text("version: 0.0.1\nchannel:\n  name: alpha\n", encoding="utf-8")
    (tmp_path / "manifestpack.local.yaml").write_text("channel:\n  name: stable\n  default: true\n", encoding="utf-8")

    cfg, meta = load_config(start_dir=str(tmp_path), env_var="TEST_MANIFESTPACK_CONFIG")

    assert cfg == {"version": "0.0.1", "channel": {"name": "stable", "default": True}}
    assert meta["mode"] == "base+local"
    assert len(meta["paths"]) == 2


def test_load_config_invalid_overlay_yaml_raises(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MANIFESTPACK_CONFIG", raising=False)
    (tmp_path / "manifestpack.yaml").write_text("version: 0.0.1\n", encoding="utf-8")
    (tmp_path / "manifestpack.local.yaml").write_text("channel: [1, 2\n", encoding="utf-8")

    with pytest.raises(ValueError) as excinfo:
        load_config(start_dir=str(tmp_path), env_var="TEST_MANIFESTPACK_CONFIG")

    assert "manifestpack.local.yaml" in str(excinfo.value)


def test_load_config_env_override_loads_single_file(tmp_path, monkeypatch):
    base_dir = tmp_path / "base"
    base_dir.mkdir()
    (base_dir / "manifestpack.yaml").write_text("version: 0.0.1\n", encoding="utf-8")
    env_path = tmp_path / "ci.yaml"
    env_path.write_text("version: 9.9.9\n", encoding="utf-8")

    monkeypatch.setenv("TEST_MANIFESTPACK_CONFIG", str(env_path))
    cfg, meta = load_config(start_dir=str(base_dir), env_var="TEST_MANIFESTPACK_CONFIG")

    assert cfg == {"version": "9.9.9"}
    assert meta["mode"] == "env"
    assert meta["paths"] == [os.path.abspath(str(env_path))]


def test_load_config_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="Missing config file"):
        load_config(config_path=str(tmp_path / "absent.yaml"))


def test_deep_merge_none_overlay_keeps_base():
    base = {"output": {"dir": "out", "stdout": False}, "version": "0.0.1"}
    overlay = {"output": {"dir": None, "stdout": True}, "version": None, "channel": {"name": None}}

    assert deep_merge(base, overlay) == {
        "output": {"dir": "out", "stdout": True},
        "version": "0.0.1",
        "channel": {"name": None},
    }


def test_deep_merge_type_mismatch_raises():
    with pytest.raises(ValueError, match=r"Invalid config overlay merge at output"):
        deep_merge({"output": {"dir": "x"}}, {"output": [1, 2]})
