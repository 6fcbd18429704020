"""Tests for config loading and validation."""

import pytest

from wastetrack.config.loader import DEFAULT_CONFIG, get_sqlite_path, load_config, resolve_config


def test_load_config_merges_defaults(tmp_path):
    path = tmp_path / "wastetrack.config.yaml"
    path.write_text("storage:\n  sqlite_path: data/app.db\npagination:\n  default_limit: 50\n", encoding="utf-8")

    config = load_config(path)

    assert get_sqlite_path(config) == "data/app.db"
    assert config["pagination"] == {"default_limit": 50, "max_limit": 1000}
    assert config["notifications"]["retention_days"] == 30
    assert "payments" not in config


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_resolve_config_falls_back_to_defaults(tmp_path):
    assert resolve_config(tmp_path / "nope.yaml") == DEFAULT_CONFIG


def test_invalid_values_are_listed(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("pagination:\n  default_limit: 0\naudit:\n  retention_days: 0\n", encoding="utf-8")
    with pytest.raises(ValueError) as excinfo:
        load_config(path)
    message = str(excinfo.value)
    assert "pagination.default_limit" in message
    assert "audit.retention_days" in message


def test_default_limit_cannot_exceed_max(tmp_path):
    path = tmp_path / "limits.yaml"
    path.write_text("pagination:\n  default_limit: 200\n  max_limit: 100\n", encoding="utf-8")
    with pytest.raises(ValueError, match="cannot exceed"):
        load_config(path)


def test_non_mapping_config_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a dictionary"):
        load_config(path)
