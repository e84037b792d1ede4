"""Unit tests for migration discovery (no database needed)."""

from pathlib import Path

import pytest

from shared.migrations.runner import VERSIONS_DIR, MigrationRunner


def _touch(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_text("SELECT 1;", encoding="utf-8")


def test_discover_orders_by_number(tmp_path):
    _touch(tmp_path, "010_add_index.sql", "002_settings.sql", "001_init.sql")

    versions = [m.version for m in MigrationRunner(None, tmp_path).discover()]

    assert versions == ["001_init", "002_settings", "010_add_index"]


def test_misnamed_file_rejected(tmp_path):
    _touch(tmp_path, "001_init.sql", "hotfix.sql")
    with pytest.raises(ValueError):
        MigrationRunner(None, tmp_path).discover()


def test_duplicate_number_rejected(tmp_path):
    _touch(tmp_path, "001_init.sql", "001_other.sql")
    with pytest.raises(ValueError):
        MigrationRunner(None, tmp_path).discover()


def test_bundled_schema_is_discoverable():
    migrations = MigrationRunner(None, VERSIONS_DIR).discover()

    assert migrations[0].version == "001_birthday_notifications"
    sql = migrations[0].read()
    assert "UNIQUE (person_id, year)" in sql
    assert "claimed_at" in sql
