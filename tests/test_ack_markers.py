"""
Tests for the ack marker store.
"""

import errno
import logging

import pytest

import ack_markers
from ack_markers import AckMarkerStore, Direction
from migration_errors import MarkerIOError
from table_schema import TableIdentity


def test_marker_paths(markers, settings, table):
    root = settings.data_dir
    assert markers.marker_path(Direction.EXPORT, table) == root / "__exported__" / "ks__t1.exported"
    assert markers.marker_path(Direction.IMPORT, table) == root / "__imported__" / "ks__t1.imported"


def test_no_marker_means_not_done(markers, table):
    assert markers.check_already_done(Direction.EXPORT, table) is None
    assert markers.check_already_done(Direction.IMPORT, table) is None


def test_record_then_check(markers, table, caplog):
    path = markers.record_done(Direction.EXPORT, table, "EXPORT_ks_t1_20240101_000000_000")

    assert path.read_bytes() == b"EXPORT_ks_t1_20240101_000000_000"
    with caplog.at_level(logging.WARNING):
        marker = markers.check_already_done(Direction.EXPORT, table)
    assert marker.operation_id == "EXPORT_ks_t1_20240101_000000_000"
    assert marker.path == path
    assert "Table ks.t1: already exported, skipping" in caplog.text
    assert str(path) in caplog.text


def test_record_leaves_no_temporary_files(markers, table):
    path = markers.record_done(Direction.IMPORT, table, "IMPORT_ks_t1_20240101_000000_000")
    assert [p.name for p in path.parent.iterdir()] == ["ks__t1.imported"]


def test_record_twice_fails(markers, table):
    markers.record_done(Direction.EXPORT, table, "first")
    with pytest.raises(MarkerIOError, match="already exists"):
        markers.record_done(Direction.EXPORT, table, "second")
    assert markers.check_already_done(Direction.EXPORT, table).operation_id == "first"


def test_record_without_hard_link_support(markers, table, monkeypatch):
    def no_links(src, dst):
        raise OSError(errno.EPERM, "Operation not permitted")

    monkeypatch.setattr(ack_markers.os, "link", no_links)
    path = markers.record_done(Direction.EXPORT, table, "EXPORT_ks_t1_20240101_000000_000")

    assert path.read_text(encoding="utf-8") == "EXPORT_ks_t1_20240101_000000_000"
    assert [p.name for p in path.parent.iterdir()] == ["ks__t1.exported"]
    with pytest.raises(MarkerIOError, match="already exists"):
        markers.record_done(Direction.EXPORT, table, "second")
    assert path.read_text(encoding="utf-8") == "EXPORT_ks_t1_20240101_000000_000"


def test_record_fails_when_directory_cannot_be_created(tmp_path, table):
    not_a_dir = tmp_path / "data"
    not_a_dir.write_text("occupied")
    store = AckMarkerStore(not_a_dir)

    with pytest.raises(MarkerIOError) as excinfo:
        store.record_done(Direction.EXPORT, table, "op")
    assert isinstance(excinfo.value.__cause__, OSError)


def test_unreadable_marker_still_counts_as_done(markers, table, caplog):
    path = markers.marker_path(Direction.EXPORT, table)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\xff\xfe\xfa")

    with caplog.at_level(logging.WARNING):
        marker = markers.check_already_done(Direction.EXPORT, table)
    assert marker is not None
    assert marker.operation_id is None
    assert "could not read marker" in caplog.text


def test_check_not_yet_exported(markers, table, caplog):
    with caplog.at_level(logging.WARNING):
        assert markers.check_not_yet_exported(table) is True
    assert "Table ks.t1: not yet exported, skipping import." in caplog.text

    markers.record_done(Direction.EXPORT, table, "op")
    assert markers.check_not_yet_exported(table) is False


def test_markers_are_per_table(markers):
    markers.record_done(Direction.EXPORT, TableIdentity("ks", "t1"), "op")
    assert markers.check_already_done(Direction.EXPORT, TableIdentity("ks", "t2")) is None
    assert markers.check_already_done(Direction.EXPORT, TableIdentity("ks2", "t1")) is None


def test_direction_names():
    assert Direction.EXPORT.tag == "EXPORT"
    assert Direction.IMPORT.marker_dir_name == "__imported__"
    assert Direction.EXPORT.past_tense == "exported"
