"""
Shared fixtures for the table migration tests.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ack_markers import AckMarkerStore
from migration_errors import ToolExecutionError
from migration_settings import ClusterInfo, MigrationSettings
from table_migrator import ExitStatus
from table_schema import ColumnRole, ExportedColumn, TableIdentity


class RecordingRunner:
    """Stands in for dsbulk: records every call and returns a fixed status."""

    def __init__(self, status=ExitStatus.STATUS_OK):
        self.status = status
        self.calls = []

    def __call__(self, args, table, operation_id):
        self.calls.append((list(args), table, operation_id))
        if self.status is not ExitStatus.STATUS_OK:
            raise ToolExecutionError(table, operation_id, self.status)
        return self.status


class SteppingClock:
    """Returns a UTC time one millisecond later on every call."""

    def __init__(self, start=datetime(2024, 1, 31, 23, 59, 59, 123000, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now += timedelta(milliseconds=1)
        return current


@pytest.fixture
def settings(tmp_path):
    return MigrationSettings(
        export_cluster=ClusterInfo(origin=True, contact_points=(("10.0.0.1", 9042),)),
        import_cluster=ClusterInfo(origin=False, contact_points=(("10.0.1.1", 9042),)),
        data_dir=tmp_path / "data",
        dsbulk_log_dir=Path("/var/log/dsbulk"),
    )


@pytest.fixture
def table():
    return TableIdentity("ks", "t1")


@pytest.fixture
def wide_columns():
    """One key column and two regular columns."""
    return [
        ExportedColumn("id", ColumnRole.PRIMARY_KEY),
        ExportedColumn("name", ColumnRole.REGULAR, writetime=True, ttl=True),
        ExportedColumn("email", ColumnRole.REGULAR, writetime=True, ttl=True),
    ]


@pytest.fixture
def markers(settings):
    return AckMarkerStore(settings.data_dir)


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def clock():
    return SteppingClock()
