"""
Per-table export and import with dsbulk.

A TableMigrator runs each direction at most once per table: the ack marker
written after a successful dsbulk run makes later calls return the recorded
operation id without invoking dsbulk again.
"""

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ack_markers import Direction
from dsbulk_args import build_export_args, build_import_args
from migration_errors import MarkerIOError, ToolExecutionError
from table_schema import check_unique_columns

logger = logging.getLogger(__name__)


class ExitStatus(Enum):
    """dsbulk exit codes."""

    STATUS_OK = 0
    STATUS_COMPLETED_WITH_ERRORS = 1
    STATUS_ABORTED_TOO_MANY_ERRORS = 2
    STATUS_ABORTED_FATAL_ERROR = 3
    STATUS_INTERRUPTED = 4
    STATUS_CRASHED = 5

    @classmethod
    def from_exit_code(cls, code):
        try:
            return cls(code)
        except ValueError:
            return cls.STATUS_CRASHED


class Outcome(Enum):
    COMPLETED = "completed"
    ALREADY_DONE = "already done"
    NOT_EXPORTED = "not exported"
    FAILED = "failed"


@dataclass(frozen=True)
class TableMigrationReport:
    table: object
    direction: Direction
    outcome: Outcome
    # id of the operation that produced the data, not of this call
    operation_id: Optional[str] = None
    status: ExitStatus = ExitStatus.STATUS_OK
    error: Optional[str] = None

    @property
    def succeeded(self):
        return self.outcome is not Outcome.FAILED

    def __str__(self):
        text = f"{self.direction.tag} {self.table}: {self.outcome.value}"
        if self.operation_id:
            text += f" ({self.operation_id})"
        if self.error:
            text += f" - {self.error}"
        return text


def create_operation_id(direction, table, now=None):
    """
    Build an operation id such as ``EXPORT_ks_t1_20240131_235959_123``.

    The timestamp is UTC with millisecond resolution.
    """
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y%m%d_%H%M%S_") + f"{now.microsecond // 1000:03d}"
    return f"{direction.tag}_{table.keyspace}_{table.table}_{timestamp}"


def redact_args(args):
    """Replace password option values so command lines can be logged."""
    redacted = list(args)
    for i, arg in enumerate(redacted[:-1]):
        if arg == "-p":
            redacted[i + 1] = "*****"
    return redacted


class DsbulkRunner:
    """Run dsbulk as a blocking subprocess."""

    def __init__(self, dsbulk_cmd="dsbulk", log=None):
        self.dsbulk_cmd = dsbulk_cmd
        self.log = log or logger

    def __call__(self, args, table, operation_id):
        command = [self.dsbulk_cmd] + list(args)
        self.log.debug("Table %s: running %s", table, " ".join(redact_args(command)))
        try:
            result = subprocess.run(command, check=False)
        except OSError as e:
            self.log.error("Table %s: could not launch %s: %s", table, self.dsbulk_cmd, e)
            raise ToolExecutionError(table, operation_id, ExitStatus.STATUS_CRASHED) from e

        status = ExitStatus.from_exit_code(result.returncode)
        if status is not ExitStatus.STATUS_OK:
            raise ToolExecutionError(table, operation_id, status)
        return status


class TableMigrator:
    """
    Export and import one table.

    Args:
        table: TableIdentity
        settings: MigrationSettings
        exported_columns: ordered ExportedColumn list for the table
        markers: AckMarkerStore rooted at the data directory
        runner: callable(args, table, operation_id) running dsbulk; raises
            ToolExecutionError on failure
        log: Logger for warnings and errors
        clock: callable returning the current UTC datetime
    """

    def __init__(self, table, settings, exported_columns, markers, runner,
                 log=None, clock=None):
        self.table = table
        self.settings = settings
        self.exported_columns = check_unique_columns(table, list(exported_columns))
        self.markers = markers
        self.runner = runner
        self.log = log or logger
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def export_table(self):
        marker = self.markers.check_already_done(Direction.EXPORT, self.table)
        if marker is not None:
            return self._report(Direction.EXPORT, Outcome.ALREADY_DONE, marker.operation_id)

        operation_id = create_operation_id(Direction.EXPORT, self.table, self.clock())
        args = build_export_args(self.table, self.settings, operation_id, self.exported_columns)
        return self._run(Direction.EXPORT, operation_id, args)

    def import_table(self):
        if self.markers.check_not_yet_exported(self.table):
            return self._report(Direction.IMPORT, Outcome.NOT_EXPORTED)

        marker = self.markers.check_already_done(Direction.IMPORT, self.table)
        if marker is not None:
            return self._report(Direction.IMPORT, Outcome.ALREADY_DONE, marker.operation_id)

        operation_id = create_operation_id(Direction.IMPORT, self.table, self.clock())
        args = build_import_args(self.table, self.settings, operation_id, self.exported_columns)
        return self._run(Direction.IMPORT, operation_id, args)

    def _run(self, direction, operation_id, args):
        self.log.info("Table %s: %s started (%s)", self.table, direction.value, operation_id)
        try:
            status = self.runner(args, self.table, operation_id)
        except ToolExecutionError as e:
            self.log.error(
                "Table %s: %s failed with %s (%s)",
                self.table, direction.value, e.exit_status.name, operation_id,
            )
            return self._report(direction, Outcome.FAILED, operation_id, e.exit_status, str(e))

        # the marker is only written once dsbulk reported success
        try:
            self.markers.record_done(direction, self.table, operation_id)
        except MarkerIOError as e:
            self.log.error(
                "Table %s: %s succeeded but its marker could not be written: %s",
                self.table, direction.value, e,
            )
            return self._report(direction, Outcome.FAILED, operation_id, status, str(e))

        self.log.info("Table %s: %s finished (%s)", self.table, direction.value, operation_id)
        return self._report(direction, Outcome.COMPLETED, operation_id, status)

    def _report(self, direction, outcome, operation_id=None,
                status=ExitStatus.STATUS_OK, error=None):
        return TableMigrationReport(self.table, direction, outcome, operation_id, status, error)
