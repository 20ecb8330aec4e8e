"""
Ack markers: one file per table and direction, written once the bulk
transfer tool has reported success.

Layout under the data directory root:

    __exported__/<keyspace>__<table>.exported
    __imported__/<keyspace>__<table>.imported

Each file holds the id of the operation that completed. Deleting a marker
is how an operator forces that table to be exported or imported again.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from migration_errors import MarkerIOError

logger = logging.getLogger(__name__)


class Direction(Enum):
    EXPORT = "export"
    IMPORT = "import"

    @property
    def tag(self):
        return self.name

    @property
    def past_tense(self):
        return f"{self.value}ed"

    @property
    def marker_dir_name(self):
        return f"__{self.past_tense}__"


@dataclass(frozen=True)
class AckMarker:
    path: Path
    # None when the marker exists but could not be read
    operation_id: Optional[str]


class AckMarkerStore:
    def __init__(self, root, log=None):
        self.root = Path(root)
        self.log = log or logger

    def marker_dir(self, direction):
        return self.root / direction.marker_dir_name

    def marker_path(self, direction, table):
        return self.marker_dir(direction) / f"{table.marker_name}.{direction.past_tense}"

    def check_already_done(self, direction, table):
        """
        Look for a completed operation on a table.

        Returns:
            AckMarker if the table was already processed in this direction,
            None otherwise
        """
        path = self.marker_path(direction, table)
        if not path.exists():
            return None

        self.log.warning(
            "Table %s: already %s, skipping (delete this file to re-%s: %s).",
            table,
            direction.past_tense,
            direction.value,
            path,
        )
        try:
            operation_id = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.log.warning("Table %s: could not read marker %s: %s", table, path, e)
            operation_id = None
        return AckMarker(path, operation_id)

    def check_not_yet_exported(self, table):
        """Return True, with a warning, if the table has no export marker."""
        if not self.marker_path(Direction.EXPORT, table).exists():
            self.log.warning("Table %s: not yet exported, skipping import.", table)
            return True
        return False

    def record_done(self, direction, table, operation_id):
        """
        Create the marker for a completed operation.

        The marker is written to a temporary file and then hard-linked into
        place, so it appears with its full content or not at all, and the
        link fails if another run already created it. Where the filesystem
        has no hard links the marker is created exclusively and written
        directly.

        Raises:
            MarkerIOError: the marker already exists or could not be written
        """
        path = self.marker_path(direction, table)
        tmp_path = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(operation_id)
            try:
                os.link(tmp_path, path)
            except FileExistsError:
                raise
            except OSError as e:
                self.log.debug("Hard link to %s failed (%s), creating it directly", path, e)
                _write_exclusive(path, operation_id)
        except FileExistsError as e:
            raise MarkerIOError(path, f"Marker file {path} already exists") from e
        except OSError as e:
            raise MarkerIOError(path) from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
        return path


def _write_exclusive(path, content):
    """Create path, failing with FileExistsError if it is already there."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError:
        # a marker must never be left half written
        os.unlink(path)
        raise
