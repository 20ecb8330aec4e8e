"""
Exceptions raised while migrating tables between clusters.
"""


class MigrationError(Exception):
    """Base class for all migration errors."""


class ConfigurationError(MigrationError, ValueError):
    """Invalid migration settings, detected before any table is processed."""


class ClusterConnectionError(MigrationError, ConnectionError):
    """The origin or target cluster could not be contacted."""

    def __init__(self, role, message=None):
        self.role = role
        super().__init__(message or f"Could not contact {role} cluster")


class MarkerIOError(MigrationError):
    """An ack marker could not be created."""

    def __init__(self, path, message=None):
        self.path = path
        super().__init__(message or f"Could not write marker file {path}")


class ToolExecutionError(MigrationError):
    """The bulk transfer tool reported a failure for one table."""

    def __init__(self, table, operation_id, exit_status):
        self.table = table
        self.operation_id = operation_id
        self.exit_status = exit_status
        super().__init__(
            f"Table {table}: operation {operation_id} failed with {exit_status.name}"
        )
