"""
Table identities and exported column lists, read from the origin cluster's
schema metadata.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cassandra.metadata import protect_name

from migration_errors import ConfigurationError

logger = logging.getLogger(__name__)

COLLECTION_TYPES = ("list<", "set<", "map<")


class ColumnRole(Enum):
    PRIMARY_KEY = "primary_key"
    REGULAR = "regular"


@dataclass(frozen=True)
class TableIdentity:
    """A keyspace and table name, both in their internal (unquoted) form."""

    keyspace: str
    table: str

    def __str__(self):
        return f"{self.keyspace}.{self.table}"

    @property
    def cql_name(self):
        return f"{protect_name(self.keyspace)}.{protect_name(self.table)}"

    @property
    def marker_name(self):
        return f"{self.keyspace}__{self.table}"

    def data_dir(self, root):
        return Path(root) / self.keyspace / self.table


@dataclass(frozen=True)
class ExportedColumn:
    """
    One column of an exported table.

    Regular columns may also export their write time and TTL, which come
    back on import as the ``<name>_writetime`` and ``<name>_ttl`` variables.
    """

    name: str
    role: ColumnRole
    writetime: bool = False
    ttl: bool = False

    @property
    def is_primary_key(self):
        return self.role is ColumnRole.PRIMARY_KEY

    @property
    def writetime_variable(self):
        return f"{self.name}_writetime"

    @property
    def ttl_variable(self):
        return f"{self.name}_ttl"


def check_unique_columns(table, columns):
    seen = set()
    for column in columns:
        if column.name in seen:
            raise ConfigurationError(f"Table {table}: column {column.name} exported twice")
        seen.add(column.name)
    return columns


def is_counter_table(table_meta):
    return any(column.cql_type == "counter" for column in table_meta.columns.values())


def is_multi_cell_collection(cql_type):
    # WRITETIME() and TTL() are rejected on non-frozen collections
    return cql_type.startswith(COLLECTION_TYPES)


def exported_columns(table_meta):
    """
    Build the ordered column list for a table: partition key, clustering key,
    then the remaining columns in table order.
    """
    key_columns = list(table_meta.partition_key) + list(table_meta.clustering_key)
    key_names = {column.name for column in key_columns}

    columns = [ExportedColumn(column.name, ColumnRole.PRIMARY_KEY) for column in key_columns]
    for name, column in table_meta.columns.items():
        if name in key_names:
            continue
        timestamped = not is_multi_cell_collection(column.cql_type)
        columns.append(
            ExportedColumn(name, ColumnRole.REGULAR, writetime=timestamped, ttl=timestamped)
        )
    return columns


def discover_tables(session, settings, log=None):
    """
    List the origin tables selected by the keyspaces and tables regexes.

    Returns:
        List of (TableIdentity, [ExportedColumn]) sorted by keyspace and table
    """
    log = log or logger
    keyspace_pattern = re.compile(settings.keyspaces)
    table_pattern = re.compile(settings.tables)
    metadata = session.cluster.metadata

    tables = []
    for keyspace_name in sorted(metadata.keyspaces):
        keyspace = metadata.keyspaces[keyspace_name]
        if getattr(keyspace, "virtual", False):
            continue
        if not keyspace_pattern.fullmatch(keyspace_name):
            continue
        for table_name in sorted(keyspace.tables):
            if not table_pattern.fullmatch(table_name):
                continue
            table = TableIdentity(keyspace_name, table_name)
            table_meta = keyspace.tables[table_name]
            if is_counter_table(table_meta):
                log.warning("Table %s: counter tables are not supported, skipping.", table)
                continue
            tables.append((table, exported_columns(table_meta)))
    return tables


def find_missing_tables(session, tables):
    """Return the tables that do not exist in the session's cluster."""
    keyspaces = session.cluster.metadata.keyspaces
    missing = []
    for table in tables:
        keyspace = keyspaces.get(table.keyspace)
        if keyspace is None or table.table not in keyspace.tables:
            missing.append(table)
    return missing
