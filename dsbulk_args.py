"""
Command-line arguments for the DataStax Bulk Loader (dsbulk).

Exports unload each table into ``<data dir>/<keyspace>/<table>`` with a
SELECT that also reads every regular column's write time and TTL. Imports
load those files back. How a table is loaded depends on how many regular
(non primary key) columns it has:

* none: plain ``-k``/``-t`` load, the mapping targets the table columns.
* one: a single INSERT carrying that column's timestamp and TTL.
* two or more: one INSERT per regular column inside an unlogged batch
  query, so each cell keeps its own write time. dsbulk's own statement
  batching is disabled in that case.
"""

from cassandra.metadata import protect_name

from migration_errors import ConfigurationError


def escape(text):
    """Escape double quotes in an identifier passed as a dsbulk option value."""
    return text.replace('"', '\\"')


def count_regular_columns(columns):
    return sum(1 for column in columns if not column.is_primary_key)


def connectivity_args(cluster_info, username=None, password=None):
    args = []
    if cluster_info.is_cloud:
        args += ["-b", str(cluster_info.bundle)]
    elif cluster_info.contact_points:
        args += ["-h", '["' + cluster_info.host_string + '"]']
    else:
        raise ConfigurationError(
            f"The {cluster_info.role} cluster needs a secure bundle or at least one host"
        )
    if username is not None:
        args += ["-u", username]
    if password is not None:
        args += ["-p", password]
    return args


def build_export_query(table, columns):
    selectors = []
    for column in columns:
        name = protect_name(column.name)
        selectors.append(name)
        if column.writetime:
            selectors.append(f"WRITETIME({name})")
        if column.ttl:
            selectors.append(f"TTL({name})")
    return f"SELECT {', '.join(selectors)} FROM {table.cql_name}"


def build_import_mapping(columns):
    """Map exported field indexes to column (or bind variable) names."""
    targets = []
    for column in columns:
        targets.append(column.name)
        if column.writetime:
            targets.append(column.writetime_variable)
        if column.ttl:
            targets.append(column.ttl_variable)
    return ", ".join(f"{index} = {protect_name(name)}" for index, name in enumerate(targets))


def _using_clause(column, default_timestamp):
    if column.writetime:
        clause = f"USING TIMESTAMP :{protect_name(column.writetime_variable)}"
    else:
        clause = f"USING TIMESTAMP {default_timestamp}"
    if column.ttl:
        clause += f" AND TTL :{protect_name(column.ttl_variable)}"
    return clause


def _insert_statement(table, key_columns, column, default_timestamp):
    names = [protect_name(c.name) for c in key_columns + [column]]
    return (
        f"INSERT INTO {table.cql_name} ({', '.join(names)}) "
        f"VALUES ({', '.join(':' + name for name in names)}) "
        f"{_using_clause(column, default_timestamp)}"
    )


def build_single_import_query(table, columns, default_timestamp):
    key_columns = [c for c in columns if c.is_primary_key]
    (regular,) = [c for c in columns if not c.is_primary_key]
    return _insert_statement(table, key_columns, regular, default_timestamp)


def build_batch_import_query(table, columns, default_timestamp):
    key_columns = [c for c in columns if c.is_primary_key]
    statements = [
        _insert_statement(table, key_columns, column, default_timestamp)
        for column in columns
        if not column.is_primary_key
    ]
    return "BEGIN UNLOGGED BATCH " + "; ".join(statements) + "; APPLY BATCH"


def build_export_args(table, settings, operation_id, columns):
    """
    Build the ``dsbulk unload`` arguments for one table.

    Args:
        table: TableIdentity to export
        settings: MigrationSettings
        operation_id: id dsbulk uses for this execution
        columns: ordered ExportedColumn list

    Returns:
        List of argument strings, without the dsbulk executable
    """
    args = ["unload"]
    args += connectivity_args(
        settings.export_cluster, settings.export_username, settings.export_password
    )
    args += [
        "-url", str(table.data_dir(settings.data_dir)),
        "-maxRecords", str(settings.export_max_records),
        "-maxConcurrentFiles", str(settings.export_max_concurrent_files),
        "-maxConcurrentQueries", str(settings.export_max_concurrent_queries),
        "--schema.splits", str(settings.export_splits),
        "-cl", str(settings.export_consistency),
        "-header", "false",
        "-verbosity", "0",
        "--engine.executionId", operation_id,
        "-logDir", str(settings.dsbulk_log_dir),
        "-query", build_export_query(table, columns),
    ]
    return args


def build_import_args(table, settings, operation_id, columns):
    """
    Build the ``dsbulk load`` arguments for one table.

    Args:
        table: TableIdentity to import
        settings: MigrationSettings
        operation_id: id dsbulk uses for this execution
        columns: the ExportedColumn list the table was exported with

    Returns:
        List of argument strings, without the dsbulk executable
    """
    args = ["load"]
    args += connectivity_args(
        settings.import_cluster, settings.import_username, settings.import_password
    )
    args += [
        "-url", str(table.data_dir(settings.data_dir)),
        "-maxConcurrentFiles", str(settings.import_max_concurrent_files),
        "-maxConcurrentQueries", str(settings.import_max_concurrent_queries),
        "-cl", str(settings.import_consistency),
        "-header", "false",
        "-verbosity", "0",
        "--engine.executionId", operation_id,
        "-logDir", str(settings.dsbulk_log_dir),
        "-m", build_import_mapping(columns),
    ]

    regular_columns = count_regular_columns(columns)
    default_timestamp = settings.import_default_timestamp
    if regular_columns == 0:
        args += ["-k", escape(table.keyspace), "-t", escape(table.table)]
    elif regular_columns == 1:
        args += ["-query", build_single_import_query(table, columns, default_timestamp)]
    else:
        args += [
            "--batch.mode", "DISABLED",
            "-query", build_batch_import_query(table, columns, default_timestamp),
        ]
    return args
