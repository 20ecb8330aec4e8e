#!/usr/bin/env python3
"""
Migrate table data from an origin cluster to a target cluster with dsbulk.
Each table is exported to CSV files, then imported into the target. Ack
markers under the data directory make re-runs skip completed work.
"""

import argparse
import logging
import sys
import threading
from pathlib import Path

from ack_markers import AckMarkerStore
from cluster_session import create_session
from migration_errors import ClusterConnectionError, ConfigurationError
from migration_settings import (
    DEFAULT_KEYSPACES,
    DEFAULT_TABLES,
    ClusterInfo,
    MigrationSettings,
    parse_contact_point,
)
from table_migrator import DsbulkRunner, TableMigrator
from table_schema import discover_tables, find_missing_tables

# Thread-safe logging lock
log_lock = threading.Lock()


def thread_safe_print(*args, **kwargs):
    """Thread-safe print function."""
    with log_lock:
        print(*args, **kwargs)


def main(argv=None):
    """Main function to migrate tables."""
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(message)s",
    )

    try:
        settings = settings_from_args(args).validate()
    except ConfigurationError as e:
        print(f"✗ Invalid configuration: {e}")
        return 2

    print("=" * 70)
    print("Table Data Migration")
    print("=" * 70)
    print("Configuration:")
    print(f"  - Data directory: {settings.data_dir}")
    print(f"  - Threads: {settings.num_threads}")
    print(f"  - Keyspaces: {settings.keyspaces}")
    print(f"  - Tables: {settings.tables}")

    print("\n[1/4] Connecting to clusters...")
    origin_session = target_session = None
    try:
        origin_session = create_session(settings.export_cluster, settings.export_credentials)
        print("  ✓ Connected to origin cluster")
        if not settings.skip_import:
            target_session = create_session(settings.import_cluster, settings.import_credentials)
            print("  ✓ Connected to target cluster")
    except ClusterConnectionError as e:
        print(f"✗ {e}: {e.__cause__}")
        shutdown(origin_session)
        return 1

    try:
        print("\n[2/4] Getting tables to migrate...")
        tables = select_tables(origin_session, target_session, settings)
        if not tables:
            print(f"⚠ No tables matched keyspaces '{settings.keyspaces}' and tables '{settings.tables}'")
            return 0

        print(f"Found {len(tables)} table(s) to migrate:")
        for table, _ in tables:
            print(f"  - {table}")

        print(f"\n[3/4] Starting {settings.num_threads} worker thread(s)...")
        reports = migrate_all(tables, settings)
    finally:
        shutdown(origin_session)
        shutdown(target_session)

    print("\n[4/4] Summary")
    return print_summary(reports)


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Migrate table data between two clusters with dsbulk",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    export_group = parser.add_argument_group('Origin (export) options')
    export_group.add_argument('--export-host', action='append', default=[],
                              help='Origin contact point as host[:port], repeatable')
    export_group.add_argument('--export-bundle', default=None,
                              help='Origin secure connect bundle (replaces --export-host)')
    export_group.add_argument('--export-username', default=None,
                              help='Origin username (optional)')
    export_group.add_argument('--export-password', default=None,
                              help='Origin password (optional)')
    export_group.add_argument('--export-consistency', default='LOCAL_QUORUM',
                              help='Read consistency level')
    export_group.add_argument('--export-max-records', type=int, default=-1,
                              help='Maximum records to export per table, -1 for all')
    export_group.add_argument('--export-max-concurrent-files', default='AUTO',
                              help='Maximum files written concurrently')
    export_group.add_argument('--export-max-concurrent-queries', default='AUTO',
                              help='Maximum read queries run concurrently')
    export_group.add_argument('--export-splits', default='8C',
                              help='Number of token range splits per table')

    import_group = parser.add_argument_group('Target (import) options')
    import_group.add_argument('--import-host', action='append', default=[],
                              help='Target contact point as host[:port], repeatable')
    import_group.add_argument('--import-bundle', default=None,
                              help='Target secure connect bundle (replaces --import-host)')
    import_group.add_argument('--import-username', default=None,
                              help='Target username (optional)')
    import_group.add_argument('--import-password', default=None,
                              help='Target password (optional)')
    import_group.add_argument('--import-consistency', default='LOCAL_QUORUM',
                              help='Write consistency level')
    import_group.add_argument('--import-max-concurrent-files', default='AUTO',
                              help='Maximum files read concurrently')
    import_group.add_argument('--import-max-concurrent-queries', default='AUTO',
                              help='Maximum write queries run concurrently')
    import_group.add_argument('--import-default-timestamp', type=int, default=0,
                              help='Write timestamp (microseconds) for cells exported without one')

    migration_group = parser.add_argument_group('Migration options')
    migration_group.add_argument('--data-dir', default='data',
                                 help='Directory for exported data and ack markers')
    migration_group.add_argument('--dsbulk-log-dir', default='logs',
                                 help='Directory for dsbulk operation logs')
    migration_group.add_argument('--dsbulk-cmd', default='dsbulk',
                                 help='dsbulk executable')
    migration_group.add_argument('--num-threads', type=int, default=1,
                                 help='Number of worker threads for parallel migration')
    migration_group.add_argument('--keyspaces', default=DEFAULT_KEYSPACES,
                                 help='Regex selecting keyspaces to migrate')
    migration_group.add_argument('--tables', default=DEFAULT_TABLES,
                                 help='Regex selecting tables to migrate')
    migration_group.add_argument('--skip-import', action='store_true',
                                 help='Only export tables')
    migration_group.add_argument('--verbose', action='store_true',
                                 help='Log dsbulk command lines and driver details')

    return parser.parse_args(argv)


def settings_from_args(args):
    """Build MigrationSettings from parsed arguments."""
    return MigrationSettings(
        export_cluster=ClusterInfo(
            origin=True,
            contact_points=tuple(parse_contact_point(h) for h in args.export_host),
            bundle=Path(args.export_bundle) if args.export_bundle else None,
        ),
        import_cluster=ClusterInfo(
            origin=False,
            contact_points=tuple(parse_contact_point(h) for h in args.import_host),
            bundle=Path(args.import_bundle) if args.import_bundle else None,
        ),
        data_dir=Path(args.data_dir),
        dsbulk_log_dir=Path(args.dsbulk_log_dir),
        dsbulk_cmd=args.dsbulk_cmd,
        export_username=args.export_username,
        export_password=args.export_password,
        export_consistency=args.export_consistency,
        export_max_records=args.export_max_records,
        export_max_concurrent_files=args.export_max_concurrent_files,
        export_max_concurrent_queries=args.export_max_concurrent_queries,
        export_splits=args.export_splits,
        import_username=args.import_username,
        import_password=args.import_password,
        import_consistency=args.import_consistency,
        import_max_concurrent_files=args.import_max_concurrent_files,
        import_max_concurrent_queries=args.import_max_concurrent_queries,
        import_default_timestamp=args.import_default_timestamp,
        num_threads=args.num_threads,
        keyspaces=args.keyspaces,
        tables=args.tables,
        skip_import=args.skip_import,
    )


def select_tables(origin_session, target_session, settings):
    """Discover origin tables, dropping those the target cluster lacks."""
    tables = discover_tables(origin_session, settings)
    if target_session is None:
        return tables

    missing = set(find_missing_tables(target_session, [table for table, _ in tables]))
    for table in sorted(missing, key=str):
        print(f"  ⚠ Skipping table '{table}': it does not exist in the target cluster")
    return [(table, columns) for table, columns in tables if table not in missing]


def migrate_all(tables, settings, runner=None):
    """
    Migrate tables on worker threads.

    Tables are distributed round-robin; each thread processes its share
    sequentially.

    Returns:
        List of TableMigrationReport, export and import reports interleaved
    """
    runner = runner or DsbulkRunner(settings.dsbulk_cmd)
    markers = AckMarkerStore(settings.data_dir)

    thread_tables = [[] for _ in range(settings.num_threads)]
    for i, table in enumerate(tables):
        thread_tables[i % settings.num_threads].append(table)

    reports = []
    reports_lock = threading.Lock()
    threads = []
    for i, tables_list in enumerate(thread_tables):
        if tables_list:
            thread_safe_print(f"  Thread {i+1}: {len(tables_list)} table(s) - "
                              f"{', '.join(str(table) for table, _ in tables_list)}")
            thread = threading.Thread(
                target=worker_thread,
                args=(i+1, tables_list, settings, markers, runner, reports, reports_lock),
                name=f"worker-{i+1}",
            )
            thread.start()
            threads.append(thread)

    for thread in threads:
        thread.join()
    return reports


def worker_thread(thread_id, tables, settings, markers, runner, reports, reports_lock):
    """Worker thread to export then import a list of tables."""
    thread_safe_print(f"\n[Thread {thread_id}] Starting...")
    for table, columns in tables:
        thread_safe_print(f"[Thread {thread_id}] Processing table: {table}")
        migrator = TableMigrator(table, settings, columns, markers, runner)
        table_reports = [migrator.export_table()]
        if not settings.skip_import and table_reports[0].succeeded:
            table_reports.append(migrator.import_table())

        for report in table_reports:
            glyph = "✓" if report.succeeded else "✗"
            thread_safe_print(f"[Thread {thread_id}]   {glyph} {report}")
        with reports_lock:
            reports.extend(table_reports)
    thread_safe_print(f"[Thread {thread_id}] Completed")


def print_summary(reports):
    """Print the migration summary and return the process exit code."""
    failed = [report for report in reports if not report.succeeded]
    succeeded = len(reports) - len(failed)

    print("=" * 70)
    print("✓ Migration finished!" if not failed else "✗ Migration finished with errors")
    print(f"  - Successful operations: {succeeded}")
    if failed:
        print(f"  - Failed operations: {len(failed)}")
        for report in failed:
            print(f"    - {report}")
        print("  Re-run the migration to retry; completed tables will be skipped.")
    print("=" * 70)
    return 1 if failed else 0


def shutdown(session):
    if session is not None:
        session.cluster.shutdown()


if __name__ == "__main__":
    sys.exit(main())
