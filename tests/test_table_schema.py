"""
Tests for table identities and schema introspection.
"""

import dataclasses
import logging
from collections import OrderedDict
from pathlib import Path
from types import SimpleNamespace

import pytest

from migration_errors import ConfigurationError
from table_schema import (
    ColumnRole,
    ExportedColumn,
    TableIdentity,
    check_unique_columns,
    discover_tables,
    exported_columns,
    find_missing_tables,
)


def column(name, cql_type="text"):
    return SimpleNamespace(name=name, cql_type=cql_type)


def table_meta(partition_key, clustering_key=(), regular=()):
    columns = OrderedDict()
    for c in list(partition_key) + list(clustering_key) + list(regular):
        columns[c.name] = c
    return SimpleNamespace(
        partition_key=list(partition_key),
        clustering_key=list(clustering_key),
        columns=columns,
    )


def session_with(keyspaces):
    metadata = SimpleNamespace(keyspaces=keyspaces)
    return SimpleNamespace(cluster=SimpleNamespace(metadata=metadata))


def keyspace(tables, virtual=False):
    return SimpleNamespace(tables=tables, virtual=virtual)


@pytest.fixture
def schema_session():
    pk, ck = column("id", "uuid"), column("ts", "timestamp")
    return session_with({
        "system": keyspace({"local": table_meta([column("key")])}),
        "system_schema": keyspace({"tables": table_meta([column("keyspace_name")])}),
        "shop": keyspace({
            "orders": table_meta([pk], [ck], [column("total", "decimal"), column("items", "list<text>")]),
            "customers": table_meta([column("email")], regular=[column("name")]),
            "hits": table_meta([column("page")], regular=[column("views", "counter")]),
        }),
        "Analytics": keyspace({"events": table_meta([column("id")])}),
        "virtual_ks": keyspace({"clients": table_meta([column("address")])}, virtual=True),
    })


def test_table_identity():
    table = TableIdentity("MyKs", "t1")
    assert str(table) == "MyKs.t1"
    assert table.cql_name == '"MyKs".t1'
    assert table.marker_name == "MyKs__t1"
    assert table.data_dir("/data") == Path("/data") / "MyKs" / "t1"


def test_exported_columns_order_and_timestamps():
    meta = table_meta(
        [column("a"), column("b")],
        [column("c")],
        [column("x", "int"), column("tags", "set<text>"), column("frozen_tags", "frozen<set<text>>")],
    )
    columns = exported_columns(meta)

    assert [c.name for c in columns] == ["a", "b", "c", "x", "tags", "frozen_tags"]
    assert [c.role for c in columns[:3]] == [ColumnRole.PRIMARY_KEY] * 3
    assert not any(c.writetime or c.ttl for c in columns[:3])
    assert columns[3] == ExportedColumn("x", ColumnRole.REGULAR, writetime=True, ttl=True)
    assert columns[4] == ExportedColumn("tags", ColumnRole.REGULAR)
    assert columns[5].writetime and columns[5].ttl


def test_discover_tables_default_filters(schema_session, settings, caplog):
    with caplog.at_level(logging.WARNING):
        tables = discover_tables(schema_session, settings)

    assert [t for t, _ in tables] == [
        TableIdentity("Analytics", "events"),
        TableIdentity("shop", "customers"),
        TableIdentity("shop", "orders"),
    ]
    assert "Table shop.hits: counter tables are not supported" in caplog.text
    orders_columns = dict(tables)[TableIdentity("shop", "orders")]
    assert [c.name for c in orders_columns] == ["id", "ts", "total", "items"]


def test_discover_tables_with_regexes(schema_session, settings):
    settings = dataclasses.replace(settings, keyspaces="shop", tables="cust.*")
    tables = discover_tables(schema_session, settings)
    assert [t for t, _ in tables] == [TableIdentity("shop", "customers")]


def test_find_missing_tables(schema_session):
    tables = [
        TableIdentity("shop", "orders"),
        TableIdentity("shop", "returns"),
        TableIdentity("archive", "orders"),
    ]
    assert find_missing_tables(schema_session, tables) == tables[1:]


def test_check_unique_columns():
    table = TableIdentity("ks", "t")
    columns = [ExportedColumn("a", ColumnRole.PRIMARY_KEY), ExportedColumn("b", ColumnRole.REGULAR)]
    assert check_unique_columns(table, columns) is columns

    with pytest.raises(ConfigurationError):
        check_unique_columns(table, columns + [ExportedColumn("b", ColumnRole.REGULAR)])
