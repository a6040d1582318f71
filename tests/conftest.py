from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pytest

from hive_replication.catalog.base import Column, HivePartition, HiveTable, MetastoreClient
from hive_replication.cluster import Cluster
from hive_replication.errors import MetastoreException


class InMemoryMetastore(MetastoreClient):
    """Dictionary backed metastore recording every call made against it."""

    def __init__(self) -> None:
        self.tables: Dict[Tuple[str, str], HiveTable] = {}
        self.partitions: Dict[Tuple[str, str], Dict[str, HivePartition]] = {}
        self.calls: List[str] = []
        self.fail_on: set[str] = set()
        self.closed = 0

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise MetastoreException(f"{name} unavailable")

    def add_table(self, table: HiveTable, partitions: Optional[Dict[str, str]] = None) -> HiveTable:
        self.tables[(table.db_name, table.table_name)] = table
        if partitions is not None:
            self.partitions[(table.db_name, table.table_name)] = {
                name: HivePartition(table.db_name, table.table_name, name, location=location)
                for name, location in partitions.items()
            }
        return table

    def get_table(self, db_name: str, table_name: str) -> Optional[HiveTable]:
        self._record("get_table")
        return self.tables.get((db_name, table_name))

    def get_partition(self, db_name: str, table_name: str, partition_name: str) -> Optional[HivePartition]:
        self._record("get_partition")
        return self.partitions.get((db_name, table_name), {}).get(partition_name)

    def get_partition_names(self, db_name: str, table_name: str) -> List[str]:
        self._record("get_partition_names")
        return list(self.partitions.get((db_name, table_name), {}))

    def get_all_databases(self) -> List[str]:
        self._record("get_all_databases")
        return sorted({db for db, _ in self.tables})

    def get_all_tables(self, db_name: str) -> List[str]:
        self._record("get_all_tables")
        return sorted(tbl for db, tbl in self.tables if db == db_name)

    def create_table(self, table: HiveTable) -> None:
        self._record("create_table")
        self.tables[(table.db_name, table.table_name)] = table

    def alter_table(self, table: HiveTable) -> None:
        self._record("alter_table")
        self.tables[(table.db_name, table.table_name)] = table

    def drop_table(self, db_name: str, table_name: str) -> None:
        self._record("drop_table")
        self.tables.pop((db_name, table_name), None)
        self.partitions.pop((db_name, table_name), None)

    def close(self) -> None:
        self.closed += 1


def make_table(
    db: str,
    table: str,
    *,
    root: str = "hdfs://src/warehouse",
    partition_keys: Tuple[str, ...] = (),
    columns: Tuple[str, ...] = ("id", "name"),
    parameters: Optional[Dict[str, str]] = None,
) -> HiveTable:
    return HiveTable(
        db_name=db,
        table_name=table,
        columns=tuple(Column(name, "string") for name in columns),
        partition_keys=tuple(Column(name, "string") for name in partition_keys),
        location=f"{root}/{db}.db/{table}",
        storage_format="parquet",
        parameters=dict(parameters or {}),
    )


def make_cluster(name: str, fs_root: str, client: InMemoryMetastore) -> Cluster:
    return Cluster(name=name, fs_root=fs_root, client_factory=lambda: client)


@pytest.fixture
def src_metastore() -> InMemoryMetastore:
    return InMemoryMetastore()


@pytest.fixture
def dest_metastore() -> InMemoryMetastore:
    return InMemoryMetastore()


@pytest.fixture
def src_cluster(src_metastore) -> Cluster:
    return make_cluster("src", "hdfs://src/warehouse", src_metastore)


@pytest.fixture
def dest_cluster(dest_metastore) -> Cluster:
    return make_cluster("dest", "hdfs://dest/warehouse", dest_metastore)


_METASTORE_DDL = [
    "CREATE TABLE DBS (DB_ID INTEGER PRIMARY KEY, NAME VARCHAR(128))",
    "CREATE TABLE CDS (CD_ID INTEGER PRIMARY KEY)",
    "CREATE TABLE SDS (SD_ID INTEGER PRIMARY KEY, CD_ID INTEGER, LOCATION VARCHAR(4000), INPUT_FORMAT VARCHAR(4000))",
    "CREATE TABLE TBLS (TBL_ID INTEGER PRIMARY KEY, DB_ID INTEGER, SD_ID INTEGER, TBL_NAME VARCHAR(256), TBL_TYPE VARCHAR(128))",
    "CREATE TABLE COLUMNS_V2 (CD_ID INTEGER, COLUMN_NAME VARCHAR(767), TYPE_NAME VARCHAR(4000), COMMENT VARCHAR(256), INTEGER_IDX INTEGER)",
    "CREATE TABLE PARTITION_KEYS (TBL_ID INTEGER, PKEY_NAME VARCHAR(128), PKEY_TYPE VARCHAR(767), PKEY_COMMENT VARCHAR(4000), INTEGER_IDX INTEGER)",
    "CREATE TABLE TABLE_PARAMS (TBL_ID INTEGER, PARAM_KEY VARCHAR(256), PARAM_VALUE VARCHAR(4000))",
    "CREATE TABLE PARTITIONS (PART_ID INTEGER PRIMARY KEY, TBL_ID INTEGER, SD_ID INTEGER, PART_NAME VARCHAR(767))",
    "CREATE TABLE PARTITION_PARAMS (PART_ID INTEGER, PARAM_KEY VARCHAR(256), PARAM_VALUE VARCHAR(4000))",
]


def build_metastore_db(url: str, tables: List[HiveTable], partitions: Optional[Dict[Tuple[str, str], Dict[str, str]]] = None):
    """Create a Hive metastore schema subset at ``url`` holding ``tables``."""
    from sqlalchemy import create_engine, text

    partitions = partitions or {}
    engine = create_engine(url)
    db_ids: Dict[str, int] = {}
    ids = {"sd": 0, "part": 0}

    def next_sd(conn, location, input_format=None, cd_id=None) -> int:
        ids["sd"] += 1
        conn.execute(
            text("INSERT INTO SDS VALUES (:sd, :cd, :loc, :fmt)"),
            {"sd": ids["sd"], "cd": cd_id, "loc": location, "fmt": input_format},
        )
        return ids["sd"]

    with engine.begin() as conn:
        for ddl in _METASTORE_DDL:
            conn.execute(text(ddl))
        for tbl_id, table in enumerate(tables, start=1):
            if table.db_name not in db_ids:
                db_ids[table.db_name] = len(db_ids) + 1
                conn.execute(text("INSERT INTO DBS VALUES (:id, :name)"), {"id": db_ids[table.db_name], "name": table.db_name})
            conn.execute(text("INSERT INTO CDS VALUES (:cd)"), {"cd": tbl_id})
            sd_id = next_sd(conn, table.location, table.storage_format, cd_id=tbl_id)
            conn.execute(
                text("INSERT INTO TBLS VALUES (:tbl, :db, :sd, :name, :type)"),
                {"tbl": tbl_id, "db": db_ids[table.db_name], "sd": sd_id, "name": table.table_name, "type": table.table_type},
            )
            for idx, col in enumerate(table.columns):
                conn.execute(
                    text("INSERT INTO COLUMNS_V2 VALUES (:cd, :name, :type, :comment, :idx)"),
                    {"cd": tbl_id, "name": col.name, "type": col.data_type, "comment": col.comment, "idx": idx},
                )
            for idx, col in enumerate(table.partition_keys):
                conn.execute(
                    text("INSERT INTO PARTITION_KEYS VALUES (:tbl, :name, :type, :comment, :idx)"),
                    {"tbl": tbl_id, "name": col.name, "type": col.data_type, "comment": col.comment, "idx": idx},
                )
            for key, value in table.parameters.items():
                conn.execute(
                    text("INSERT INTO TABLE_PARAMS VALUES (:tbl, :key, :value)"),
                    {"tbl": tbl_id, "key": key, "value": value},
                )
            for name, location in partitions.get((table.db_name, table.table_name), {}).items():
                ids["part"] += 1
                part_sd = next_sd(conn, location)
                conn.execute(
                    text("INSERT INTO PARTITIONS VALUES (:part, :tbl, :sd, :name)"),
                    {"part": ids["part"], "tbl": tbl_id, "sd": part_sd, "name": name},
                )
    engine.dispose()
    return url
