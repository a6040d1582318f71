from __future__ import annotations

import re
from typing import Dict, List, Optional

from pyspark.sql import SparkSession
from pyspark.sql.utils import AnalysisException

from ..errors import MetastoreException
from .base import Column, HivePartition, HiveTable, MetastoreClient, partition_values

_PARAM_PAIR = re.compile(r"([^,{}=\s]+)=([^,{}]*)")

# Hive input format classes and Spark providers mapped to their STORED AS keyword
_STORED_AS = {
    "parquet": "PARQUET",
    "org.apache.hadoop.hive.ql.io.parquet.mapredparquetinputformat": "PARQUET",
    "orc": "ORC",
    "org.apache.hadoop.hive.ql.io.orc.orcinputformat": "ORC",
    "avro": "AVRO",
    "org.apache.hadoop.hive.ql.io.avro.avrocontainerinputformat": "AVRO",
    "text": "TEXTFILE",
    "textfile": "TEXTFILE",
    "org.apache.hadoop.mapred.textinputformat": "TEXTFILE",
    "sequencefile": "SEQUENCEFILE",
    "org.apache.hadoop.mapred.sequencefileinputformat": "SEQUENCEFILE",
    "rcfile": "RCFILE",
    "org.apache.hadoop.hive.ql.io.rcfileinputformat": "RCFILE",
}


def _quote(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _literal(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _partition_clause(partition_name: str) -> str:
    return ", ".join(f"{_quote(key)}={_literal(value)}" for key, value in partition_values(partition_name))


def _stored_as(table: HiveTable) -> str:
    keyword = _STORED_AS.get((table.storage_format or "").strip().lower())
    if keyword is None:
        raise MetastoreException(
            f"Unsupported storage format for {table.db_name}.{table.table_name}: {table.storage_format!r}"
        )
    return keyword


def _parse_parameters(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    return {key.strip(): value.strip() for key, value in _PARAM_PAIR.findall(raw)}


class SparkMetastoreClient(MetastoreClient):
    """Metastore access through a Hive-enabled Spark session."""

    def __init__(self, spark: SparkSession, catalog_prefix: Optional[str] = None) -> None:
        self.spark = spark
        self.catalog_prefix = catalog_prefix

    def _qualified(self, db_name: str, table_name: str) -> str:
        name = f"{_quote(db_name)}.{_quote(table_name)}"
        return f"{_quote(self.catalog_prefix)}.{name}" if self.catalog_prefix else name

    def _sql(self, statement: str):
        try:
            return self.spark.sql(statement)
        except AnalysisException as exc:
            raise MetastoreException(f"Metastore statement failed: {exc}") from exc

    def _describe(self, target: str) -> Dict[str, str]:
        rows = self._sql(f"DESCRIBE FORMATTED {target}").collect()
        details: Dict[str, str] = {}
        for row in rows:
            key = (row["col_name"] or "").strip().rstrip(":")
            if key and key not in details:
                details[key] = (row["data_type"] or "").strip()
        return details

    def exists_table(self, db_name: str, table_name: str) -> bool:
        return bool(self.spark._jsparkSession.catalog().tableExists(db_name, table_name))

    def get_table(self, db_name: str, table_name: str) -> Optional[HiveTable]:
        if not self.exists_table(db_name, table_name):
            return None
        try:
            listed = self.spark.catalog.listColumns(table_name, db_name)
        except AnalysisException as exc:
            raise MetastoreException(f"Unable to list columns for {db_name}.{table_name}: {exc}") from exc
        columns = tuple(
            Column(name=col.name, data_type=col.dataType, comment=col.description) for col in listed if not col.isPartition
        )
        partition_keys = tuple(
            Column(name=col.name, data_type=col.dataType, comment=col.description) for col in listed if col.isPartition
        )
        details = self._describe(self._qualified(db_name, table_name))
        properties = {
            row["key"]: row["value"]
            for row in self._sql(f"SHOW TBLPROPERTIES {self._qualified(db_name, table_name)}").collect()
        }
        table_type = details.get("Type", "EXTERNAL").upper()
        return HiveTable(
            db_name=db_name,
            table_name=table_name,
            columns=columns,
            partition_keys=partition_keys,
            location=details.get("Location") or None,
            table_type="MANAGED_TABLE" if table_type.startswith("MANAGED") else "EXTERNAL_TABLE",
            storage_format=details.get("InputFormat") or details.get("Provider") or None,
            parameters=properties,
        )

    def get_partition_names(self, db_name: str, table_name: str) -> List[str]:
        if not self.exists_table(db_name, table_name):
            return []
        try:
            rows = self.spark.sql(f"SHOW PARTITIONS {self._qualified(db_name, table_name)}").collect()
        except AnalysisException as exc:
            if "not partitioned" in str(exc).lower() or "NOT_PARTITIONED" in str(exc):
                return []
            raise MetastoreException(f"Unable to list partitions for {db_name}.{table_name}: {exc}") from exc
        return [row[0] for row in rows]

    def get_partition(self, db_name: str, table_name: str, partition_name: str) -> Optional[HivePartition]:
        if partition_name not in set(self.get_partition_names(db_name, table_name)):
            return None
        target = f"{self._qualified(db_name, table_name)} PARTITION ({_partition_clause(partition_name)})"
        details = self._describe(target)
        return HivePartition(
            db_name=db_name,
            table_name=table_name,
            partition_name=partition_name,
            location=details.get("Location") or None,
            parameters=_parse_parameters(details.get("Partition Parameters")),
        )

    def get_all_databases(self) -> List[str]:
        return [db.name for db in self.spark.catalog.listDatabases()]

    def get_all_tables(self, db_name: str) -> List[str]:
        return [tbl.name for tbl in self.spark.catalog.listTables(db_name) if not tbl.isTemporary]

    def _table_ddl(self, table: HiveTable) -> str:
        cols = ", ".join(f"{_quote(col.name)} {col.data_type}" for col in table.columns) or "`_dummy` STRING"
        ddl = f"CREATE EXTERNAL TABLE IF NOT EXISTS {self._qualified(table.db_name, table.table_name)} ({cols})"
        if table.partition_keys:
            keys = ", ".join(f"{_quote(col.name)} {col.data_type}" for col in table.partition_keys)
            ddl += f" PARTITIONED BY ({keys})"
        ddl += f" STORED AS {_stored_as(table)}"
        if table.location:
            ddl += f" LOCATION {_literal(table.location)}"
        if table.parameters:
            props = ", ".join(f"{_literal(key)}={_literal(value)}" for key, value in sorted(table.parameters.items()))
            ddl += f" TBLPROPERTIES ({props})"
        return ddl

    def create_table(self, table: HiveTable) -> None:
        self._sql(f"CREATE DATABASE IF NOT EXISTS {_quote(table.db_name)}")
        self._sql(self._table_ddl(table))

    def alter_table(self, table: HiveTable) -> None:
        target = self._qualified(table.db_name, table.table_name)
        cols = ", ".join(f"{_quote(col.name)} {col.data_type}" for col in table.columns)
        if cols:
            self._sql(f"ALTER TABLE {target} REPLACE COLUMNS ({cols})")
        self._sql(f"ALTER TABLE {target} SET FILEFORMAT {_stored_as(table)}")
        if table.location:
            self._sql(f"ALTER TABLE {target} SET LOCATION {_literal(table.location)}")
        if table.parameters:
            props = ", ".join(f"{_literal(key)}={_literal(value)}" for key, value in sorted(table.parameters.items()))
            self._sql(f"ALTER TABLE {target} SET TBLPROPERTIES ({props})")

    def drop_table(self, db_name: str, table_name: str) -> None:
        self._sql(f"DROP TABLE IF EXISTS {self._qualified(db_name, table_name)}")


__all__ = ["SparkMetastoreClient"]
