from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import MetastoreException
from .base import Column, HivePartition, HiveTable, MetastoreClient

_TABLE_SQL = """
SELECT t.TBL_ID, t.TBL_TYPE, s.LOCATION, s.INPUT_FORMAT, s.CD_ID
FROM TBLS t
JOIN DBS d ON d.DB_ID = t.DB_ID
LEFT JOIN SDS s ON s.SD_ID = t.SD_ID
WHERE d.NAME = :db_name AND t.TBL_NAME = :table_name
"""

_COLUMNS_SQL = """
SELECT COLUMN_NAME, TYPE_NAME, COMMENT
FROM COLUMNS_V2
WHERE CD_ID = :cd_id
ORDER BY INTEGER_IDX
"""

_PARTITION_KEYS_SQL = """
SELECT PKEY_NAME, PKEY_TYPE, PKEY_COMMENT
FROM PARTITION_KEYS
WHERE TBL_ID = :tbl_id
ORDER BY INTEGER_IDX
"""

_TABLE_PARAMS_SQL = "SELECT PARAM_KEY, PARAM_VALUE FROM TABLE_PARAMS WHERE TBL_ID = :tbl_id"

_PARTITION_NAMES_SQL = """
SELECT p.PART_NAME
FROM PARTITIONS p
JOIN TBLS t ON t.TBL_ID = p.TBL_ID
JOIN DBS d ON d.DB_ID = t.DB_ID
WHERE d.NAME = :db_name AND t.TBL_NAME = :table_name
"""

_PARTITION_SQL = """
SELECT p.PART_ID, s.LOCATION
FROM PARTITIONS p
JOIN TBLS t ON t.TBL_ID = p.TBL_ID
JOIN DBS d ON d.DB_ID = t.DB_ID
LEFT JOIN SDS s ON s.SD_ID = p.SD_ID
WHERE d.NAME = :db_name AND t.TBL_NAME = :table_name AND p.PART_NAME = :partition_name
"""

_PARTITION_PARAMS_SQL = "SELECT PARAM_KEY, PARAM_VALUE FROM PARTITION_PARAMS WHERE PART_ID = :part_id"

_TABLE_IDS_SQL = """
SELECT t.TBL_ID, t.SD_ID, s.CD_ID
FROM TBLS t
JOIN DBS d ON d.DB_ID = t.DB_ID
LEFT JOIN SDS s ON s.SD_ID = t.SD_ID
WHERE d.NAME = :db_name AND t.TBL_NAME = :table_name
"""


def _next_id(conn, table: str, column: str) -> int:
    return int(conn.execute(text(f"SELECT COALESCE(MAX({column}), 0) + 1 FROM {table}")).scalar())


def _table_ids(conn, db_name: str, table_name: str) -> Optional[Tuple[int, Optional[int], Optional[int]]]:
    row = conn.execute(text(_TABLE_IDS_SQL), {"db_name": db_name, "table_name": table_name}).first()
    if row is None:
        return None
    return row[0], row[1], row[2]


def _insert_columns(conn, cd_id: int, columns: Sequence[Column]) -> None:
    for idx, col in enumerate(columns):
        conn.execute(
            text(
                "INSERT INTO COLUMNS_V2 (CD_ID, COLUMN_NAME, TYPE_NAME, COMMENT, INTEGER_IDX) "
                "VALUES (:cd, :name, :type, :comment, :idx)"
            ),
            {"cd": cd_id, "name": col.name, "type": col.data_type, "comment": col.comment, "idx": idx},
        )


def _insert_params(conn, tbl_id: int, parameters: Dict[str, str]) -> None:
    for key, value in sorted(parameters.items()):
        conn.execute(
            text("INSERT INTO TABLE_PARAMS (TBL_ID, PARAM_KEY, PARAM_VALUE) VALUES (:tbl, :key, :value)"),
            {"tbl": tbl_id, "key": key, "value": value},
        )


class MetastoreDbClient(MetastoreClient):
    """Client over the metastore's backing relational database.

    Listing partition names this way avoids a Thrift round trip per table,
    which matters when the source holds millions of partitions. Table writes
    touch the DBS/CDS/SDS/TBLS/COLUMNS_V2/PARTITION_KEYS/TABLE_PARAMS rows in
    one transaction, so the client can be opened on executors for the
    pre-copy as well as for reads.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def from_config(cls, metastore_cfg: Dict[str, Any]) -> "MetastoreDbClient":
        url = metastore_cfg.get("url")
        if not url:
            raise ValueError("metastore.url must be provided for the sqlalchemy metastore client")
        options = {k: v for k, v in metastore_cfg.items() if k not in {"url", "type"}}
        return cls(create_engine(url, **options))

    def _rows(self, sql: str, **params: Any) -> List[Dict[str, Any]]:
        try:
            with self._engine.connect() as conn:
                result = conn.execute(text(sql), params)
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as exc:
            raise MetastoreException(f"Metastore database query failed: {exc}") from exc

    def get_table(self, db_name: str, table_name: str) -> Optional[HiveTable]:
        rows = self._rows(_TABLE_SQL, db_name=db_name, table_name=table_name)
        if not rows:
            return None
        row = rows[0]
        columns = ()
        if row["CD_ID"] is not None:
            columns = tuple(
                Column(name=col["COLUMN_NAME"], data_type=col["TYPE_NAME"], comment=col["COMMENT"])
                for col in self._rows(_COLUMNS_SQL, cd_id=row["CD_ID"])
            )
        partition_keys = tuple(
            Column(name=key["PKEY_NAME"], data_type=key["PKEY_TYPE"], comment=key["PKEY_COMMENT"])
            for key in self._rows(_PARTITION_KEYS_SQL, tbl_id=row["TBL_ID"])
        )
        params = {p["PARAM_KEY"]: p["PARAM_VALUE"] for p in self._rows(_TABLE_PARAMS_SQL, tbl_id=row["TBL_ID"])}
        return HiveTable(
            db_name=db_name,
            table_name=table_name,
            columns=columns,
            partition_keys=partition_keys,
            location=row["LOCATION"],
            table_type=row["TBL_TYPE"] or "EXTERNAL_TABLE",
            storage_format=row["INPUT_FORMAT"],
            parameters=params,
        )

    def get_partition_names(self, db_name: str, table_name: str) -> List[str]:
        return [row["PART_NAME"] for row in self._rows(_PARTITION_NAMES_SQL, db_name=db_name, table_name=table_name)]

    def get_partition(self, db_name: str, table_name: str, partition_name: str) -> Optional[HivePartition]:
        rows = self._rows(_PARTITION_SQL, db_name=db_name, table_name=table_name, partition_name=partition_name)
        if not rows:
            return None
        params = {p["PARAM_KEY"]: p["PARAM_VALUE"] for p in self._rows(_PARTITION_PARAMS_SQL, part_id=rows[0]["PART_ID"])}
        return HivePartition(
            db_name=db_name,
            table_name=table_name,
            partition_name=partition_name,
            location=rows[0]["LOCATION"],
            parameters=params,
        )

    def get_all_databases(self) -> List[str]:
        return [row["NAME"] for row in self._rows("SELECT NAME FROM DBS ORDER BY NAME")]

    def get_all_tables(self, db_name: str) -> List[str]:
        sql = "SELECT t.TBL_NAME FROM TBLS t JOIN DBS d ON d.DB_ID = t.DB_ID WHERE d.NAME = :db_name ORDER BY t.TBL_NAME"
        return [row["TBL_NAME"] for row in self._rows(sql, db_name=db_name)]

    def _write(self, action: str, work: Callable[[Connection], None]) -> None:
        try:
            with self._engine.begin() as conn:
                work(conn)
        except SQLAlchemyError as exc:
            raise MetastoreException(f"Metastore database {action} failed: {exc}") from exc

    def create_table(self, table: HiveTable) -> None:
        def work(conn: Connection) -> None:
            db_id = conn.execute(text("SELECT DB_ID FROM DBS WHERE NAME = :name"), {"name": table.db_name}).scalar()
            if db_id is None:
                db_id = _next_id(conn, "DBS", "DB_ID")
                conn.execute(text("INSERT INTO DBS (DB_ID, NAME) VALUES (:id, :name)"), {"id": db_id, "name": table.db_name})
            elif _table_ids(conn, table.db_name, table.table_name) is not None:
                raise MetastoreException(f"Table {table.db_name}.{table.table_name} already exists")
            cd_id = _next_id(conn, "CDS", "CD_ID")
            conn.execute(text("INSERT INTO CDS (CD_ID) VALUES (:cd)"), {"cd": cd_id})
            sd_id = _next_id(conn, "SDS", "SD_ID")
            conn.execute(
                text("INSERT INTO SDS (SD_ID, CD_ID, LOCATION, INPUT_FORMAT) VALUES (:sd, :cd, :loc, :fmt)"),
                {"sd": sd_id, "cd": cd_id, "loc": table.location, "fmt": table.storage_format},
            )
            tbl_id = _next_id(conn, "TBLS", "TBL_ID")
            conn.execute(
                text("INSERT INTO TBLS (TBL_ID, DB_ID, SD_ID, TBL_NAME, TBL_TYPE) VALUES (:tbl, :db, :sd, :name, :type)"),
                {"tbl": tbl_id, "db": db_id, "sd": sd_id, "name": table.table_name, "type": table.table_type},
            )
            _insert_columns(conn, cd_id, table.columns)
            for idx, key in enumerate(table.partition_keys):
                conn.execute(
                    text(
                        "INSERT INTO PARTITION_KEYS (TBL_ID, PKEY_NAME, PKEY_TYPE, PKEY_COMMENT, INTEGER_IDX) "
                        "VALUES (:tbl, :name, :type, :comment, :idx)"
                    ),
                    {"tbl": tbl_id, "name": key.name, "type": key.data_type, "comment": key.comment, "idx": idx},
                )
            _insert_params(conn, tbl_id, table.parameters)

        self._write("create_table", work)

    def alter_table(self, table: HiveTable) -> None:
        """Replace columns, location, format, type and parameters; partition keys are left alone."""

        def work(conn: Connection) -> None:
            ids = _table_ids(conn, table.db_name, table.table_name)
            if ids is None:
                raise MetastoreException(f"Table {table.db_name}.{table.table_name} does not exist")
            tbl_id, sd_id, cd_id = ids
            conn.execute(
                text("UPDATE SDS SET LOCATION = :loc, INPUT_FORMAT = :fmt WHERE SD_ID = :sd"),
                {"loc": table.location, "fmt": table.storage_format, "sd": sd_id},
            )
            conn.execute(text("UPDATE TBLS SET TBL_TYPE = :type WHERE TBL_ID = :tbl"), {"type": table.table_type, "tbl": tbl_id})
            if cd_id is not None:
                conn.execute(text("DELETE FROM COLUMNS_V2 WHERE CD_ID = :cd"), {"cd": cd_id})
                _insert_columns(conn, cd_id, table.columns)
            conn.execute(text("DELETE FROM TABLE_PARAMS WHERE TBL_ID = :tbl"), {"tbl": tbl_id})
            _insert_params(conn, tbl_id, table.parameters)

        self._write("alter_table", work)

    def drop_table(self, db_name: str, table_name: str) -> None:
        def work(conn: Connection) -> None:
            ids = _table_ids(conn, db_name, table_name)
            if ids is None:
                return
            tbl_id, sd_id, cd_id = ids
            parts = conn.execute(text("SELECT PART_ID, SD_ID FROM PARTITIONS WHERE TBL_ID = :tbl"), {"tbl": tbl_id}).fetchall()
            for part_id, part_sd_id in parts:
                conn.execute(text("DELETE FROM PARTITION_PARAMS WHERE PART_ID = :part"), {"part": part_id})
                conn.execute(text("DELETE FROM PARTITIONS WHERE PART_ID = :part"), {"part": part_id})
                if part_sd_id is not None:
                    conn.execute(text("DELETE FROM SDS WHERE SD_ID = :sd"), {"sd": part_sd_id})
            conn.execute(text("DELETE FROM PARTITION_KEYS WHERE TBL_ID = :tbl"), {"tbl": tbl_id})
            conn.execute(text("DELETE FROM TABLE_PARAMS WHERE TBL_ID = :tbl"), {"tbl": tbl_id})
            conn.execute(text("DELETE FROM TBLS WHERE TBL_ID = :tbl"), {"tbl": tbl_id})
            if sd_id is not None:
                conn.execute(text("DELETE FROM SDS WHERE SD_ID = :sd"), {"sd": sd_id})
            # partition storage descriptors may share the table's column descriptor
            if cd_id is not None and conn.execute(text("SELECT 1 FROM SDS WHERE CD_ID = :cd"), {"cd": cd_id}).first() is None:
                conn.execute(text("DELETE FROM COLUMNS_V2 WHERE CD_ID = :cd"), {"cd": cd_id})
                conn.execute(text("DELETE FROM CDS WHERE CD_ID = :cd"), {"cd": cd_id})

        self._write("drop_table", work)

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()


__all__ = ["MetastoreDbClient"]
