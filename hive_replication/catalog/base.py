from __future__ import annotations

import abc
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Column:
    name: str
    data_type: str
    comment: Optional[str] = None


@dataclass(frozen=True)
class HiveTable:
    """Catalog view of a table; ``partition_keys`` is empty for unpartitioned tables."""

    db_name: str
    table_name: str
    columns: Tuple[Column, ...] = ()
    partition_keys: Tuple[Column, ...] = ()
    location: Optional[str] = None
    table_type: str = "EXTERNAL_TABLE"
    storage_format: Optional[str] = None
    parameters: Dict[str, str] = field(default_factory=dict)

    @property
    def is_partitioned(self) -> bool:
        return len(self.partition_keys) > 0

    def with_changes(self, **changes) -> "HiveTable":
        return replace(self, **changes)


@dataclass(frozen=True)
class HivePartition:
    db_name: str
    table_name: str
    partition_name: str
    location: Optional[str] = None
    parameters: Dict[str, str] = field(default_factory=dict)

    def with_changes(self, **changes) -> "HivePartition":
        return replace(self, **changes)


def partition_values(partition_name: str) -> List[Tuple[str, str]]:
    """Split ``ds=2024-01-01/hr=00`` into ``[("ds", "2024-01-01"), ("hr", "00")]``."""
    values: List[Tuple[str, str]] = []
    for part in partition_name.split("/"):
        key, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"Malformed partition name: {partition_name!r}")
        values.append((key, value))
    return values


class MetastoreClient(abc.ABC):
    """Client for one cluster's table catalog.

    Lookups return ``None`` for missing objects; transport or service failures
    raise :class:`~hive_replication.errors.MetastoreException`.
    """

    @abc.abstractmethod
    def get_table(self, db_name: str, table_name: str) -> Optional[HiveTable]:
        ...

    @abc.abstractmethod
    def get_partition(self, db_name: str, table_name: str, partition_name: str) -> Optional[HivePartition]:
        ...

    @abc.abstractmethod
    def get_partition_names(self, db_name: str, table_name: str) -> List[str]:
        ...

    @abc.abstractmethod
    def get_all_databases(self) -> List[str]:
        ...

    @abc.abstractmethod
    def get_all_tables(self, db_name: str) -> List[str]:
        ...

    def exists_table(self, db_name: str, table_name: str) -> bool:
        return self.get_table(db_name, table_name) is not None

    def create_table(self, table: HiveTable) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support create_table")

    def alter_table(self, table: HiveTable) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support alter_table")

    def drop_table(self, db_name: str, table_name: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support drop_table")

    def close(self) -> None:
        """Release the underlying connection."""

    def __enter__(self) -> "MetastoreClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def list_tables(client: MetastoreClient, databases: Optional[Sequence[str]] = None) -> List[Tuple[str, str]]:
    dbs = list(databases) if databases else client.get_all_databases()
    return [(db, table) for db in dbs for table in client.get_all_tables(db)]


__all__ = [
    "Column",
    "HivePartition",
    "HiveTable",
    "MetastoreClient",
    "list_tables",
    "partition_values",
]
