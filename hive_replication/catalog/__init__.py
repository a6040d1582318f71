"""Metastore clients used by the compare stages."""

from .base import Column, HivePartition, HiveTable, MetastoreClient, list_tables, partition_values

__all__ = [
    "Column",
    "HivePartition",
    "HiveTable",
    "MetastoreClient",
    "list_tables",
    "partition_values",
]
