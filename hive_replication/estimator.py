from __future__ import annotations

from typing import Optional

from .catalog.base import HivePartition, HiveTable, MetastoreClient
from .cluster import Cluster, DestinationObjectFactory, comparable_parameters
from .fs import DirectoryComparer
from .model import HiveObjectSpec, TaskEstimate, TaskType


def tables_equivalent(expected: HiveTable, actual: HiveTable) -> bool:
    return (
        expected.columns == actual.columns
        and expected.partition_keys == actual.partition_keys
        and expected.location == actual.location
        and expected.storage_format == actual.storage_format
        and comparable_parameters(expected.parameters) == comparable_parameters(actual.parameters)
    )


def partitions_equivalent(expected: HivePartition, actual: HivePartition) -> bool:
    return expected.location == actual.location and comparable_parameters(expected.parameters) == comparable_parameters(
        actual.parameters
    )


class TaskEstimator:
    """Decide the replication action for a table or partition.

    The estimate is a pure function of the two catalogs (and the data
    directories, through ``directory_comparer``) at call time. Catalog
    failures propagate to the caller.
    """

    def __init__(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_client: MetastoreClient,
        dest_client: MetastoreClient,
        directory_comparer: Optional[DirectoryComparer] = None,
        object_factory: Optional[DestinationObjectFactory] = None,
    ) -> None:
        self.src_cluster = src_cluster
        self.dest_cluster = dest_cluster
        self.src_client = src_client
        self.dest_client = dest_client
        self.directory_comparer = directory_comparer
        self.object_factory = object_factory or DestinationObjectFactory()

    def analyze(self, spec: HiveObjectSpec) -> TaskEstimate:
        if spec.is_partition:
            return self._analyze_partition(spec)
        return self._analyze_table(spec)

    def _data_differs(self, src_path: Optional[str], dest_path: Optional[str]) -> bool:
        if self.directory_comparer is None:
            return False
        return not self.directory_comparer.equal_dirs(src_path, dest_path)

    def _analyze_table(self, spec: HiveObjectSpec) -> TaskEstimate:
        src_table = self.src_client.get_table(spec.db_name, spec.table_name)
        dest_table = self.dest_client.get_table(spec.db_name, spec.table_name)
        if src_table is None:
            if dest_table is not None:
                return TaskEstimate(TaskType.DROP_TABLE, update_metadata=True)
            return TaskEstimate.no_op()

        expected = self.object_factory.create_dest_table(self.src_cluster, self.dest_cluster, src_table)
        if src_table.is_partitioned:
            if dest_table is None or not tables_equivalent(expected, dest_table):
                return TaskEstimate(TaskType.COPY_PARTITIONED_TABLE, update_metadata=True)
            return TaskEstimate.no_op()

        if dest_table is None:
            return TaskEstimate(
                TaskType.COPY_UNPARTITIONED_TABLE,
                update_data=src_table.location is not None,
                update_metadata=True,
                src_path=src_table.location,
                dest_path=expected.location,
            )
        update_metadata = not tables_equivalent(expected, dest_table)
        update_data = src_table.location is not None and self._data_differs(src_table.location, dest_table.location)
        if not update_metadata and not update_data:
            return TaskEstimate.no_op()
        return TaskEstimate(
            TaskType.COPY_UNPARTITIONED_TABLE,
            update_data=update_data,
            update_metadata=update_metadata,
            src_path=src_table.location if update_data else None,
            dest_path=expected.location if update_data else None,
        )

    def _analyze_partition(self, spec: HiveObjectSpec) -> TaskEstimate:
        partition_name = spec.partition_name or ""
        src_partition = self.src_client.get_partition(spec.db_name, spec.table_name, partition_name)
        dest_partition = self.dest_client.get_partition(spec.db_name, spec.table_name, partition_name)
        if src_partition is None:
            if dest_partition is not None:
                return TaskEstimate(TaskType.DROP_PARTITION, update_metadata=True)
            # Listed during fan-out but gone from both sides since.
            return TaskEstimate.no_op()

        expected = self.object_factory.create_dest_partition(self.src_cluster, self.dest_cluster, src_partition)
        if dest_partition is None:
            return TaskEstimate(
                TaskType.COPY_PARTITION,
                update_data=src_partition.location is not None,
                update_metadata=True,
                src_path=src_partition.location,
                dest_path=expected.location,
            )
        update_metadata = not partitions_equivalent(expected, dest_partition)
        update_data = src_partition.location is not None and self._data_differs(
            src_partition.location, dest_partition.location
        )
        if not update_metadata and not update_data:
            return TaskEstimate.no_op()
        return TaskEstimate(
            TaskType.COPY_PARTITION,
            update_data=update_data,
            update_metadata=update_metadata,
            src_path=src_partition.location if update_data else None,
            dest_path=expected.location if update_data else None,
        )


__all__ = ["TaskEstimator", "partitions_equivalent", "tables_equivalent"]
