from conftest import make_table
from hive_replication.catalog.base import HivePartition
from hive_replication.cluster import DestinationObjectFactory
from hive_replication.estimator import TaskEstimator
from hive_replication.fs import DirectoryComparer
from hive_replication.model import HiveObjectSpec, TaskEstimate, TaskType


class _FixedComparer(DirectoryComparer):
    def __init__(self, equal):
        self.equal = equal
        self.calls = []

    def equal_dirs(self, src_path, dest_path):
        self.calls.append((src_path, dest_path))
        return self.equal


def _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore, comparer=None):
    return TaskEstimator(src_cluster, dest_cluster, src_metastore, dest_metastore, directory_comparer=comparer)


def _replicated(src_cluster, dest_cluster, table):
    return DestinationObjectFactory().create_dest_table(src_cluster, dest_cluster, table)


def test_missing_everywhere_is_noop(src_cluster, dest_cluster, src_metastore, dest_metastore):
    estimator = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore)

    assert estimator.analyze(HiveObjectSpec("d", "t")) == TaskEstimate.no_op()


def test_destination_only_table_is_dropped(src_cluster, dest_cluster, src_metastore, dest_metastore):
    dest_metastore.add_table(make_table("d", "t", root="hdfs://dest/warehouse"))
    estimator = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore)

    assert estimator.analyze(HiveObjectSpec("d", "t")).task_type is TaskType.DROP_TABLE


def test_missing_unpartitioned_table_copies_data_and_metadata(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(make_table("d", "t"))
    estimator = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore)

    estimate = estimator.analyze(HiveObjectSpec("d", "t"))

    assert estimate == TaskEstimate(
        TaskType.COPY_UNPARTITIONED_TABLE,
        update_data=True,
        update_metadata=True,
        src_path="hdfs://src/warehouse/d.db/t",
        dest_path="hdfs://dest/warehouse/d.db/t",
    )


def test_replicated_unpartitioned_table_is_noop_until_data_differs(
    src_cluster, dest_cluster, src_metastore, dest_metastore
):
    src_table = src_metastore.add_table(make_table("d", "t", parameters={"transient_lastDdlTime": "1"}))
    dest_table = _replicated(src_cluster, dest_cluster, src_table)
    dest_metastore.add_table(dest_table.with_changes(parameters={**dest_table.parameters, "transient_lastDdlTime": "9"}))

    same = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore, _FixedComparer(True))
    assert same.analyze(HiveObjectSpec("d", "t")) == TaskEstimate.no_op()

    differs = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore, _FixedComparer(False))
    estimate = differs.analyze(HiveObjectSpec("d", "t"))
    assert estimate.task_type is TaskType.COPY_UNPARTITIONED_TABLE
    assert estimate.update_data is True
    assert estimate.update_metadata is False


def test_partitioned_table_copy_when_missing_or_keys_change(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_table = src_metastore.add_table(make_table("d", "p", partition_keys=("ds", "hr")))
    estimator = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore)

    missing = estimator.analyze(HiveObjectSpec("d", "p"))
    assert missing == TaskEstimate(TaskType.COPY_PARTITIONED_TABLE, update_metadata=True)

    replicated = _replicated(src_cluster, dest_cluster, src_table)
    dest_metastore.add_table(replicated.with_changes(partition_keys=replicated.partition_keys[:1]))
    assert estimator.analyze(HiveObjectSpec("d", "p")).task_type is TaskType.COPY_PARTITIONED_TABLE

    dest_metastore.add_table(replicated)
    assert estimator.analyze(HiveObjectSpec("d", "p")) == TaskEstimate.no_op()


def test_partition_decisions(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(
        make_table("d", "p", partition_keys=("ds",)),
        {"ds=1": "hdfs://src/warehouse/d.db/p/ds=1", "ds=2": "hdfs://src/warehouse/d.db/p/ds=2"},
    )
    dest_metastore.add_table(
        make_table("d", "p", root="hdfs://dest/warehouse", partition_keys=("ds",)),
        {"ds=3": "hdfs://dest/warehouse/d.db/p/ds=3"},
    )
    dest_metastore.partitions[("d", "p")]["ds=2"] = HivePartition(
        "d", "p", "ds=2", location="hdfs://dest/warehouse/d.db/p/ds=2", parameters={"replication.source.cluster": "src"}
    )
    estimator = _estimator(src_cluster, dest_cluster, src_metastore, dest_metastore, _FixedComparer(True))

    copy = estimator.analyze(HiveObjectSpec("d", "p", "ds=1"))
    assert copy.task_type is TaskType.COPY_PARTITION
    assert copy.dest_path == "hdfs://dest/warehouse/d.db/p/ds=1"
    assert estimator.analyze(HiveObjectSpec("d", "p", "ds=2")) == TaskEstimate.no_op()
    assert estimator.analyze(HiveObjectSpec("d", "p", "ds=3")).task_type is TaskType.DROP_PARTITION
    assert estimator.analyze(HiveObjectSpec("d", "p", "ds=4")) == TaskEstimate.no_op()
