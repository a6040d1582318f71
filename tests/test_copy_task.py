import pytest

from conftest import make_table
from hive_replication.cluster import SOURCE_CLUSTER_PARAM, DestinationObjectFactory
from hive_replication.copy_task import CopyPartitionedTableTask, ObjectConflictHandler, RunStatus
from hive_replication.errors import MetastoreException
from hive_replication.model import HiveObjectSpec

SPEC = HiveObjectSpec("d", "p")


def _task(src_cluster, dest_cluster, **kwargs):
    return CopyPartitionedTableTask(src_cluster, dest_cluster, SPEC, None, **kwargs)


def test_creates_missing_table_and_second_run_is_noop(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(make_table("d", "p", partition_keys=("ds",)))

    first = _task(src_cluster, dest_cluster).run_task()
    second = _task(src_cluster, dest_cluster).run_task()

    assert first.status is RunStatus.SUCCESSFUL and first.detail == "created"
    assert second.status is RunStatus.SUCCESSFUL and second.detail == "unchanged"
    assert dest_metastore.calls.count("create_table") == 1
    assert "alter_table" not in dest_metastore.calls
    created = dest_metastore.tables[("d", "p")]
    assert created.parameters[SOURCE_CLUSTER_PARAM] == "src"


def test_owned_clients_are_closed(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(make_table("d", "p", partition_keys=("ds",)))

    _task(src_cluster, dest_cluster).run_task()

    assert src_metastore.closed == 1
    assert dest_metastore.closed == 1


def test_borrowed_clients_stay_open(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(make_table("d", "p", partition_keys=("ds",)))

    _task(src_cluster, dest_cluster, src_client=src_metastore, dest_client=dest_metastore).run_task()

    assert src_metastore.closed == 0
    assert dest_metastore.closed == 0


def test_partition_key_change_recreates_table(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_table = src_metastore.add_table(make_table("d", "p", partition_keys=("ds", "hr")))
    old = DestinationObjectFactory().create_dest_table(src_cluster, dest_cluster, src_table)
    dest_metastore.add_table(old.with_changes(partition_keys=old.partition_keys[:1]))

    info = _task(src_cluster, dest_cluster).run_task()

    assert info.detail == "recreated"
    assert dest_metastore.calls[-2:] == ["drop_table", "create_table"]
    assert [col.name for col in dest_metastore.tables[("d", "p")].partition_keys] == ["ds", "hr"]
    assert _task(src_cluster, dest_cluster).run_task().detail == "unchanged"


def test_partition_key_change_can_be_refused(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_table = src_metastore.add_table(make_table("d", "p", partition_keys=("ds", "hr")))
    old = DestinationObjectFactory().create_dest_table(src_cluster, dest_cluster, src_table)
    dest_metastore.add_table(old.with_changes(partition_keys=old.partition_keys[:1]))
    handler = ObjectConflictHandler(drop_on_partition_key_change=False)

    info = _task(src_cluster, dest_cluster, conflict_handler=handler).run_task()

    assert info.status is RunStatus.NOT_COMPLETABLE
    assert "drop_table" not in dest_metastore.calls


def test_unreplicated_destination_is_left_alone(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(make_table("d", "p", partition_keys=("ds",)))
    dest_metastore.add_table(make_table("d", "p", root="hdfs://dest/warehouse", partition_keys=("ds",), columns=("id",)))

    info = _task(src_cluster, dest_cluster).run_task()

    assert info.status is RunStatus.NOT_COMPLETABLE
    assert info.detail == "destination_not_created_by_replication"

    allowed = _task(src_cluster, dest_cluster, conflict_handler=ObjectConflictHandler(overwrite_unreplicated=True))
    assert allowed.run_task().detail == "altered"


def test_metastore_errors_propagate(src_cluster, dest_cluster, src_metastore, dest_metastore):
    src_metastore.add_table(make_table("d", "p", partition_keys=("ds",)))
    dest_metastore.fail_on.add("create_table")

    with pytest.raises(MetastoreException):
        _task(src_cluster, dest_cluster).run_task()
    assert dest_metastore.closed == 1


def test_unpartitioned_source_is_not_completable(src_cluster, dest_cluster, src_metastore):
    src_metastore.add_table(make_table("d", "p"))

    assert _task(src_cluster, dest_cluster).run_task().status is RunStatus.NOT_COMPLETABLE


def test_conflict_policy_reads_runtime_conflict_keys():
    assert ObjectConflictHandler.from_config(None) == ObjectConflictHandler()
    policy = ObjectConflictHandler.from_config({"overwrite_unreplicated": True, "drop_on_partition_key_change": False})
    assert policy == ObjectConflictHandler(overwrite_unreplicated=True, drop_on_partition_key_change=False)
