"""
Table-level compare stage.

For each table the worker emits the table's own estimate and, for
partitioned tables, one ``CHECK_PARTITION`` placeholder per partition name
found on either side. The placeholders are resolved by
:class:`~hive_replication.partition_stage.PartitionCompareStage` after a
shuffle. Partition counts are heavily skewed across tables and each metastore
lookup costs on the order of a hundred milliseconds, so redistributing the
per-partition checks evenly matters more than checking them where they were
discovered.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .blacklist import TableBlackList
from .catalog.base import MetastoreClient
from .cluster import Cluster, ClusterFactory, DestinationObjectFactory
from .common import PrintLogger
from .copy_task import CopyPartitionedTableTask, ObjectConflictHandler
from .errors import CopyTaskError
from .estimator import TaskEstimator
from .events import emit_log
from .fs import DirectoryComparer
from .model import HiveObjectSpec, ResultRecord, TaskEstimate, TaskType

EstimatorFactory = Callable[[Cluster, Cluster, MetastoreClient, MetastoreClient], TaskEstimator]
CopyTaskFactory = Callable[..., CopyPartitionedTableTask]


class TableCompareWorker:
    """Decide the action for one table at a time.

    ``setup`` opens one metastore client per cluster; they are reused for every
    table handed to the worker and released by ``cleanup``. Use the worker as
    a context manager to guarantee the release on error exit.
    """

    def __init__(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        *,
        blacklist: Optional[TableBlackList] = None,
        estimator_factory: Optional[EstimatorFactory] = None,
        copy_task_factory: Optional[CopyTaskFactory] = None,
        directory_comparer: Optional[DirectoryComparer] = None,
        conflict_handler: Optional[ObjectConflictHandler] = None,
        logger: Optional[PrintLogger] = None,
    ) -> None:
        self.src_cluster = src_cluster
        self.dest_cluster = dest_cluster
        self.blacklist = blacklist or TableBlackList()
        self.object_factory = DestinationObjectFactory()
        self.conflict_handler = conflict_handler or ObjectConflictHandler()
        self.directory_comparer = directory_comparer
        self.estimator_factory = estimator_factory or self._default_estimator
        self.copy_task_factory = copy_task_factory or CopyPartitionedTableTask
        self.logger = logger
        self.src_client: Optional[MetastoreClient] = None
        self.dest_client: Optional[MetastoreClient] = None
        self.estimator: Optional[TaskEstimator] = None

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        *,
        spark=None,
        logger: Optional[PrintLogger] = None,
        directory_comparer: Optional[DirectoryComparer] = None,
    ) -> "TableCompareWorker":
        runtime = cfg.get("runtime", {})
        factory = ClusterFactory.from_config(cfg, spark=spark)
        return cls(
            factory.src_cluster,
            factory.dest_cluster,
            blacklist=TableBlackList.from_config(runtime.get("blacklist", runtime.get("metastore_blacklist"))),
            conflict_handler=ObjectConflictHandler.from_config(runtime.get("conflict")),
            directory_comparer=directory_comparer,
            logger=logger,
        )

    def _default_estimator(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_client: MetastoreClient,
        dest_client: MetastoreClient,
    ) -> TaskEstimator:
        return TaskEstimator(
            src_cluster,
            dest_cluster,
            src_client,
            dest_client,
            directory_comparer=self.directory_comparer,
            object_factory=self.object_factory,
        )

    def setup(self) -> None:
        self.src_client = self.src_cluster.get_metastore_client()
        try:
            self.dest_client = self.dest_cluster.get_metastore_client()
        except Exception:
            self.src_client.close()
            self.src_client = None
            raise
        self.estimator = self.estimator_factory(self.src_cluster, self.dest_cluster, self.src_client, self.dest_client)

    def cleanup(self) -> None:
        src_client, dest_client = self.src_client, self.dest_client
        self.src_client = self.dest_client = None
        self.estimator = None
        try:
            if src_client is not None:
                src_client.close()
        finally:
            if dest_client is not None:
                dest_client.close()
        emit_log(None, level="DEBUG", msg="worker_cleanup", logger=self.logger)

    def __enter__(self) -> "TableCompareWorker":
        self.setup()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def process_table(self, db_name: str, table_name: str) -> List[ResultRecord]:
        """Return the table's estimate followed by one placeholder per partition name.

        Blacklisted tables produce nothing and touch no metastore. Any lookup
        or pre-copy failure is raised and nothing is returned for the table.
        """
        spec = HiveObjectSpec(db_name, table_name)
        if self.blacklist.matches(spec):
            emit_log(None, level="DEBUG", msg="table_suppressed", db=db_name, table=table_name, logger=self.logger)
            return []
        if self.estimator is None or self.src_client is None or self.dest_client is None:
            raise RuntimeError("TableCompareWorker.setup() must be called before process_table()")

        estimate = self.estimator.analyze(spec)
        records = [ResultRecord(estimate=estimate, spec=spec)]
        emit_log(
            None,
            level="DEBUG",
            msg="table_estimate",
            db=db_name,
            table=table_name,
            action=estimate.task_type.value,
            logger=self.logger,
        )

        src_table = self.src_client.get_table(db_name, table_name)
        if src_table is not None and src_table.is_partitioned:
            if estimate.task_type is TaskType.COPY_PARTITIONED_TABLE:
                # Partition key changes have to land before partitions are compared.
                # The commit phase runs the same task again.
                self._run_precopy(spec)
            records.extend(self._partition_placeholders(spec))
        return records

    def _run_precopy(self, spec: HiveObjectSpec) -> None:
        emit_log(None, level="INFO", msg="precopy_start", db=spec.db_name, table=spec.table_name, logger=self.logger)
        task = self.copy_task_factory(
            self.src_cluster,
            self.dest_cluster,
            spec,
            None,
            object_factory=self.object_factory,
            conflict_handler=self.conflict_handler,
            src_client=self.src_client,
            dest_client=self.dest_client,
            logger=self.logger,
        )
        run_info = task.run_task()
        if not run_info.succeeded:
            emit_log(
                None,
                level="ERROR",
                msg="precopy_failed",
                db=spec.db_name,
                table=spec.table_name,
                status=run_info.status.value,
                detail=run_info.detail,
                logger=self.logger,
            )
            raise CopyTaskError(f"Pre-copy of {spec} did not succeed: {run_info.status.value}", run_info)

    def _partition_placeholders(self, spec: HiveObjectSpec) -> List[ResultRecord]:
        src_names = set(self.src_client.get_partition_names(spec.db_name, spec.table_name))
        dest_names = set(self.dest_client.get_partition_names(spec.db_name, spec.table_name))
        names = src_names | dest_names
        emit_log(
            None,
            level="DEBUG",
            msg="partition_fanout",
            db=spec.db_name,
            table=spec.table_name,
            src=len(src_names),
            dest=len(dest_names),
            total=len(names),
            logger=self.logger,
        )
        placeholder = TaskEstimate.check_partition()
        return [
            ResultRecord(estimate=placeholder, spec=HiveObjectSpec(spec.db_name, spec.table_name, name))
            for name in names
        ]

    def process_tables(self, tables: Iterable[Tuple[str, str]]) -> Iterator[ResultRecord]:
        for db_name, table_name in tables:
            try:
                records = self.process_table(db_name, table_name)
            except Exception as exc:
                emit_log(
                    None,
                    level="ERROR",
                    msg="table_compare_failed",
                    db=db_name,
                    table=table_name,
                    err=str(exc),
                    logger=self.logger,
                )
                raise
            yield from records


__all__ = ["TableCompareWorker"]
