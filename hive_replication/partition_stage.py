from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, Optional

from .catalog.base import MetastoreClient
from .cluster import Cluster, ClusterFactory
from .common import PrintLogger
from .estimator import TaskEstimator
from .events import emit_log
from .fs import DirectoryComparer
from .model import ResultRecord, TaskType


class PartitionCompareStage:
    """Resolve ``CHECK_PARTITION`` placeholders into partition actions.

    Records of any other type pass through unchanged. Like the table worker,
    one client per cluster is held for the lifetime of the stage instance.
    """

    def __init__(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        *,
        directory_comparer: Optional[DirectoryComparer] = None,
        logger: Optional[PrintLogger] = None,
    ) -> None:
        self.src_cluster = src_cluster
        self.dest_cluster = dest_cluster
        self.directory_comparer = directory_comparer
        self.logger = logger
        self.src_client: Optional[MetastoreClient] = None
        self.dest_client: Optional[MetastoreClient] = None
        self.estimator: Optional[TaskEstimator] = None

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], *, spark=None, logger: Optional[PrintLogger] = None, directory_comparer=None):
        factory = ClusterFactory.from_config(cfg, spark=spark)
        return cls(factory.src_cluster, factory.dest_cluster, directory_comparer=directory_comparer, logger=logger)

    def __enter__(self) -> "PartitionCompareStage":
        self.src_client = self.src_cluster.get_metastore_client()
        try:
            self.dest_client = self.dest_cluster.get_metastore_client()
        except Exception:
            self.src_client.close()
            self.src_client = None
            raise
        self.estimator = TaskEstimator(
            self.src_cluster,
            self.dest_cluster,
            self.src_client,
            self.dest_client,
            directory_comparer=self.directory_comparer,
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        src_client, dest_client = self.src_client, self.dest_client
        self.src_client = self.dest_client = None
        self.estimator = None
        try:
            if src_client is not None:
                src_client.close()
        finally:
            if dest_client is not None:
                dest_client.close()

    def resolve(self, record: ResultRecord) -> ResultRecord:
        if record.estimate.task_type is not TaskType.CHECK_PARTITION:
            return record
        if self.estimator is None:
            raise RuntimeError("PartitionCompareStage must be entered before resolve()")
        estimate = self.estimator.analyze(record.spec)
        if estimate.task_type is not TaskType.NO_OP:
            emit_log(
                None,
                level="DEBUG",
                msg="partition_estimate",
                db=record.spec.db_name,
                table=record.spec.table_name,
                partition=record.spec.partition_name,
                action=estimate.task_type.value,
                logger=self.logger,
            )
        return ResultRecord(estimate=estimate, spec=record.spec, extra=record.extra)

    def resolve_all(self, records: Iterable[ResultRecord]) -> Iterator[ResultRecord]:
        for record in records:
            yield self.resolve(record)


__all__ = ["PartitionCompareStage"]
