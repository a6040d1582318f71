from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .catalog.base import HiveTable, MetastoreClient
from .cluster import SOURCE_CLUSTER_PARAM, Cluster, DestinationObjectFactory
from .common import PrintLogger
from .estimator import tables_equivalent
from .events import emit_log
from .model import HiveObjectSpec


class RunStatus(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    NOT_COMPLETABLE = "NOT_COMPLETABLE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RunInfo:
    status: RunStatus
    detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCESSFUL


@dataclass(frozen=True)
class ObjectConflictHandler:
    """Policy for destination tables that would be replaced rather than updated."""

    overwrite_unreplicated: bool = False
    drop_on_partition_key_change: bool = True

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "ObjectConflictHandler":
        conf = dict(cfg or {})
        return cls(
            overwrite_unreplicated=bool(conf.get("overwrite_unreplicated", False)),
            drop_on_partition_key_change=bool(conf.get("drop_on_partition_key_change", True)),
        )

    def conflict(self, existing: HiveTable, expected: HiveTable) -> Optional[str]:
        """Return the reason the destination may not be touched, or ``None``."""
        if SOURCE_CLUSTER_PARAM not in existing.parameters and not self.overwrite_unreplicated:
            return "destination_not_created_by_replication"
        if existing.partition_keys != expected.partition_keys and not self.drop_on_partition_key_change:
            return "partition_key_change_not_allowed"
        return None


class CopyPartitionedTableTask:
    """Create or update the destination definition of a partitioned table.

    Only table metadata is touched; partitions are handled by their own tasks.
    Running the task again against an up to date destination changes nothing,
    so it is safe to run once during the compare stage and again at commit.
    """

    def __init__(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        spec: HiveObjectSpec,
        dest_path: Optional[str] = None,
        *,
        object_factory: Optional[DestinationObjectFactory] = None,
        conflict_handler: Optional[ObjectConflictHandler] = None,
        src_client: Optional[MetastoreClient] = None,
        dest_client: Optional[MetastoreClient] = None,
        logger: Optional[PrintLogger] = None,
    ) -> None:
        self.src_cluster = src_cluster
        self.dest_cluster = dest_cluster
        self.spec = spec
        self.dest_path = dest_path
        self.object_factory = object_factory or DestinationObjectFactory()
        self.conflict_handler = conflict_handler or ObjectConflictHandler()
        self._src_client = src_client
        self._dest_client = dest_client
        self.logger = logger

    def run_task(self) -> RunInfo:
        owned = []
        src_client = self._src_client
        dest_client = self._dest_client
        try:
            if src_client is None:
                src_client = self.src_cluster.get_metastore_client()
                owned.append(src_client)
            if dest_client is None:
                dest_client = self.dest_cluster.get_metastore_client()
                owned.append(dest_client)
            return self._run(src_client, dest_client)
        finally:
            for client in owned:
                client.close()

    def _log(self, level: str, msg: str, **fields: Any) -> None:
        emit_log(None, level=level, msg=msg, logger=self.logger, db=self.spec.db_name, table=self.spec.table_name, **fields)

    def _run(self, src_client: MetastoreClient, dest_client: MetastoreClient) -> RunInfo:
        db_name, table_name = self.spec.db_name, self.spec.table_name
        src_table = src_client.get_table(db_name, table_name)
        if src_table is None:
            return RunInfo(RunStatus.NOT_COMPLETABLE, "source_table_missing")
        if not src_table.is_partitioned:
            return RunInfo(RunStatus.NOT_COMPLETABLE, "source_table_not_partitioned")

        expected = self.object_factory.create_dest_table(self.src_cluster, self.dest_cluster, src_table)
        if self.dest_path:
            expected = expected.with_changes(location=self.dest_path)

        existing = dest_client.get_table(db_name, table_name)
        if existing is None:
            self._log("INFO", "copy_table_create", location=expected.location)
            dest_client.create_table(expected)
            return RunInfo(RunStatus.SUCCESSFUL, "created")

        reason = self.conflict_handler.conflict(existing, expected)
        if reason is not None:
            self._log("WARN", "copy_table_conflict", reason=reason)
            return RunInfo(RunStatus.NOT_COMPLETABLE, reason)

        if existing.partition_keys != expected.partition_keys:
            self._log(
                "INFO",
                "copy_table_partition_keys_changed",
                old=",".join(col.name for col in existing.partition_keys),
                new=",".join(col.name for col in expected.partition_keys),
            )
            dest_client.drop_table(db_name, table_name)
            dest_client.create_table(expected)
            return RunInfo(RunStatus.SUCCESSFUL, "recreated")

        if not tables_equivalent(expected, existing):
            self._log("INFO", "copy_table_alter")
            dest_client.alter_table(expected)
            return RunInfo(RunStatus.SUCCESSFUL, "altered")

        return RunInfo(RunStatus.SUCCESSFUL, "unchanged")


__all__ = ["CopyPartitionedTableTask", "ObjectConflictHandler", "RunInfo", "RunStatus"]
