from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .catalog.base import HivePartition, HiveTable, MetastoreClient
from .errors import ConfigurationException

SOURCE_CLUSTER_PARAM = "replication.source.cluster"
SOURCE_LOCATION_PARAM = "replication.source.location"
SOURCE_DDL_TIME_PARAM = "replication.source.last_ddl_time"

VOLATILE_PARAMETERS = frozenset(
    {
        "transient_lastDdlTime",
        "last_modified_time",
        "last_modified_by",
        "numFiles",
        "totalSize",
        "numRows",
        "rawDataSize",
        "COLUMN_STATS_ACCURATE",
        SOURCE_CLUSTER_PARAM,
        SOURCE_LOCATION_PARAM,
        SOURCE_DDL_TIME_PARAM,
    }
)


@dataclass
class Cluster:
    name: str
    fs_root: str
    client_factory: Callable[[], MetastoreClient]
    tmp_dir: Optional[str] = None
    metastore_cfg: Dict[str, Any] = field(default_factory=dict)

    def get_metastore_client(self) -> MetastoreClient:
        """Open a new client; callers own it and must close it."""
        return self.client_factory()

    @property
    def distributable(self) -> bool:
        # Spark catalog clients need the driver's session and cannot be opened on executors.
        return str(self.metastore_cfg.get("type", "spark")).lower() == "sqlalchemy"


def _client_factory(metastore_cfg: Dict[str, Any], spark=None) -> Callable[[], MetastoreClient]:
    kind = str(metastore_cfg.get("type", "spark")).lower()
    if kind == "sqlalchemy":
        from .catalog.sqlalchemy import MetastoreDbClient

        return lambda: MetastoreDbClient.from_config(metastore_cfg)
    if kind == "spark":
        catalog = metastore_cfg.get("catalog")

        def build() -> MetastoreClient:
            from pyspark.sql import SparkSession

            from .catalog.spark import SparkMetastoreClient

            session = spark or SparkSession.getActiveSession()
            if session is None:
                raise ConfigurationException("spark metastore client requires an active Spark session")
            return SparkMetastoreClient(session, catalog_prefix=catalog)

        return build
    raise ConfigurationException(f"Unsupported metastore type: {kind}")


def build_cluster(cluster_cfg: Dict[str, Any], role: str, spark=None) -> Cluster:
    if not isinstance(cluster_cfg, dict):
        raise ConfigurationException(f"{role} cluster configuration must be an object")
    fs_root = cluster_cfg.get("fs_root")
    if not fs_root:
        raise ConfigurationException(f"Missing {role}.fs_root")
    metastore_cfg = dict(cluster_cfg.get("metastore") or {})
    return Cluster(
        name=str(cluster_cfg.get("name") or role),
        fs_root=str(fs_root).rstrip("/"),
        tmp_dir=cluster_cfg.get("tmp_dir"),
        client_factory=_client_factory(metastore_cfg, spark),
        metastore_cfg=metastore_cfg,
    )


class ClusterFactory:
    """Build source/destination clusters from the replication configuration."""

    def __init__(self, src_cluster: Cluster, dest_cluster: Cluster) -> None:
        self.src_cluster = src_cluster
        self.dest_cluster = dest_cluster

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], spark=None) -> "ClusterFactory":
        for key in ("source", "destination"):
            if key not in cfg:
                raise ConfigurationException(f"Missing config key: {key}")
        return cls(
            build_cluster(cfg["source"], "source", spark),
            build_cluster(cfg["destination"], "destination", spark),
        )


def _rebase(location: Optional[str], src_root: str, dest_root: str) -> Optional[str]:
    if not location:
        return location
    if location == src_root or location.startswith(src_root + "/"):
        return dest_root + location[len(src_root):]
    # Foreign locations keep their path under the destination root.
    scheme_split = location.split("://", 1)
    path = scheme_split[1].split("/", 1)[1] if len(scheme_split) == 2 and "/" in scheme_split[1] else location.lstrip("/")
    return f"{dest_root}/{path}"


def comparable_parameters(parameters: Dict[str, str]) -> Dict[str, str]:
    return {key: value for key, value in parameters.items() if key not in VOLATILE_PARAMETERS}


class DestinationObjectFactory:
    """Derive the destination copy of a source object."""

    def dest_location(self, src_cluster: Cluster, dest_cluster: Cluster, location: Optional[str]) -> Optional[str]:
        return _rebase(location, src_cluster.fs_root, dest_cluster.fs_root)

    def create_dest_table(self, src_cluster: Cluster, dest_cluster: Cluster, src_table: HiveTable) -> HiveTable:
        params = comparable_parameters(src_table.parameters)
        params[SOURCE_CLUSTER_PARAM] = src_cluster.name
        if src_table.location:
            params[SOURCE_LOCATION_PARAM] = src_table.location
        if "transient_lastDdlTime" in src_table.parameters:
            params[SOURCE_DDL_TIME_PARAM] = src_table.parameters["transient_lastDdlTime"]
        return src_table.with_changes(
            location=self.dest_location(src_cluster, dest_cluster, src_table.location),
            table_type="EXTERNAL_TABLE",
            parameters=params,
        )

    def create_dest_partition(
        self, src_cluster: Cluster, dest_cluster: Cluster, src_partition: HivePartition
    ) -> HivePartition:
        params = comparable_parameters(src_partition.parameters)
        params[SOURCE_CLUSTER_PARAM] = src_cluster.name
        return src_partition.with_changes(
            location=self.dest_location(src_cluster, dest_cluster, src_partition.location),
            parameters=params,
        )


__all__ = [
    "Cluster",
    "ClusterFactory",
    "DestinationObjectFactory",
    "SOURCE_CLUSTER_PARAM",
    "VOLATILE_PARAMETERS",
    "build_cluster",
    "comparable_parameters",
]
