"""
Hive metastore batch replication: table and partition compare stages.

The table stage decides a replication action per table and fans partitioned
tables out into per-partition placeholders; after a shuffle the partition
stage resolves each placeholder. Both stages share the metastore clients,
estimator and record format defined here.
"""

from .blacklist import TableBlackList, parse_blacklist
from .errors import ConfigurationException, CopyTaskError, MetastoreException
from .model import HiveObjectSpec, ResultRecord, TaskEstimate, TaskType, serialize_job_result
from .worker import TableCompareWorker

__all__ = [
    "ConfigurationException",
    "CopyTaskError",
    "HiveObjectSpec",
    "MetastoreException",
    "ResultRecord",
    "TableBlackList",
    "TableCompareWorker",
    "TaskEstimate",
    "TaskType",
    "parse_blacklist",
    "serialize_job_result",
]
