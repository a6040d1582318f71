from __future__ import annotations

from collections import Counter
from functools import partial
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .catalog.base import list_tables
from .cluster import ClusterFactory
from .common import PrintLogger, run_timestamp
from .events import emit_log
from .model import ResultRecord
from .output import run_output_path, write_lines
from .partition_stage import PartitionCompareStage
from .worker import TableCompareWorker


def _job_name(cfg: Dict[str, Any]) -> str:
    return cfg.get("runtime", {}).get("job_name", "hive_replication")


def discover_tables(cfg: Dict[str, Any], factory: ClusterFactory) -> List[Tuple[str, str]]:
    """Tables present on either cluster, restricted to ``runtime.databases`` when set."""
    databases = cfg.get("runtime", {}).get("databases") or None
    found = set()
    for cluster in (factory.src_cluster, factory.dest_cluster):
        with cluster.get_metastore_client() as client:
            found.update(list_tables(client, databases))
    return sorted(found)


def _compare_tables_partition(cfg: Dict[str, Any], tables: Iterator[Tuple[str, str]]) -> Iterator[str]:
    logger = PrintLogger(job_name=_job_name(cfg))
    with TableCompareWorker.from_config(cfg, logger=logger) as worker:
        for record in worker.process_tables(tables):
            yield record.to_line()


def _resolve_partitions_partition(cfg: Dict[str, Any], lines: Iterator[str]) -> Iterator[str]:
    logger = PrintLogger(job_name=_job_name(cfg))
    with PartitionCompareStage.from_config(cfg, logger=logger) as stage:
        for line in lines:
            yield stage.resolve(ResultRecord.from_line(line)).to_line()


def _run_distributed(
    spark,
    cfg: Dict[str, Any],
    tables: Sequence[Tuple[str, str]],
    *,
    partition_stage: bool,
    output_root: str,
    run_ts: str,
) -> Tuple[Counter, int, str]:
    runtime = cfg.get("runtime", {})
    sc = spark.sparkContext
    table_slices = int(runtime.get("table_stage_parallelism", sc.defaultParallelism))
    lines = sc.parallelize(list(tables), max(1, table_slices)).mapPartitions(
        partial(_compare_tables_partition, cfg)
    )
    if partition_stage:
        # Shuffle placeholders so partition checks spread evenly over executors.
        partition_slices = int(runtime.get("partition_stage_parallelism", sc.defaultParallelism))
        lines = lines.repartition(max(1, partition_slices)).mapPartitions(
            partial(_resolve_partitions_partition, cfg)
        )
    lines = lines.cache()
    target = run_output_path(output_root, run_ts)
    lines.saveAsTextFile(target)
    counts = Counter(lines.map(lambda line: line.split("\t", 1)[0]).countByValue())
    total = sum(counts.values())
    lines.unpersist()
    return counts, total, target


def _run_local(
    cfg: Dict[str, Any],
    tables: Sequence[Tuple[str, str]],
    *,
    spark,
    logger: PrintLogger,
    partition_stage: bool,
    output_root: str,
    run_ts: str,
    directory_comparer=None,
) -> Tuple[Counter, int, str]:
    with TableCompareWorker.from_config(
        cfg, spark=spark, logger=logger, directory_comparer=directory_comparer
    ) as worker:
        records: List[ResultRecord] = list(worker.process_tables(tables))
    if partition_stage:
        with PartitionCompareStage.from_config(
            cfg, spark=spark, logger=logger, directory_comparer=directory_comparer
        ) as stage:
            records = list(stage.resolve_all(records))
    target = write_lines((record.to_line() for record in records), output_root, run_ts, spark=spark)
    counts = Counter(record.estimate.task_type.value for record in records)
    return counts, len(records), target


def run_table_compare(
    cfg: Dict[str, Any],
    *,
    spark=None,
    tables: Optional[Iterable[Tuple[str, str]]] = None,
    logger: Optional[PrintLogger] = None,
    output_root: Optional[str] = None,
    partition_stage: bool = True,
    run_ts: Optional[str] = None,
    directory_comparer=None,
) -> Dict[str, Any]:
    """Run the table compare stage (and by default the partition stage) for one batch."""
    logger = logger or PrintLogger(job_name=_job_name(cfg))
    runtime = cfg.get("runtime", {})
    output_root = output_root or runtime.get("output_root")
    if not output_root:
        raise ValueError("runtime.output_root or --output is required")
    run_ts = run_ts or run_timestamp()
    factory = ClusterFactory.from_config(cfg, spark=spark)
    table_list = list(tables) if tables is not None else discover_tables(cfg, factory)
    if not table_list:
        emit_log(None, level="WARN", msg="no_tables_to_compare", logger=logger)
        return {"status": "no_tables", "tables": 0, "records": 0, "actions": {}, "run_ts": run_ts}

    distributed = (
        spark is not None
        and factory.src_cluster.distributable
        and factory.dest_cluster.distributable
        and directory_comparer is None
    )
    emit_log(
        None,
        level="INFO",
        msg="table_compare_start",
        tables=len(table_list),
        distributed=distributed,
        partition_stage=partition_stage,
        run_ts=run_ts,
        logger=logger,
    )
    if distributed:
        counts, total, target = _run_distributed(
            spark, cfg, table_list, partition_stage=partition_stage, output_root=output_root, run_ts=run_ts
        )
    else:
        counts, total, target = _run_local(
            cfg,
            table_list,
            spark=spark,
            logger=logger,
            partition_stage=partition_stage,
            output_root=output_root,
            run_ts=run_ts,
            directory_comparer=directory_comparer,
        )
    emit_log(None, level="INFO", msg="table_compare_end", records=total, output=target, logger=logger)
    return {
        "status": "completed",
        "tables": len(table_list),
        "records": total,
        "actions": dict(sorted(counts.items())),
        "output": target,
        "run_ts": run_ts,
    }


__all__ = ["discover_tables", "run_table_compare"]
