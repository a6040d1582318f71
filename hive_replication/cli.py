from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Optional

from .common import PrintLogger
from .config import dedupe_tables, load_config, parse_only_tables
from .job import run_table_compare


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hive-replication")
    parser.add_argument("--config", required=True, help="Path to replication configuration file")
    parser.add_argument("--only-tables", help="Comma separated db.table filters", default=None)
    parser.add_argument("--output", help="Output root override (default: runtime.output_root)", default=None)
    parser.add_argument(
        "--skip-partition-stage",
        action="store_true",
        default=False,
        help="Emit CHECK_PARTITION placeholders without resolving them",
    )
    parser.add_argument(
        "--compare-data",
        action="store_true",
        default=False,
        help="Compare data directory listings in addition to metadata (driver-side only)",
    )
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARN", "ERROR"], default=None)
    return parser.parse_args(argv)


def _build_spark(cfg: Dict[str, Any]):
    from pyspark.sql import SparkSession

    runtime = cfg.get("runtime", {})
    builder = SparkSession.builder.appName(runtime.get("job_name", "hive_replication"))
    for key, value in (runtime.get("spark_conf") or {}).items():
        builder = builder.config(key, value)
    if runtime.get("hive_support", True):
        builder = builder.enableHiveSupport()
    return builder.getOrCreate()


def run_cli(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    cfg = load_config(args.config)
    runtime = cfg.get("runtime", {})
    logger = PrintLogger(
        job_name=runtime.get("job_name", "hive_replication"),
        file_path=runtime.get("log_file"),
        level=args.log_level or runtime.get("log_level", "INFO"),
    )
    tables = parse_only_tables(args.only_tables)
    if tables is not None:
        tables = dedupe_tables(tables)
    spark = _build_spark(cfg) if runtime.get("use_spark", True) else None
    logger.spark = spark
    directory_comparer = None
    if args.compare_data and spark is not None:
        from .fs import HadoopDirectoryComparer

        directory_comparer = HadoopDirectoryComparer(spark)
    try:
        summary = run_table_compare(
            cfg,
            spark=spark,
            tables=tables,
            logger=logger,
            output_root=args.output,
            partition_stage=not args.skip_partition_stage,
            directory_comparer=directory_comparer,
        )
    finally:
        if spark is not None:
            spark.stop()
    print(json.dumps(summary, indent=2, sort_keys=True))


__all__ = ["parse_args", "run_cli"]
