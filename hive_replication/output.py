from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

RUN_PARTITION_KEY = "run_ts"
PART_FILE = "part-00000"


def run_output_path(output_root: str, run_ts: str) -> str:
    return f"{output_root.rstrip('/')}/{RUN_PARTITION_KEY}={run_ts}"


def write_lines(lines: Iterable[str], output_root: str, run_ts: str, spark=None) -> str:
    """Write serialized records for one run and return the run directory.

    With a Spark session the lines go through ``saveAsTextFile`` so any Hadoop
    filesystem works; without one they land in a single local part file.
    """
    target = run_output_path(output_root, run_ts)
    if spark is not None:
        spark.sparkContext.parallelize(list(lines), 1).saveAsTextFile(target)
        return target
    path = Path(target)
    path.mkdir(parents=True, exist_ok=False)
    with open(path / PART_FILE, "w", encoding="utf-8") as handle:
        for line in lines:
            handle.write(line + "\n")
    (path / "_SUCCESS").touch()
    return target


def read_lines(run_dir: str, spark=None) -> Iterable[str]:
    if spark is not None:
        return spark.sparkContext.textFile(run_dir).collect()
    lines = []
    for part in sorted(Path(run_dir).glob("part-*")):
        with open(part, "r", encoding="utf-8") as handle:
            lines.extend(line.rstrip("\n") for line in handle if line.strip())
    return lines


def latest_run(output_root: str) -> Optional[str]:
    runs = sorted(Path(output_root).glob(f"{RUN_PARTITION_KEY}=*"))
    return str(runs[-1]) if runs else None


__all__ = ["RUN_PARTITION_KEY", "latest_run", "read_lines", "run_output_path", "write_lines"]
