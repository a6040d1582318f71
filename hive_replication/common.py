from __future__ import annotations

import json
import sys
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

RUN_ID = uuid.uuid4().hex[:12]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def run_timestamp() -> str:
    """Partition key used to group the output records of one run."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


class PrintLogger:
    """Structured JSON-lines logger writing to stdout and an optional file."""

    LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}

    def __init__(self, job_name: str, file_path: Optional[str] = None, level: str = "INFO") -> None:
        self.job_name = job_name
        self.file_path = file_path
        self.level = level.upper()
        self.spark = None
        self._lock = threading.Lock()

    def _enabled(self, level: str) -> bool:
        return self.LEVELS.get(level, 20) >= self.LEVELS.get(self.level, 20)

    def log(self, level: str, msg: str, **fields: Any) -> None:
        level = level.upper()
        if level == "WARNING":
            level = "WARN"
        if not self._enabled(level):
            return
        record = {"ts": utc_now_iso(), "level": level, "job": self.job_name, "run_id": RUN_ID, "msg": msg}
        record.update({key: value for key, value in fields.items() if value is not None})
        line = json.dumps(record, default=str, sort_keys=False)
        with self._lock:
            print(line, file=sys.stdout, flush=True)
            if self.file_path:
                with open(self.file_path, "a", encoding="utf-8") as handle:
                    handle.write(line + "\n")

    def debug(self, msg: str, **fields: Any) -> None:
        self.log("DEBUG", msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self.log("INFO", msg, **fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self.log("WARN", msg, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        self.log("ERROR", msg, **fields)
