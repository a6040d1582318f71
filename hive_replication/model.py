from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

FIELD_SEPARATOR = "\t"
RECORD_FIELDS = (
    "action_name",
    "src_path",
    "dest_path",
    "copied_data",
    "copied_metadata",
    "db_name",
    "table_name",
    "partition_name",
    "extra",
)


@dataclass(frozen=True)
class HiveObjectSpec:
    """Identifies a table, or a partition of a table, in a metastore."""

    db_name: str
    table_name: str
    partition_name: Optional[str] = None

    @property
    def is_partition(self) -> bool:
        return self.partition_name is not None

    def table_spec(self) -> "HiveObjectSpec":
        if self.partition_name is None:
            return self
        return HiveObjectSpec(self.db_name, self.table_name)

    def __str__(self) -> str:
        base = f"{self.db_name}.{self.table_name}"
        return f"{base}/{self.partition_name}" if self.partition_name else base


class TaskType(str, Enum):
    NO_OP = "NO_OP"
    COPY_UNPARTITIONED_TABLE = "COPY_UNPARTITIONED_TABLE"
    COPY_PARTITIONED_TABLE = "COPY_PARTITIONED_TABLE"
    COPY_PARTITION = "COPY_PARTITION"
    DROP_TABLE = "DROP_TABLE"
    DROP_PARTITION = "DROP_PARTITION"
    CHECK_PARTITION = "CHECK_PARTITION"


@dataclass(frozen=True)
class TaskEstimate:
    task_type: TaskType
    update_data: bool = False
    update_metadata: bool = False
    src_path: Optional[str] = None
    dest_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.task_type is TaskType.CHECK_PARTITION and (
            self.update_data or self.update_metadata or self.src_path or self.dest_path
        ):
            raise ValueError("CHECK_PARTITION estimates carry no copy flags or paths")

    @classmethod
    def no_op(cls) -> "TaskEstimate":
        return cls(TaskType.NO_OP)

    @classmethod
    def check_partition(cls) -> "TaskEstimate":
        return cls(TaskType.CHECK_PARTITION)


def _render(value: Optional[object]) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if FIELD_SEPARATOR in text or "\n" in text:
        raise ValueError(f"field value may not contain tabs or newlines: {text!r}")
    return text


def _optional(value: str) -> Optional[str]:
    return value if value else None


@dataclass(frozen=True)
class ResultRecord:
    """One (estimate, object) pair handed from the table stage to the partition stage."""

    estimate: TaskEstimate
    spec: HiveObjectSpec
    extra: Optional[str] = None

    def to_fields(self) -> List[str]:
        return [
            self.estimate.task_type.value,
            _render(self.estimate.src_path),
            _render(self.estimate.dest_path),
            _render(self.estimate.update_data),
            _render(self.estimate.update_metadata),
            _render(self.spec.db_name),
            _render(self.spec.table_name),
            _render(self.spec.partition_name),
            _render(self.extra),
        ]

    def to_line(self) -> str:
        return FIELD_SEPARATOR.join(self.to_fields())

    @classmethod
    def from_line(cls, line: str) -> "ResultRecord":
        parts = line.rstrip("\r\n").split(FIELD_SEPARATOR)
        if len(parts) != len(RECORD_FIELDS):
            raise ValueError(f"expected {len(RECORD_FIELDS)} fields, got {len(parts)}: {line!r}")
        action, src_path, dest_path, copied_data, copied_metadata, db_name, table_name, partition_name, extra = parts
        estimate = TaskEstimate(
            task_type=TaskType(action),
            update_data=copied_data == "true",
            update_metadata=copied_metadata == "true",
            src_path=_optional(src_path),
            dest_path=_optional(dest_path),
        )
        spec = HiveObjectSpec(db_name, table_name, _optional(partition_name))
        return cls(estimate=estimate, spec=spec, extra=_optional(extra))


def serialize_job_result(estimate: TaskEstimate, spec: HiveObjectSpec) -> str:
    return ResultRecord(estimate=estimate, spec=spec).to_line()


__all__ = [
    "FIELD_SEPARATOR",
    "RECORD_FIELDS",
    "HiveObjectSpec",
    "ResultRecord",
    "TaskEstimate",
    "TaskType",
    "serialize_job_result",
]
