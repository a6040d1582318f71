from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .blacklist import parse_blacklist
from .errors import ConfigurationException


def validate_config(cfg: Dict[str, Any]) -> None:
    def _validate_cluster(role: str) -> None:
        cluster_cfg = cfg.get(role)
        if not isinstance(cluster_cfg, dict):
            raise ConfigurationException(f"Missing config key: {role}")
        if not cluster_cfg.get("fs_root"):
            raise ConfigurationException(f"Missing {role}.fs_root")
        metastore_cfg = cluster_cfg.get("metastore") or {}
        if not isinstance(metastore_cfg, dict):
            raise ConfigurationException(f"{role}.metastore must be an object when provided")
        kind = str(metastore_cfg.get("type", "spark")).lower()
        if kind not in {"spark", "sqlalchemy"}:
            raise ConfigurationException(f"{role}.metastore.type must be 'spark' or 'sqlalchemy'")
        if kind == "sqlalchemy" and not metastore_cfg.get("url"):
            raise ConfigurationException(f"{role}.metastore.url required for sqlalchemy metastores")

    _validate_cluster("source")
    _validate_cluster("destination")
    runtime = cfg.get("runtime", {})
    if not isinstance(runtime, dict):
        raise ConfigurationException("runtime must be an object when provided")
    blacklist = runtime.get("blacklist", runtime.get("metastore_blacklist"))
    if blacklist is not None:
        if not isinstance(blacklist, str):
            raise ConfigurationException("runtime.blacklist must be a db_regex:table_regex[,...] string")
        parse_blacklist(blacklist)
    databases = runtime.get("databases")
    if databases is not None and not (
        isinstance(databases, list) and all(isinstance(db, str) for db in databases)
    ):
        raise ConfigurationException("runtime.databases must be a list of strings")
    conflict = runtime.get("conflict")
    if conflict is not None and not isinstance(conflict, dict):
        raise ConfigurationException("runtime.conflict must be an object when provided")
    for key in ("table_stage_parallelism", "partition_stage_parallelism"):
        value = runtime.get(key)
        if value is not None and (not isinstance(value, int) or value < 1):
            raise ConfigurationException(f"runtime.{key} must be a positive integer")


def load_config(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        cfg = json.load(handle)
    validate_config(cfg)
    return cfg


def parse_only_tables(only_tables: Optional[str]) -> Optional[List[Tuple[str, str]]]:
    """Parse ``db.table[,db.table]*``; ``None`` means every table."""
    if not only_tables:
        return None
    tables: List[Tuple[str, str]] = []
    for entry in only_tables.split(","):
        entry = entry.strip()
        if not entry:
            continue
        db_name, sep, table_name = entry.partition(".")
        if not sep or not db_name or not table_name:
            raise ConfigurationException(f"--only-tables entries must be db.table, got {entry!r}")
        tables.append((db_name, table_name))
    return tables


def dedupe_tables(tables: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    seen = set()
    ordered: List[Tuple[str, str]] = []
    for table in tables:
        if table in seen:
            continue
        seen.add(table)
        ordered.append(table)
    return ordered


__all__ = ["dedupe_tables", "load_config", "parse_only_tables", "validate_config"]
