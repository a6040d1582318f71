from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .errors import ConfigurationException
from .model import HiveObjectSpec

RULE_SEPARATOR = ","
PAIR_SEPARATOR = ":"


@dataclass(frozen=True)
class BlackListPair:
    db_pattern: re.Pattern[str]
    table_pattern: re.Pattern[str]

    @classmethod
    def compile(cls, db_regex: str, table_regex: str) -> "BlackListPair":
        try:
            return cls(re.compile(db_regex), re.compile(table_regex))
        except re.error as exc:
            raise ConfigurationException(f"Invalid blacklist pattern {db_regex}:{table_regex}: {exc}") from exc

    def matches(self, db_name: str, table_name: str) -> bool:
        return bool(self.db_pattern.fullmatch(db_name)) and bool(self.table_pattern.fullmatch(table_name))


def parse_blacklist(value: Optional[str]) -> List[BlackListPair]:
    """Parse ``db_regex:table_regex[,db_regex:table_regex]*`` into compiled pairs."""
    if value is None:
        return []
    rules: List[BlackListPair] = []
    for entry in value.split(RULE_SEPARATOR):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(PAIR_SEPARATOR, 1)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ConfigurationException(f"Blacklist entry must be db_regex:table_regex, got {entry!r}")
        rules.append(BlackListPair.compile(parts[0], parts[1]))
    return rules


class TableBlackList:
    """Name-pattern filter; a table is suppressed when any rule matches it."""

    def __init__(self, rules: Iterable[BlackListPair] = ()) -> None:
        self.rules = tuple(rules)

    @classmethod
    def from_config(cls, value: Optional[str]) -> "TableBlackList":
        return cls(parse_blacklist(value))

    def matches(self, spec: HiveObjectSpec) -> bool:
        return any(rule.matches(spec.db_name, spec.table_name) for rule in self.rules)

    def __len__(self) -> int:
        return len(self.rules)


__all__ = ["BlackListPair", "TableBlackList", "parse_blacklist"]
