from __future__ import annotations


class ConfigurationException(ValueError):
    """Raised at startup when replication configuration is invalid."""


class MetastoreException(RuntimeError):
    """Raised when a metastore lookup or mutation fails."""


class CopyTaskError(RuntimeError):
    """Raised when a copy task does not complete successfully."""

    def __init__(self, message: str, run_info=None) -> None:
        super().__init__(message)
        self.run_info = run_info


__all__ = ["ConfigurationException", "CopyTaskError", "MetastoreException"]
