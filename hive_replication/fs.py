from __future__ import annotations

import abc
from typing import Dict, Optional

from pyspark.sql import SparkSession


class DirectoryComparer(abc.ABC):
    """Decides whether two data directories hold the same files."""

    @abc.abstractmethod
    def equal_dirs(self, src_path: Optional[str], dest_path: Optional[str]) -> bool:
        ...


class HadoopDirectoryComparer(DirectoryComparer):
    """Compare recursive file listings (relative name -> size) via the Hadoop FileSystem API."""

    def __init__(self, spark: SparkSession) -> None:
        self.spark = spark

    def _listing(self, location: str) -> Optional[Dict[str, int]]:
        jvm = self.spark.sparkContext._jvm
        hadoop_conf = self.spark.sparkContext._jsc.hadoopConfiguration()
        path = jvm.org.apache.hadoop.fs.Path(location)
        fs = path.getFileSystem(hadoop_conf)
        if not fs.exists(path):
            return None
        root = fs.makeQualified(path).toString().rstrip("/")
        listing: Dict[str, int] = {}
        files = fs.listFiles(path, True)
        while files.hasNext():
            status = files.next()
            name = status.getPath().toString()[len(root):].lstrip("/")
            if name.split("/")[-1].startswith(("_", ".")):
                continue
            listing[name] = int(status.getLen())
        return listing

    def equal_dirs(self, src_path: Optional[str], dest_path: Optional[str]) -> bool:
        if not src_path or not dest_path:
            return False
        src_listing = self._listing(src_path)
        dest_listing = self._listing(dest_path)
        if src_listing is None or dest_listing is None:
            return False
        return src_listing == dest_listing


__all__ = ["DirectoryComparer", "HadoopDirectoryComparer"]
