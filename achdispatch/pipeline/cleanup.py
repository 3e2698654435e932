"""Periodic removal of old, already uploaded merge directories."""

from __future__ import annotations

import collections
import datetime as dt
import logging
import os
import re
import shutil
import threading
import time
from dataclasses import dataclass
from pathlib import Path

_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
_TIMESTAMP_PATTERN = re.compile(r"[0-9]{8}-[0-9]{6}")


@dataclass
class CleanupConfig:
    """When cleanup runs and how long isolated directories are kept."""

    enabled: bool = False
    retention_duration: dt.timedelta = dt.timedelta(0)
    check_interval: dt.timedelta = dt.timedelta(hours=1)


@dataclass
class CleanupStats:
    """Directories of a shard that cleanup looks at and would remove."""

    shard_name: str = ""
    total_directories: int = 0
    eligible_for_deletion: int = 0
    total_size: int = 0
    retention_duration: dt.timedelta = dt.timedelta(0)


class CleanupService:
    """Deletes ``<shard>-YYYYMMDD-HHMMSS`` directories once their files were uploaded.

    ``metrics`` counts runs by status, deleted directories and errors by kind.
    """

    def __init__(
        self,
        root: str | os.PathLike[str],
        shard_name: str,
        config: CleanupConfig,
        logger: logging.Logger | None = None,
    ):
        self.root = Path(root)
        self.shard_name = shard_name
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.directory_pattern = re.compile(rf"^{re.escape(shard_name)}-[0-9]{{8}}-[0-9]{{6}}$")
        self.metrics: collections.Counter[str] = collections.Counter()
        self._done = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Run a cleanup now, then again every check interval in the background."""
        interval = self.config.check_interval.total_seconds()
        if interval <= 0:
            raise ValueError(f"invalid cleanup check interval: {self.config.check_interval}")
        if self._thread is not None:
            return

        self.logger.info(
            "starting cleanup service shard=%s checkInterval=%s retentionDuration=%s",
            self.shard_name,
            self.config.check_interval,
            self.config.retention_duration,
        )
        self.run_cleanup()

        self._thread = threading.Thread(
            target=self._loop, args=(interval,), name=f"cleanup-{self.shard_name}", daemon=True
        )
        self._thread.start()

    def _loop(self, interval: float) -> None:
        while not self._done.wait(interval):
            try:
                self.run_cleanup()
            except Exception:
                self.logger.exception("cleanup run failed shard=%s", self.shard_name)

    def stop(self) -> None:
        """Halt the background cleanup."""
        self.logger.info("stopping cleanup service shard=%s", self.shard_name)
        self._done.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def is_stopped(self) -> bool:
        return self._done.is_set()

    def run_cleanup(self) -> tuple[int, int]:
        """Do one cleanup pass and return (directories deleted, errors met)."""
        self.logger.debug("starting cleanup run shard=%s", self.shard_name)
        started = time.monotonic()

        try:
            entries = list(os.scandir(self.root))
        except OSError as exc:
            self.logger.error(
                "failed to read storage directory shard=%s: %s", self.shard_name, exc
            )
            self.metrics["runs:error"] += 1
            self.metrics["errors:read_dir"] += 1
            return 0, 1

        cutoff = dt.datetime.now() - self.config.retention_duration
        deleted = errors = 0

        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                continue
            if not self.directory_pattern.match(entry.name):
                continue

            try:
                should_delete = self.should_delete_directory(entry.name, cutoff)
            except (ValueError, OSError) as exc:
                self.logger.error(
                    "error checking directory shard=%s directory=%s: %s",
                    self.shard_name,
                    entry.name,
                    exc,
                )
                errors += 1
                self.metrics["errors:check_directory"] += 1
                continue

            if not should_delete:
                continue
            try:
                self.delete_directory(entry.name)
            except OSError as exc:
                self.logger.error(
                    "failed to delete directory shard=%s directory=%s: %s",
                    self.shard_name,
                    entry.name,
                    exc,
                )
                errors += 1
                self.metrics["errors:delete_directory"] += 1
            else:
                deleted += 1
                self.metrics["deleted"] += 1

        self.logger.info(
            "completed cleanup run shard=%s deleted=%d errors=%d duration=%.3fs",
            self.shard_name,
            deleted,
            errors,
            time.monotonic() - started,
        )
        self.metrics["runs:success" if errors == 0 else "runs:partial_error"] += 1
        return deleted, errors

    def should_delete_directory(self, dir_name: str, cutoff: dt.datetime) -> bool:
        """True when the directory is older than ``cutoff`` and holds uploaded files.

        Raises ValueError when no timestamp can be read from the name.
        """
        base_name = os.path.basename(dir_name.rstrip("/\\")) or dir_name
        if len(base_name) <= len(self.shard_name) + 1:
            raise ValueError(f"directory name too short: {base_name}")

        timestamp = base_name[len(self.shard_name) + 1 :]
        if not _TIMESTAMP_PATTERN.fullmatch(timestamp):
            raise ValueError(f"failed to parse directory timestamp from {base_name}")
        try:
            dir_time = dt.datetime.strptime(timestamp, _TIMESTAMP_FORMAT)
        except ValueError as exc:
            raise ValueError(
                f"failed to parse directory timestamp from {base_name}: {exc}"
            ) from exc

        if dir_time > cutoff:
            return False

        try:
            uploaded = list(os.scandir(self.root / dir_name / "uploaded"))
        except OSError:
            # Without an uploaded/ directory the files were not processed.
            return False
        return any(not entry.is_dir(follow_symlinks=False) for entry in uploaded)

    def delete_directory(self, dir_name: str) -> None:
        """Remove a directory and everything in it."""
        self.logger.info("deleting directory shard=%s directory=%s", self.shard_name, dir_name)
        shutil.rmtree(self.root / dir_name)

    def get_stats(self) -> CleanupStats:
        """Count this shard's isolated directories and those cleanup would delete."""
        stats = CleanupStats(
            shard_name=self.shard_name,
            retention_duration=self.config.retention_duration,
        )
        try:
            entries = list(os.scandir(self.root))
        except OSError as exc:
            raise OSError(f"reading {self.root} failed: {exc}") from exc

        cutoff = dt.datetime.now() - self.config.retention_duration
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False) or not self.directory_pattern.match(
                entry.name
            ):
                continue
            try:
                size = entry.stat(follow_symlinks=False).st_size
            except OSError as exc:
                raise OSError(f"getting info on {entry.name} failed: {exc}") from exc

            stats.total_directories += 1
            try:
                should_delete = self.should_delete_directory(entry.name, cutoff)
            except ValueError as exc:
                raise ValueError(f"checking {entry.name} to delete failed: {exc}") from exc
            if should_delete:
                stats.eligible_for_deletion += 1
                stats.total_size += size
        return stats


def new_cleanup_service(
    root: str | os.PathLike[str],
    shard_name: str,
    config: CleanupConfig | None,
    logger: logging.Logger | None = None,
) -> CleanupService | None:
    """A cleanup service for the shard, or None when cleanup is not enabled."""
    if config is None or not config.enabled:
        return None
    return CleanupService(root, shard_name, config, logger)