"""Durable storage of pending ACH files before they are merged at cutoff."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from achdispatch.pipeline.mapping import hash_contents

_MERGABLE = "mergable"
_ISOLATED_FORMAT = "%Y%m%d-%H%M%S"


@dataclass(frozen=True)
class CancellationResponse:
    """Outcome of a cancellation request for one file."""

    file_id: str
    shard_key: str
    successful: bool


def _strip_suffix(text: str, suffix: str) -> str:
    return text[: -len(suffix)] if suffix and text.endswith(suffix) else text


class FilesystemMerging:
    """Keeps a shard's pending files under ``<root>/mergable/<shard>``.

    At cutoff the pending directory is moved aside to
    ``<root>/<shard>-YYYYMMDD-HHMMSS`` so it can be merged and later inspected.
    Paths returned by this class are relative to ``root`` and use ``/``.
    """

    def __init__(
        self,
        root: str | os.PathLike[str],
        shard_name: str,
        logger: logging.Logger | None = None,
    ):
        self.root = Path(root)
        self.shard_name = shard_name
        self.logger = logger or logging.getLogger(__name__)

    @property
    def mergable_dir(self) -> Path:
        return self.root / _MERGABLE / self.shard_name

    def _pending_path(self, file_id: str) -> Path:
        stem = _strip_suffix(file_id, ".ach")
        if not stem or "/" in stem or "\\" in stem or stem in (".", ".."):
            raise ValueError(f"invalid file id: {file_id!r}")
        return self.mergable_dir / f"{stem}.ach"

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def write_file(
        self,
        file_id: str,
        contents: bytes,
        validate_opts: dict[str, Any] | None = None,
    ) -> str:
        """Store a pending file and, when given, its validation options.

        Returns the relative path of the stored ``.ach`` file. Failing to store
        the validation options is only logged.
        """
        path = self._pending_path(file_id)
        self._write(path, bytes(contents))

        if validate_opts is not None:
            opts_path = path.with_suffix(".json")
            try:
                encoded = (json.dumps(validate_opts) + "\n").encode("utf-8")
                self._write(opts_path, encoded)
            except (TypeError, ValueError, OSError) as exc:
                self.logger.warning(
                    "ERROR writing ValidateOpts fileID=%s shard=%s: %s",
                    file_id,
                    self.shard_name,
                    exc,
                )
        return self._relative(path)

    def handle_cancel(self, file_id: str, shard_key: str) -> CancellationResponse:
        """Mark a pending file as canceled by renaming it to ``.ach.canceled``.

        The response is successful when the file was pending or had already
        been canceled, and unsuccessful when neither is found.
        """
        path = self._pending_path(file_id)
        canceled = path.with_name(path.name + ".canceled")

        if path.is_file():
            os.replace(path, canceled)
            successful = True
        else:
            successful = canceled.is_file()

        return CancellationResponse(file_id=file_id, shard_key=shard_key, successful=successful)

    def isolate_mergable_dir(self, now: datetime | None = None) -> str:
        """Move the pending directory aside and return the new directory's name.

        When nothing is pending an empty isolated directory is created.
        Raises FileExistsError if that directory already exists.
        """
        when = now or datetime.now()
        name = f"{self.shard_name}-{when.strftime(_ISOLATED_FORMAT)}"
        target = self.root / name
        if target.exists():
            raise FileExistsError(f"problem isolating newdir={name}: already exists")

        if self.mergable_dir.is_dir():
            os.replace(self.mergable_dir, target)
        else:
            target.mkdir(parents=True)
        return name

    def canceled_files(self, directory: str) -> list[str]:
        """Names of the ``.ach`` files in ``directory`` that were canceled."""
        return sorted(
            _strip_suffix(path.name, ".canceled")
            for path in (self.root / directory).glob("*.canceled")
            if path.is_file()
        )

    def non_canceled_matches(self, directory: str) -> list[str]:
        """Relative paths of ``.ach`` files in ``directory`` that are not canceled."""
        base = self.root / directory
        positives = sorted(self._relative(p) for p in base.glob("*.ach") if p.is_file())
        negatives = [self._relative(p) for p in base.glob("*.canceled") if p.is_file()]
        return [
            path
            for path in positives
            if not any(negative.startswith(path) for negative in negatives)
        ]

    def save_merged_file(
        self,
        directory: str,
        contents: bytes,
        validate_opts: dict[str, Any] | None = None,
    ) -> str:
        """Store a merged file named by the SHA-256 of its contents.

        Returns the relative path of the ``.ach`` file written.
        """
        data = bytes(contents)
        name = hash_contents(data)
        path = self.root / directory / f"{name}.ach"
        try:
            self._write(path, data)
        except OSError as exc:
            raise OSError(f"writing merged ACH file: {exc}") from exc

        if validate_opts is not None:
            try:
                encoded = (json.dumps(validate_opts) + "\n").encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise ValueError(f"marshal of merged ACH file validate opts: {exc}") from exc
            try:
                self._write(path.with_suffix(".json"), encoded)
            except OSError as exc:
                raise OSError(f"writing merged ACH file validate opts: {exc}") from exc
        return self._relative(path)