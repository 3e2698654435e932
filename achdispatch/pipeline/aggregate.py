"""Per-shard aggregation: accepting, canceling and reporting uploaded files."""

from __future__ import annotations

import datetime as dt
import logging
import posixpath
import socket
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from achdispatch.pipeline.manual_cutoff import ManualCutoff
from achdispatch.pipeline.mapping import MergedFile
from achdispatch.schedule.cutoff import Day

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class Emitter(Protocol):
    def send(self, event: Any) -> None: ...


class Merger(Protocol):
    def write_file(
        self, file_id: str, contents: bytes, validate_opts: dict[str, Any] | None = None
    ) -> Any: ...

    def handle_cancel(self, file_id: str, shard_key: str) -> Any: ...

    def with_each_merged(self) -> list[MergedFile]: ...


class EmitError(Exception):
    """Raised when one or more events could not be emitted."""

    def __init__(self, errors: list[Exception]):
        self.errors = list(errors)
        super().__init__("; ".join(str(err) for err in self.errors))


@dataclass(frozen=True)
class FileUploaded:
    """Event telling that an input file went out inside an uploaded file."""

    file_id: str
    shard_key: str
    filename: str
    uploaded_at: dt.datetime


def prepare_shard_name(shard_name: str) -> str:
    """Shard name as used in upload filenames: spaces to dashes, upper case."""
    return shard_name.replace(" ", "-").upper()


def format_holiday_message(day: Day, shard_name: str, hostname: str | None = None) -> str:
    """The text announcing that processing is skipped for a holiday."""
    name = "is a holiday"
    if day is not None and day.holiday is not None:
        name = f"({day.holiday.name}) is a holiday"

    if hostname is None:
        hostname = socket.gethostname()
    target = f"for {shard_name}" if shard_name else ""
    when = f"{_MONTHS[day.time.month - 1]} {day.time.day:02d}"
    return f"{when} {name} so {hostname} will skip processing {target}".strip()


def file_uploaded_events(
    merged: Iterable[MergedFile], now: dt.datetime | None = None
) -> list[FileUploaded]:
    """One FileUploaded event per input file of each merged file."""
    when = now or dt.datetime.now(dt.timezone.utc)
    events = []
    for item in merged:
        for path in item.input_filepaths:
            filename = posixpath.basename(path.replace("\\", "/"))
            # File ids do not carry the .ach suffix.
            if filename.endswith(".ach"):
                filename = filename[: -len(".ach")]
            events.append(
                FileUploaded(
                    file_id=filename,
                    shard_key=item.shard,
                    filename=item.uploaded_filename,
                    uploaded_at=when,
                )
            )
    return events


class Aggregator:
    """Collects a shard's files and processes them when a cutoff is triggered."""

    def __init__(
        self,
        shard_name: str,
        merger: Merger,
        emitter: Emitter,
        logger: logging.Logger | None = None,
    ):
        self.shard_name = shard_name
        self.merger = merger
        self.emitter = emitter
        self.logger = logger or logging.getLogger(__name__)

    def accept_file(
        self,
        file_id: str,
        contents: bytes,
        validate_opts: dict[str, Any] | None = None,
    ) -> Any:
        """Hand a file to the merger to be kept until the next cutoff."""
        return self.merger.write_file(file_id, contents, validate_opts)

    def cancel_file(self, file_id: str, shard_key: str) -> Any:
        """Cancel a pending file and emit the cancellation response."""
        response = self.merger.handle_cancel(file_id, shard_key)
        try:
            self.emitter.send(response)
        except Exception as exc:
            raise RuntimeError(f"problem emitting file cancellation response: {exc}") from exc
        return response

    def emit_files_uploaded(self, merged: Iterable[MergedFile]) -> None:
        """Emit FileUploaded for every input file; raises EmitError on failures."""
        errors: list[Exception] = []
        for event in file_uploaded_events(merged):
            try:
                self.emitter.send(event)
            except Exception as exc:
                errors.append(exc)
        if errors:
            raise EmitError(errors)

    def trigger(self, waiter: ManualCutoff) -> None:
        """Run a manual cutoff now and resolve ``waiter`` with its outcome."""
        self.logger.info("starting manual cutoff window processing shard=%s", self.shard_name)
        try:
            merged = self.merger.with_each_merged()
        except Exception as exc:
            self.logger.error("ERROR inside manual WithEachMerged shard=%s: %s", self.shard_name, exc)
            waiter.resolve(exc)
        else:
            try:
                self.emit_files_uploaded(merged)
            except EmitError as exc:
                self.logger.error(
                    "ERROR sending manual files uploaded event shard=%s: %s", self.shard_name, exc
                )
            waiter.resolve(None)
        self.logger.info("ended manual cutoff window processing shard=%s", self.shard_name)