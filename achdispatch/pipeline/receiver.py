"""Routing of incoming ACH files and cancellations to their shard's aggregator."""

from __future__ import annotations

import collections
import datetime as dt
import logging
import queue
import socket
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, Union

from achdispatch.pipeline.aggregate import Aggregator

ShardLookup = Union[Mapping[str, str], Callable[[str], Union[str, None]]]

_NETWORK_MARKERS = ("connect: ", "write:", "broken pipe", "pubsub", "EOF")


class _AcceptedFiles(Protocol):
    def record(
        self, file_id: str, shard_key: str, hostname: str, accepted_at: dt.datetime
    ) -> None: ...

    def cancel(self, file_id: str) -> None: ...


class _InMemoryAcceptedFiles:
    """Remembers accepted files so each one is handled only once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accepted: dict[str, tuple[str, str, dt.datetime]] = {}
        self._canceled: set[str] = set()

    def record(
        self, file_id: str, shard_key: str, hostname: str, accepted_at: dt.datetime
    ) -> None:
        with self._lock:
            if file_id in self._accepted:
                raise ValueError(f"file {file_id} already accepted")
            self._accepted[file_id] = (shard_key, hostname, accepted_at)

    def cancel(self, file_id: str) -> None:
        with self._lock:
            self._canceled.add(file_id)


@dataclass
class AutoCommitSettings:
    """Whether inbound messages are acknowledged as soon as they arrive.

    ``kafka`` tells whether a Kafka inbound is configured at all.
    """

    kafka: bool = False
    auto_commit: bool = False

    def should_autocommit(self) -> bool:
        if not self.kafka:
            return False
        return self.auto_commit


def contains(err: BaseException | str, *args: str) -> bool:
    """True when the error's text contains any of the given fragments."""
    text = str(err)
    return any(option in text for option in args)


def is_network_error(err: BaseException | str) -> bool:
    """True for errors that suggest the stream connection broke."""
    return contains(err, *_NETWORK_MARKERS)


def _looks_valid(contents: bytes) -> bool:
    text = bytes(contents).lstrip(b"\r\n")
    return bool(text) and text.startswith(b"1")


class FileReceiver:
    """Hands each incoming file to the aggregator responsible for its shard key."""

    def __init__(
        self,
        aggregators: Mapping[str, Aggregator],
        default_shard_name: str = "",
        shard_lookup: ShardLookup | None = None,
        accepted_files: _AcceptedFiles | None = None,
        logger: logging.Logger | None = None,
    ):
        self.aggregators = dict(aggregators)
        self.default_shard_name = default_shard_name
        self.shard_lookup = shard_lookup
        self.accepted_files = accepted_files or _InMemoryAcceptedFiles()
        self.logger = logger or logging.getLogger(__name__)
        self.cancellation_responses: queue.Queue[Any] = queue.Queue(maxsize=1000)
        self.metrics: collections.Counter[str] = collections.Counter()

    def _lookup(self, shard_key: str) -> str | None:
        lookup = self.shard_lookup
        if lookup is None:
            return None
        if isinstance(lookup, Mapping):
            return lookup.get(shard_key)
        return lookup(shard_key)

    def get_aggregator(self, shard_key: str) -> Aggregator | None:
        """The aggregator for a shard key, falling back to the default shard."""
        try:
            shard_name = self._lookup(shard_key)
        except LookupError:
            shard_name = None
        except Exception as exc:
            self.logger.error("problem looking up shardKey=%s: %s", shard_key, exc)
            return None

        if not shard_name:
            # A shard key may itself be the name of a shard.
            shard_name = shard_key

        agg = self.aggregators.get(shard_name)
        if agg is None and shard_name not in self.aggregators:
            self.logger.warning(
                "found no shard so using default shard shard_key=%s shard_name=%s",
                shard_key,
                shard_name,
            )
            if self.default_shard_name not in self.aggregators:
                self.metrics[f"missing_shard_aggregator:{shard_name}"] += 1
                self.logger.error(
                    "missing shardAggregator for shardKey=%s shardName=%s", shard_key, shard_name
                )
                return None
            agg = self.aggregators[self.default_shard_name]

        if agg is None:
            self.logger.error(
                "nil shardAggregator for shardKey=%s shardName=%s", shard_key, shard_name
            )
            return None
        return agg

    def process_ach_file(self, file_id: str, shard_key: str, contents: bytes) -> bool:
        """Accept a file for its shard.

        Returns True when the file was handed to an aggregator and False when it
        was skipped as invalid or already accepted elsewhere.
        """
        if not file_id or not shard_key:
            raise ValueError("missing fileID or shardKey")

        if not _looks_valid(contents):
            self.logger.error("invalid ACHFile fileID=%s: no file header record", file_id)
            return False

        agg = self.get_aggregator(shard_key)
        if agg is None:
            raise LookupError(f"no aggregator for shard key {shard_key} found")

        try:
            self.accepted_files.record(
                file_id=file_id,
                shard_key=shard_key,
                hostname=socket.gethostname(),
                accepted_at=dt.datetime.now(dt.timezone.utc),
            )
        except Exception as exc:
            self.logger.warning(
                "not handling received ACH file fileID=%s shardName=%s: %s",
                file_id,
                agg.shard_name,
                exc,
            )
            return False
        self.logger.info(
            "begin handling of received ACH file fileID=%s shardName=%s shardKey=%s",
            file_id,
            agg.shard_name,
            shard_key,
        )

        try:
            agg.accept_file(file_id, contents)
        except Exception as exc:
            raise RuntimeError(
                f"problem accepting file under shardName={agg.shard_name}"
            ) from exc

        self.metrics[f"pending:{agg.shard_name}"] += 1
        self.logger.info("finished handling ACH file fileID=%s", file_id)
        return True

    def cancel_ach_file(self, file_id: str, shard_key: str) -> Any:
        """Cancel a pending file; returns the response, or None without a shard."""
        if not file_id or not shard_key:
            raise ValueError("missing fileID or shardKey")

        agg = self.get_aggregator(shard_key)
        if agg is None:
            return None

        try:
            self.accepted_files.cancel(file_id)
        except Exception as exc:
            raise RuntimeError(f"problem recording cancellation: {exc}") from exc
        self.logger.info("begin canceling ACH file fileID=%s shardName=%s", file_id, agg.shard_name)

        try:
            response = agg.cancel_file(file_id, shard_key)
        except Exception as exc:
            raise RuntimeError(f"problem canceling file: {exc}") from exc

        self.cancellation_responses.put(response)
        self.logger.info("finished cancel of file fileID=%s", file_id)
        return response