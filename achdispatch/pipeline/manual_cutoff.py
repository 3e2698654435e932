"""Manually triggered cutoff processing across shards."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol


class ManualCutoff:
    """A pending manual cutoff; the aggregator resolves it when processing ends."""

    def __init__(self) -> None:
        self._done = threading.Event()
        self._error: BaseException | None = None

    def resolve(self, err: BaseException | None = None) -> None:
        """Record the outcome; only the first outcome is kept."""
        if self._done.is_set():
            return
        self._error = err
        self._done.set()

    def wait(self, timeout: float | None = None) -> BaseException | None:
        """Wait for the outcome and return its error, or None on success."""
        if not self._done.wait(timeout):
            raise TimeoutError("manual cutoff did not finish")
        return self._error


class _Triggerable(Protocol):
    def trigger(self, waiter: ManualCutoff) -> None: ...


@dataclass
class ShardResponses:
    """Per-shard outcome of a manual cutoff: None for success, else the error text."""

    shards: dict[str, str | None] = field(default_factory=dict)

    def has_errors(self) -> bool:
        return any(err is not None for err in self.shards.values())

    def to_json(self) -> str:
        return json.dumps({"shards": self.shards}) + "\n"


def exists(names: Iterable[str] | None, shard_name: str) -> bool:
    return shard_name in (names or ())


def trigger_manual_cutoff(
    aggregators: Mapping[str, _Triggerable],
    shard_names: Iterable[str],
    logger: logging.Logger | None = None,
) -> ShardResponses:
    """Trigger every aggregator and wait for each; unrequested shards are reported."""
    logger = logger or logging.getLogger(__name__)
    requested = list(shard_names)
    responses = ShardResponses()

    for name, aggregator in aggregators.items():
        if not exists(requested, name):
            responses.shards[name] = f"unknown shard {name}"
            continue

        logger.info("found shard to manually trigger shard=%s", name)
        waiter = ManualCutoff()
        aggregator.trigger(waiter)
        err = waiter.wait()
        if err is not None:
            logger.error("ERROR when triggering shard=%s: %s", name, err)
            responses.shards[name] = str(err)
        else:
            logger.info("successful manual trigger shard=%s", name)
            responses.shards[name] = None
    return responses


def _shard_names(body: str | bytes | None) -> list[str]:
    if not body:
        return []
    try:
        decoded = json.loads(body)
    except ValueError:
        return []
    if not isinstance(decoded, dict):
        return []
    names = decoded.get("shardNames")
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        return []
    return names


def handle_trigger_request(
    method: str,
    body: str | bytes | None,
    aggregators: Mapping[str, _Triggerable],
    logger: logging.Logger | None = None,
) -> tuple[int, str]:
    """Serve a trigger-cutoff request; returns the HTTP status and JSON body."""
    if method.upper() != "PUT":
        return 400, ""
    names = _shard_names(body)
    if not names:
        return 400, ""

    responses = trigger_manual_cutoff(aggregators, names, logger)
    status = 400 if responses.has_errors() else 200
    return status, responses.to_json()