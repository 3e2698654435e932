"""Matching merged files back to the input files they were built from."""

from __future__ import annotations

import enum
import hashlib
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

# Width of the batch header kept in a key; the batch number after it changes on merge.
_HEADER_WIDTH = 87


class FileAcceptance(enum.Enum):
    """Whether merging takes a file from the directory."""

    ACCEPT = "accept"
    SKIP = "skip"


@dataclass
class MergedFile:
    """A merged file, its batches as (header, entries) and the inputs it came from."""

    uploaded_filename: str = ""
    shard: str = ""
    batches: list[tuple[str, list[str]]] = field(default_factory=list)
    input_filepaths: list[str] = field(default_factory=list)


def file_acceptor(canceled_files: Iterable[str] | None) -> Callable[[str], FileAcceptance]:
    """Accept ``.ach`` files that are neither canceled nor marked ``.canceled``."""
    canceled = frozenset(canceled_files or ())

    def accept(path: str) -> FileAcceptance:
        if ".canceled" in path:
            return FileAcceptance.SKIP
        if os.path.basename(path) in canceled:
            return FileAcceptance.SKIP
        if ".ach" in path:
            return FileAcceptance.ACCEPT
        return FileAcceptance.SKIP

    return accept


def hash_contents(data: bytes) -> str:
    """Hex SHA-256 of the data, used to name merged files."""
    return hashlib.sha256(data).hexdigest()


def make_key(batch_header: str, entry: str) -> str:
    """Key an entry by its batch header, leaving out the batch number."""
    return f"{batch_header[:_HEADER_WIDTH]:>{_HEADER_WIDTH}}{entry}"


def find_input_filepaths(mappings: dict[str, str], merged: list[MergedFile]) -> list[MergedFile]:
    """Fill each merged file's inputs from ``mappings``, removing the keys used."""
    for item in merged:
        for header, entries in item.batches:
            for entry in entries:
                filename = mappings.pop(make_key(header, entry), None)
                if filename is not None:
                    item.input_filepaths.append(filename)
        item.input_filepaths = sorted(set(item.input_filepaths))
    return merged