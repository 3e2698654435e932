"""Encoders that turn a transformed ACH file into upload bytes."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

RECORD_LENGTH = 94


@dataclass
class TransformResult:
    """An ACH file as its records, plus encrypted bytes when a transform made them."""

    file: list[str] | None = None
    encrypted: bytes = b""
    records_note: str = field(default="", repr=False)


class Formatter(ABC):
    """Encodes a TransformResult."""

    @abstractmethod
    def format(self, result: TransformResult) -> bytes:
        """Return the encoded bytes."""


class NachaFormatter(Formatter):
    """Writes the file in Nacha format, one record per line."""

    def __init__(self, line_ending: str = "\n"):
        self.line_ending = line_ending or "\n"

    def format(self, result: TransformResult) -> bytes:
        if result.file is None:
            raise ValueError("unable to write Nacha file: no file")
        for number, record in enumerate(result.file, start=1):
            if len(record) != RECORD_LENGTH:
                raise ValueError(
                    f"unable to write Nacha file: record {number} has "
                    f"{len(record)} characters, expected {RECORD_LENGTH}"
                )
        text = "".join(record + self.line_ending for record in result.file)
        try:
            return text.encode("ascii")
        except UnicodeEncodeError as exc:
            raise ValueError(f"unable to write Nacha file: {exc}") from exc


class Base64Formatter(Formatter):
    """Base64 of the encrypted bytes, or of the Nacha text when there are none."""

    def __init__(self, line_ending: str = "\n"):
        self.line_ending = line_ending

    def format(self, result: TransformResult) -> bytes:
        if result.encrypted:
            return base64.b64encode(result.encrypted)
        return base64.b64encode(NachaFormatter(self.line_ending).format(result))


class EncryptedFormatter(Formatter):
    """The encrypted bytes as they are."""

    def format(self, result: TransformResult) -> bytes:
        return bytes(result.encrypted)


def new_formatter(output_format: str | None = None) -> Formatter:
    """Pick a formatter by name: nacha, base64 or encrypted-bytes, with an optional -crlf."""
    if not output_format:
        return NachaFormatter()

    name = output_format.lower()
    line_ending = "\r\n" if name.endswith("-crlf") else "\n"

    if name == "encrypted-bytes":
        return EncryptedFormatter()
    if name.startswith("base64"):
        return Base64Formatter(line_ending)
    if name.startswith("nacha"):
        return NachaFormatter(line_ending)
    raise ValueError("unknown output format")