"""
Error taxonomy shared by loaders, processors and exporters.

Fatal conditions are raised as ``FoctError`` subclasses.  Conditions that are
corrected locally (non-finite samples, constant volumes, missing reference
corpora) are not raised; they are recorded as ``Issue`` values on the file's
outcome so downstream consumers know the data was altered.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(Enum):
    """Structured error kinds reported per file."""
    IO = "IOError"
    FORMAT_UNRECOGNIZED = "FormatUnrecognized"
    DATA_INTEGRITY = "DataIntegrity"
    DEGENERATE_RANGE = "DegenerateRange"
    TARGET_UNAVAILABLE = "TargetUnavailable"
    SERIALIZATION_FAILURE = "SerializationFailure"
    INTERNAL = "InternalError"


class FoctError(Exception):
    """Base class for fatal per-file errors."""

    kind: ErrorKind = ErrorKind.INTERNAL


class VolumeReadError(FoctError):
    """Raw buffer could not be read."""

    kind = ErrorKind.IO


class FormatUnrecognized(FoctError):
    """No exact volume shape explains the buffer length."""

    kind = ErrorKind.FORMAT_UNRECOGNIZED

    def __init__(self, byte_length: int, element_size: int, message: str = "") -> None:
        self.byte_length = int(byte_length)
        self.element_size = int(element_size)
        super().__init__(
            message or f"No exact shape for {byte_length} bytes with element size {element_size}"
        )


class SerializationFailure(FoctError):
    """Primary output format could not be written."""

    kind = ErrorKind.SERIALIZATION_FAILURE


@dataclass(frozen=True)
class Issue:
    """Non-fatal condition that altered or limited a file's result."""

    kind: ErrorKind
    message: str


def error_kind_of(exc: BaseException) -> ErrorKind:
    """Map an exception onto the reported error kind."""
    if isinstance(exc, FoctError):
        return exc.kind
    if isinstance(exc, OSError):
        return ErrorKind.IO
    return ErrorKind.INTERNAL


__all__ = [
    "ErrorKind",
    "FoctError",
    "VolumeReadError",
    "FormatUnrecognized",
    "SerializationFailure",
    "Issue",
    "error_kind_of",
]
