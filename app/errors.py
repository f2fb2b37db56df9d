from __future__ import annotations
from typing import Optional


class StorageError(Exception):
    """Base class for everything the CSV store raises."""


class NotFoundError(StorageError):
    pass


class DuplicateKeyError(StorageError):
    def __init__(self, field: str, value: str):
        super().__init__(f"{field} already exists: {value}")
        self.field = field
        self.value = value


class StorageIOError(StorageError):
    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(message or f"I/O failure on {path}")
        self.path = path


class DecodeError(StorageError):
    """A table line could not be parsed (e.g. a quoted value is never closed)."""

    def __init__(self, line: str, reason: str = "unterminated quoted value"):
        preview = (line[:80] + '...') if len(line) > 80 else line
        super().__init__(f"{reason}: {preview!r}")
        self.line = line
        self.reason = reason
