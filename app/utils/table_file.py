from __future__ import annotations
import logging
import os
import stat
import tempfile
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Union

from app.errors import DecodeError, StorageIOError
from app.utils.csv_codec import decode_line, encode_header, encode_line, split_line

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

# Entries vanish once no caller holds the lock, so the registry stays bounded by live writers.
_locks: "weakref.WeakValueDictionary[str, Any]" = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()

# Mode a plain open() would give a new table; NamedTemporaryFile always creates 0600.
_UMASK = os.umask(0)
os.umask(_UMASK)
_NEW_FILE_MODE = 0o666 & ~_UMASK


@contextmanager
def file_lock(path: PathLike) -> Iterator[None]:
    """Serialise read-modify-write cycles on one table file within this process."""
    key = os.path.abspath(os.fspath(path))
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
    with lock:
        yield


def read_all(path: PathLike, strip: bool = True) -> List[Dict[str, str]]:
    """Decode every record in the table at ``path``.

    A missing file is an empty table. Records are keyed by the header stored in the file itself,
    so a file written with an older header still loads.
    """
    p = Path(path)
    if not p.exists():
        return []
    try:
        with open(p, "r", encoding="utf-8", newline="") as f:
            content = f.read()
    except UnicodeDecodeError as e:
        raise DecodeError(str(p), f"invalid UTF-8 at byte {e.start}") from e
    except OSError as e:
        raise StorageIOError(str(p), f"Failed to read {p}: {e}") from e

    lines = [line.rstrip("\r") for line in content.split("\n")]
    lines = [line for line in lines if line.strip()]
    if len(lines) <= 1:
        return []
    header = split_line(lines[0])
    return [decode_line(line, header, strip=strip) for line in lines[1:]]


def write_all(path: PathLike, records: Sequence[Mapping[str, Any]], header: Sequence[str]) -> None:
    """Replace the table at ``path`` with ``header`` followed by one line per record."""
    p = Path(path)
    lines = [encode_header(header)]
    lines.extend(encode_line(r, header) for r in records)
    payload = "\n".join(lines) + "\n"

    tmp_name = None
    try:
        try:
            mode = stat.S_IMODE(os.stat(p).st_mode)
        except FileNotFoundError:
            mode = _NEW_FILE_MODE
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", newline="", dir=str(p.parent),
            prefix=f".{p.name}.", suffix=".tmp", delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(payload)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, p)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning("Could not remove temp file %s", tmp_name)
        raise StorageIOError(str(p), f"Failed to write {p}: {e}") from e
    logger.debug("Wrote %d records to %s", len(records), p)
