"""Content-defined chunking.

Boundaries come from FastCDC's rolling hash, so re-chunking identical bytes
always yields identical chunks and a local edit only moves nearby cut
points. The whole input is held in memory; memory use grows with file size.
"""

import pathlib
from dataclasses import dataclass
from typing import List

from fastcdc import fastcdc

from .errors import StorageIOError

MIN_SIZE = 2 * 1024 * 1024
AVG_SIZE = 4 * 1024 * 1024
MAX_SIZE = 8 * 1024 * 1024

# Ranges FastCDC accepts for each parameter.
MIN_SIZE_RANGE = (64, 64 * 1024 * 1024)
AVG_SIZE_RANGE = (256, 256 * 1024 * 1024)
MAX_SIZE_RANGE = (1024, 1024 * 1024 * 1024)


def check_sizes(min_size: int, avg_size: int, max_size: int):
    """Raise ValueError unless each size is inside the range FastCDC supports."""
    for label, value, (lo, hi) in (
        ("min_size", min_size, MIN_SIZE_RANGE),
        ("avg_size", avg_size, AVG_SIZE_RANGE),
        ("max_size", max_size, MAX_SIZE_RANGE),
    ):
        if not lo <= value <= hi:
            raise ValueError(f"{label} must be between {lo} and {hi} (got {value})")


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of the source buffer."""
    offset: int
    length: int
    data: bytes


def chunk(
    data: bytes,
    min_size: int = MIN_SIZE,
    avg_size: int = AVG_SIZE,
    max_size: int = MAX_SIZE,
) -> List[Chunk]:
    """Split `data` into content-defined chunks; `min_size <= avg_size <= max_size` is the caller's job."""
    check_sizes(min_size, avg_size, max_size)
    if not data:
        return []
    buf = bytes(data)
    chunks = []
    for cut in fastcdc(buf, min_size=min_size, avg_size=avg_size, max_size=max_size):
        chunks.append(Chunk(cut.offset, cut.length, buf[cut.offset:cut.offset + cut.length]))
    return chunks


def chunk_file(
    path,
    min_size: int = MIN_SIZE,
    avg_size: int = AVG_SIZE,
    max_size: int = MAX_SIZE,
) -> List[Chunk]:
    """Read the file at `path` in full and chunk it."""
    path = pathlib.Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise StorageIOError("read", path, exc) from exc
    return chunk(data, min_size, avg_size, max_size)
