"""
Filesystem helpers shared by the local store and the replica writers.

Every write goes through a temp file in the destination directory
followed by os.replace, so readers see either the old file or the new
one and concurrent writers of identical bytes settle on last-write-wins.
"""

import os
import tempfile
from pathlib import Path
from typing import Iterator

TEMP_SUFFIX = ".partial"


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes to path atomically, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=TEMP_SUFFIX
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def atomic_copy(source: Path, destination: Path) -> int:
    """Copy a file atomically. Returns the number of bytes copied."""
    data = source.read_bytes()
    atomic_write_bytes(destination, data)
    return len(data)


def is_temp_file(path: Path) -> bool:
    return path.name.endswith(TEMP_SUFFIX)


def iter_files(root: Path, skip_dirs: tuple[str, ...] = ("metadata",)) -> Iterator[Path]:
    """
    Yield every regular file under root, recursively.

    Directories named in skip_dirs and in-flight temp files are skipped.
    A missing root yields nothing.
    """
    if not root.is_dir():
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in skip_dirs]
        for filename in filenames:
            path = Path(dirpath) / filename
            if is_temp_file(path):
                continue
            yield path


def same_file(a: Path, b: Path) -> bool:
    """True if both paths resolve to the same location."""
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False
