"""
Deterministic tar snapshots of the save directory.

A snapshot is written once per tick to a temporary file and then shared by
every due target. Entries are added depth-first with the children of each
directory in lexicographic filename order, so identical directory trees
produce byte-identical archives.

Symlinks are followed: a link to a directory is archived as a directory and
a link to a file as a regular file with the target's content.
"""

from __future__ import annotations

import os
import tarfile
import tempfile
from pathlib import Path
from typing import BinaryIO

from .errors import ArchiveError
from .logging import get_logger

logger = get_logger(__name__)


def append_dir_sorted(tar: tarfile.TarFile, src: Path, arcname: str = "") -> int:
    """Add the contents of ``src`` to ``tar`` in sorted order.

    The root directory itself is not added; its children are stored relative
    to ``arcname``. Returns the number of members written.
    """
    count = 0
    stack: list[tuple[Path, str]] = [(src, arcname)]
    while stack:
        path, name = stack.pop()
        if path.is_dir():
            if name:
                tar.add(path, arcname=name, recursive=False)
                count += 1
            with os.scandir(path) as entries:
                children = sorted(entries, key=lambda entry: entry.name, reverse=True)
            # reversed so that popping yields ascending names
            for entry in children:
                child_name = f"{name}/{entry.name}" if name else entry.name
                stack.append((Path(entry.path), child_name))
        else:
            tar.add(path, arcname=name, recursive=False)
            count += 1
    return count


class Snapshot:
    """A finished snapshot archive on disk.

    Every consumer calls :meth:`open` to get its own read handle with an
    independent cursor. The file is removed by :meth:`discard` once all
    consumers are done.
    """

    def __init__(self, path: Path, members: int):
        self.path = path
        self.members = members

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    def open(self) -> BinaryIO:
        return self.path.open("rb")

    def discard(self) -> None:
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> Snapshot:
        return self

    def __exit__(self, *args: object) -> None:
        self.discard()

    def __repr__(self) -> str:
        return f"Snapshot({str(self.path)!r}, members={self.members})"


def create_snapshot(save_dir: Path, workdir: Path | None = None) -> Snapshot:
    """Archive ``save_dir`` into a new temporary tar file.

    Raises:
        ArchiveError: the save directory is missing or a file cannot be read.
    """
    if not save_dir.is_dir():
        raise ArchiveError(f"save directory does not exist: {save_dir}").with_context(path=save_dir)

    fd, name = tempfile.mkstemp(prefix=".snapshot-", suffix=".tar", dir=workdir)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as handle:
            with tarfile.open(fileobj=handle, mode="w", format=tarfile.GNU_FORMAT, dereference=True) as tar:
                members = append_dir_sorted(tar, save_dir)
            handle.flush()
    except OSError as e:
        path.unlink(missing_ok=True)
        raise ArchiveError(f"saving {save_dir} to temporal tar file: {e}", cause=e) from e

    snapshot = Snapshot(path, members)
    logger.debug("snapshot_created", path=str(path), members=members, bytes=snapshot.size)
    return snapshot


__all__ = ["Snapshot", "append_dir_sorted", "create_snapshot"]
