"""Direct "save to a folder" writer: no index, no encryption."""

import os, pathlib

from .errors import StorageIOError
from .logging import get_logger
from .storage import read_bytes, write_bytes

LOG = get_logger("local")

DEFAULT_EXTENSION = ".blob"


class LocalStorageBackend:
    def save(self, blob: bytes, dest_dir, filename: str) -> str:
        """Write `blob` to `dest_dir/filename`, adding `.blob` when the name has no extension.

        An existing file at that path is overwritten.
        """
        dest = pathlib.Path(dest_dir)
        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("mkdir", dest, exc) from exc
        path = dest / filename
        if not path.suffix:
            path = path.with_name(path.name + DEFAULT_EXTENSION)
        write_bytes(path, blob)
        LOG.info("local_blob_saved", path=str(path), length=len(blob))
        return str(path)

    def mirror(self, source, dest_dir) -> str:
        """Copy a file, or a whole directory tree, into `dest_dir` through `save`."""
        src = pathlib.Path(source)
        if src.is_file():
            return self.save(read_bytes(src), dest_dir, src.name)
        if not src.is_dir():
            raise StorageIOError("mirror", src, FileNotFoundError("not a file or directory"))

        target = pathlib.Path(dest_dir) / src.name
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("mkdir", target, exc) from exc
        count = 0
        for dirpath, dirnames, filenames in os.walk(src):
            dirnames.sort()
            rel = pathlib.Path(dirpath).relative_to(src)
            for name in sorted(filenames):
                file_path = pathlib.Path(dirpath) / name
                if not file_path.is_file():
                    continue
                self.save(read_bytes(file_path), target / rel, name)
                count += 1
        LOG.info("local_tree_mirrored", source=str(src), dest=str(target), files=count)
        return str(target)
