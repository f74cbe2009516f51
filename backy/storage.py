import os, json, pathlib, stat, tempfile, threading, uuid
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from .config import Settings, resolve_repo_dir
from .errors import BlobNotFoundError, IndexCorruptError, StorageIOError
from .logging import get_logger
from .models import CheckResult, IndexEntry, IndexList, Severity

LOG = get_logger("repository")

INDEX_NAME = "index.json"
BLOB_SUFFIX = ".blob"

# One writer lock per index path, shared by every Repository in this process.
_INDEX_LOCKS: Dict[str, threading.Lock] = {}
_INDEX_LOCKS_GUARD = threading.Lock()


def _index_lock(index_path: pathlib.Path) -> threading.Lock:
    key = os.path.normcase(os.path.abspath(index_path))
    with _INDEX_LOCKS_GUARD:
        lock = _INDEX_LOCKS.get(key)
        if lock is None:
            lock = _INDEX_LOCKS[key] = threading.Lock()
        return lock


def ensure_not_symlink(path: pathlib.Path, label: str):
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISLNK(st.st_mode):
        raise StorageIOError("open", path, RuntimeError(f"{label} is a symlink, which is not allowed"))


def read_bytes(path: pathlib.Path) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError as exc:
        raise BlobNotFoundError("read", path, exc) from exc
    except OSError as exc:
        raise StorageIOError("read", path, exc) from exc


def write_bytes(path: pathlib.Path, data: bytes):
    """Write `data` to `path`, truncating whatever was there."""
    try:
        with open(path, "wb") as f:
            f.write(data)
    except OSError as exc:
        raise StorageIOError("write", path, exc) from exc


def write_atomic(path, data: bytes):
    """Write to a temp file in the same directory, fsync, then rename over `path`."""
    path = pathlib.Path(path)
    ensure_not_symlink(path, "Target file")
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    except OSError as exc:
        raise StorageIOError("write", path, exc) from exc
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        raise StorageIOError("write", path, exc) from exc
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass


def canonicalize_path(path: pathlib.Path) -> pathlib.Path:
    """Return an absolute, symlink-resolved version of the provided path."""
    p = pathlib.Path(path).expanduser()
    return p.resolve(strict=False)


class Repository:
    """Blob store with a JSON index, one `<id>.blob` file per entry.

    `repo_dir` is used as-is when given; otherwise it is resolved from
    `settings` (or the environment) the first time the repository is touched.
    Saves from threads in one process are serialized per index path; writers
    in other processes must be serialized by the caller.
    """

    def __init__(self, repo_dir: Optional[pathlib.Path] = None, settings: Optional[Settings] = None):
        self._explicit_dir = repo_dir
        self._settings = settings
        self._root: Optional[pathlib.Path] = None

    @property
    def root(self) -> pathlib.Path:
        if self._root is None:
            base = self._explicit_dir if self._explicit_dir is not None else resolve_repo_dir(self._settings)
            self._root = canonicalize_path(base)
        return self._root

    @property
    def index_path(self) -> pathlib.Path:
        return self.root / INDEX_NAME

    def blob_path(self, blob_id: str) -> pathlib.Path:
        return self.root / f"{blob_id}{BLOB_SUFFIX}"

    def init(self) -> Tuple[pathlib.Path, pathlib.Path]:
        """Create the repository directory and an empty index if missing; never touches an existing index."""
        root, index_path = self.root, self.index_path
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("mkdir", root, exc) from exc
        ensure_not_symlink(index_path, "index.json")
        with _index_lock(index_path):
            if not index_path.exists():
                write_atomic(index_path, b"[]")
                LOG.info("repo_init", repo=str(root))
        return root, index_path

    def _load_index(self) -> List[IndexEntry]:
        raw = read_bytes(self.index_path)
        try:
            return IndexList.validate_json(raw)
        except ValidationError as exc:
            raise IndexCorruptError(self.index_path, str(exc)) from exc

    def _store_index(self, entries: List[IndexEntry]):
        payload = json.dumps([e.model_dump() for e in entries], indent=2).encode()
        write_atomic(self.index_path, payload)

    def save(self, blob: bytes) -> str:
        """Store `blob` under a fresh uuid4 and append it to the index; returns the identifier."""
        self.init()
        blob_id = str(uuid.uuid4())
        entry = IndexEntry(id=blob_id, filename=f"{blob_id}{BLOB_SUFFIX}", length=len(blob))
        write_bytes(self.blob_path(blob_id), blob)
        with _index_lock(self.index_path):
            entries = self._load_index()
            entries.append(entry)
            self._store_index(entries)
        LOG.info("blob_saved", repo=str(self.root), id=blob_id, length=len(blob))
        return blob_id

    def entries(self) -> List[IndexEntry]:
        self.init()
        return self._load_index()

    def list(self) -> List[str]:
        """Identifiers in insertion order, oldest first."""
        return [e.id for e in self.entries()]

    def load(self, blob_id: str) -> bytes:
        """Return the raw bytes stored under `blob_id`."""
        for e in self.entries():
            if e.id == blob_id:
                return read_bytes(self.root / e.filename)
        raise BlobNotFoundError("lookup", self.blob_path(blob_id))

    def check(self) -> List[CheckResult]:
        """Compare the index against the blob files on disk."""
        entries = self.entries()
        results: List[CheckResult] = []
        indexed = set()
        for e in entries:
            indexed.add(e.filename)
            path = self.root / e.filename
            try:
                size = os.lstat(path).st_size
            except FileNotFoundError:
                results.append(CheckResult(
                    id="blob_missing",
                    severity=Severity.ERROR,
                    message=f"Blob for {e.id} is missing.",
                    path=str(path),
                ))
                continue
            if size != e.length:
                results.append(CheckResult(
                    id="blob_length_mismatch",
                    severity=Severity.ERROR,
                    message=f"Blob for {e.id} has the wrong length.",
                    path=str(path),
                    details={"index": e.length, "fs": size},
                ))

        orphans = sorted(
            p.name for p in self.root.iterdir()
            if p.is_file() and p.name.endswith(BLOB_SUFFIX) and p.name not in indexed
        )
        for name in orphans:
            results.append(CheckResult(
                id="blob_orphaned",
                severity=Severity.WARNING,
                message="Blob exists but is not in the index.",
                path=str(self.root / name),
            ))

        if not results:
            results.append(CheckResult(
                id="repository_ok",
                severity=Severity.OK,
                message=f"{len(entries)} blobs indexed, all present.",
                path=str(self.root),
            ))
        return results
