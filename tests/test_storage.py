"""Tests for the indexed blob repository."""

import json
import threading
import uuid

import pytest

from backy.config import Settings
from backy.errors import BlobNotFoundError, IndexCorruptError
from backy.models import Severity
from backy.storage import Repository


class TestInit:
    """Tests for Repository.init()."""

    def test_fresh_root_gets_empty_index(self, repo_dir):
        root, index_path = Repository(repo_dir).init()
        assert root.is_dir()
        assert index_path == root / "index.json"
        assert json.loads(index_path.read_text()) == []

    def test_init_is_idempotent(self, repo_dir):
        repo = Repository(repo_dir)
        repo.save(b"keep me")
        before = repo.index_path.read_bytes()
        assert repo.init() == repo.init()
        assert repo.index_path.read_bytes() == before
        assert len(repo.list()) == 1

    def test_root_from_settings(self, tmp_path):
        repo = Repository(settings=Settings(data_root=tmp_path / "data"))
        root, _ = repo.init()
        assert root == (tmp_path / "data" / "repo").resolve()

    def test_root_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BACKY_DATA_HOME", str(tmp_path / "env"))
        root, _ = Repository().init()
        assert root == (tmp_path / "env" / "repo").resolve()


class TestSaveAndList:
    """Tests for Repository.save() / list() / load()."""

    def test_save_once(self, repo_dir):
        repo = Repository(repo_dir)
        blob_id = repo.save(b"hello")
        assert repo.list() == [blob_id]
        assert uuid.UUID(blob_id).version == 4
        assert (repo.root / f"{blob_id}.blob").read_bytes() == b"hello"

    def test_index_file_format(self, repo_dir):
        repo = Repository(repo_dir)
        blob_id = repo.save(b"12345")
        assert json.loads(repo.index_path.read_text()) == [
            {"id": blob_id, "filename": f"{blob_id}.blob", "length": 5}
        ]

    def test_save_many(self, repo_dir):
        repo = Repository(repo_dir)
        payloads = [b"a", b"bb", b"", b"dddd" * 100]
        ids = [repo.save(p) for p in payloads]
        assert len(set(ids)) == len(payloads)
        assert repo.list() == ids
        assert [e.length for e in repo.entries()] == [len(p) for p in payloads]

    def test_identical_payloads_are_stored_twice(self, repo_dir):
        repo = Repository(repo_dir)
        first = repo.save(b"same")
        second = repo.save(b"same")
        assert first != second
        assert len(list(repo.root.glob("*.blob"))) == 2

    def test_load(self, repo_dir):
        repo = Repository(repo_dir)
        blob_id = repo.save(b"\x00\x01binary")
        assert repo.load(blob_id) == b"\x00\x01binary"

    def test_load_unknown_id(self, repo_dir):
        with pytest.raises(BlobNotFoundError):
            Repository(repo_dir).load(str(uuid.uuid4()))

    def test_concurrent_saves_keep_every_entry(self, repo_dir):
        repo = Repository(repo_dir)
        ids = []
        lock = threading.Lock()

        def worker(n):
            for i in range(5):
                blob_id = Repository(repo_dir).save(f"{n}-{i}".encode())
                with lock:
                    ids.append(blob_id)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(repo.list()) == sorted(ids)
        assert len(ids) == 40

    def test_no_temp_files_left_behind(self, repo_dir):
        repo = Repository(repo_dir)
        repo.save(b"x")
        assert [p.name for p in repo.root.iterdir() if p.name.startswith(".")] == []


class TestCorruption:
    """A broken index is reported, never reset."""

    def test_malformed_json(self, repo_dir):
        repo = Repository(repo_dir)
        repo.init()
        repo.index_path.write_text("{not json")
        with pytest.raises(IndexCorruptError):
            repo.list()
        assert repo.index_path.read_text() == "{not json"

    def test_wrong_shape(self, repo_dir):
        repo = Repository(repo_dir)
        repo.init()
        repo.index_path.write_text('{"id": "x"}')
        with pytest.raises(IndexCorruptError):
            repo.save(b"data")

    def test_negative_length(self, repo_dir):
        repo = Repository(repo_dir)
        repo.init()
        repo.index_path.write_text('[{"id": "x", "filename": "x.blob", "length": -1}]')
        with pytest.raises(IndexCorruptError):
            repo.list()


class TestCheck:
    """Tests for Repository.check()."""

    def test_healthy(self, repo_dir):
        repo = Repository(repo_dir)
        repo.save(b"abc")
        results = repo.check()
        assert [r.id for r in results] == ["repository_ok"]

    def test_missing_blob(self, repo_dir):
        repo = Repository(repo_dir)
        blob_id = repo.save(b"abc")
        (repo.root / f"{blob_id}.blob").unlink()
        results = repo.check()
        assert [(r.id, r.severity) for r in results] == [("blob_missing", Severity.ERROR)]

    def test_length_mismatch(self, repo_dir):
        repo = Repository(repo_dir)
        blob_id = repo.save(b"abc")
        (repo.root / f"{blob_id}.blob").write_bytes(b"abcdef")
        (result,) = repo.check()
        assert result.id == "blob_length_mismatch"
        assert result.details == {"index": 3, "fs": 6}

    def test_orphaned_blob(self, repo_dir):
        repo = Repository(repo_dir)
        repo.init()
        (repo.root / "stray.blob").write_bytes(b"?")
        (result,) = repo.check()
        assert result.id == "blob_orphaned"
        assert result.severity == Severity.WARNING
