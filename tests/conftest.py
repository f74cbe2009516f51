import pytest
from argon2.low_level import Type

import backy.crypto
import backy.logging


@pytest.fixture(autouse=True)
def fast_argon2(monkeypatch):
    """Argon2id at production cost makes every encrypt take ~100ms; tests use the minimum."""
    monkeypatch.setattr(
        backy.crypto,
        "ARGON2_PARAMS",
        dict(time_cost=1, memory_cost=64, parallelism=1, hash_len=32, type=Type.ID),
    )


@pytest.fixture(autouse=True)
def log_file(tmp_path_factory, monkeypatch):
    """Each test logs to its own file; CLI tests may have pointed structlog at stderr."""
    path = tmp_path_factory.mktemp("logs") / "backy.log"
    monkeypatch.setenv("BACKY_LOG", str(path))
    monkeypatch.setattr(backy.logging, "_LOG_STREAM", None)
    backy.logging.configure(False)
    yield path
    if backy.logging._LOG_STREAM is not None:
        backy.logging._LOG_STREAM.close()


@pytest.fixture
def repo_dir(tmp_path):
    return tmp_path / "repo"
