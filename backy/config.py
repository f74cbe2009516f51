import os, pathlib
from typing import Mapping, Optional

import platformdirs
from pydantic import BaseModel, ValidationError, model_validator

from .chunker import AVG_SIZE, MAX_SIZE, MIN_SIZE, check_sizes
from .errors import ConfigurationError

APP_NAME = "Backy"
APP_AUTHOR = "backy"
REPO_SUBDIR = "repo"

ENV_VARS = {
    "data_root": "BACKY_DATA_HOME",
    "min_size": "BACKY_CHUNK_MIN",
    "avg_size": "BACKY_CHUNK_AVG",
    "max_size": "BACKY_CHUNK_MAX",
}


class Settings(BaseModel):
    """Engine settings; an explicit value always wins over the environment."""
    data_root: Optional[pathlib.Path] = None
    min_size: int = MIN_SIZE
    avg_size: int = AVG_SIZE
    max_size: int = MAX_SIZE

    @model_validator(mode="after")
    def check_chunk_sizes(self):
        check_sizes(self.min_size, self.avg_size, self.max_size)
        if not self.min_size <= self.avg_size <= self.max_size:
            raise ValueError("chunk sizes must satisfy min <= avg <= max")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from BACKY_* variables, leaving unset ones at their defaults."""
        env = os.environ if environ is None else environ
        values = {name: env[var] for name, var in ENV_VARS.items() if env.get(var)}
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid backy settings: {exc}") from exc


def resolve_data_root(settings: Settings) -> pathlib.Path:
    """Return the per-application data directory (override first, then the platform default)."""
    if settings.data_root is not None:
        return pathlib.Path(settings.data_root)
    try:
        base = pathlib.Path(platformdirs.user_data_dir(APP_NAME, APP_AUTHOR))
    except (KeyError, RuntimeError, OSError) as exc:
        raise ConfigurationError(f"cannot determine the per-user data directory: {exc}") from exc
    # expanduser() hands back "~/..." untouched when there is no home directory.
    if not base.is_absolute():
        raise ConfigurationError(f"per-user data directory is not absolute: {base}")
    return base


def resolve_repo_dir(settings: Optional[Settings] = None) -> pathlib.Path:
    if settings is None:
        settings = Settings.from_env()
    return resolve_data_root(settings) / REPO_SUBDIR
