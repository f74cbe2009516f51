"""Thin wrapper around the external kopia snapshot tool."""

import subprocess

from .errors import SnapshotError
from .logging import get_logger

LOG = get_logger("snapshot")

DEFAULT_EXECUTABLE = "kopia"


def backup_start(source: str, executable: str = DEFAULT_EXECUTABLE) -> str:
    """Run `kopia snapshot create <source> --json` and return its stdout unparsed."""
    cmd = [executable, "snapshot", "create", str(source), "--json"]
    try:
        proc = subprocess.run(cmd, capture_output=True)
    except OSError as exc:
        raise SnapshotError(f"could not run {executable}: {exc}") from exc
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        LOG.error("snapshot_failed", source=str(source), code=proc.returncode, stderr=stderr)
        raise SnapshotError(f"{executable} failed with exit code: {proc.returncode}: {stderr}")
    return proc.stdout.decode("utf-8", errors="replace")
