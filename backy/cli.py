import typer, json, pathlib, sys
from contextlib import contextmanager
from typing import Optional

from .chunker import chunk_file
from .config import Settings
from .crypto import open_sealed, seal
from .errors import AuthenticationError, BackyError
from .local import LocalStorageBackend
from .logging import configure, get_logger
from .models import Severity
from .snapshot import backup_start
from .storage import Repository, read_bytes, write_bytes

app = typer.Typer(no_args_is_help=True)
LOG = get_logger("cli")


class State:
    settings: Settings = None
    repo_dir: Optional[pathlib.Path] = None

    def repository(self) -> Repository:
        return Repository(self.repo_dir, settings=self.settings)


STATE = State()


@app.callback()
def main(
    repo: Optional[str] = typer.Option(None, "--repo", help="Repository directory (overrides BACKY_DATA_HOME)"),
    debug: bool = typer.Option(False, "--debug", help="Log to stderr instead of the backy log file"),
):
    """Chunk, encrypt and store files in a local backy repository."""
    configure(debug)
    STATE.repo_dir = pathlib.Path(repo) if repo else None
    try:
        STATE.settings = Settings.from_env()
    except BackyError as exc:
        typer.echo(f"✖ {exc}", err=True)
        raise typer.Exit(1)


@contextmanager
def _reported(event: str, **details):
    """Turn engine errors into a one-line message and exit code 1."""
    try:
        yield
    except AuthenticationError as exc:
        LOG.error(event, message="authentication failed", error=str(exc), **details)
        typer.echo("✖ Incorrect password or corrupted data.", err=True)
        raise typer.Exit(1)
    except BackyError as exc:
        LOG.error(event, message=type(exc).__name__, error=str(exc), **details)
        typer.echo(f"✖ {exc}", err=True)
        raise typer.Exit(1)


def ask_pw(prompt="Password") -> str:
    """Prompt for a password without echoing it."""
    pw = typer.prompt(prompt, hide_input=True)
    if not pw:
        typer.echo("✖ Password must not be empty.", err=True)
        raise typer.Exit(1)
    return pw


def ask_new_password() -> str:
    """Prompt twice for a new password and ensure the entries match."""
    first = ask_pw("New password")
    second = ask_pw("Confirm password")
    if first != second:
        typer.echo("✖ Passwords did not match. Aborting.", err=True)
        raise typer.Exit(1)
    return first


@app.command()
def init():
    """Create the repository directory and empty index if they do not exist."""
    with _reported("init_failed"):
        repo_dir, index_path = STATE.repository().init()
    typer.echo(f"Repository ready at {repo_dir}")


@app.command("chunk")
def chunk_cmd(path: str, verbose: bool = typer.Option(False, "--verbose", "-v", help="Print each chunk boundary")):
    """Show how a file splits into content-defined chunks."""
    s = STATE.settings
    with _reported("chunk_failed", path=path):
        chunks = chunk_file(path, s.min_size, s.avg_size, s.max_size)
    if verbose:
        for c in chunks:
            typer.echo(f"{c.offset}\t{c.length}")
    typer.echo(f"{len(chunks)} chunks")


@app.command()
def save(
    path: str,
    encrypt: bool = typer.Option(False, "--encrypt", help="Seal each chunk with a password before storing"),
):
    """Chunk a file and store every chunk in the repository, printing one id per chunk."""
    s = STATE.settings
    pw = ask_new_password() if encrypt else None
    repo = STATE.repository()
    with _reported("save_failed", path=path):
        chunks = chunk_file(path, s.min_size, s.avg_size, s.max_size)
        for c in chunks:
            payload = seal(c.data, pw) if pw is not None else c.data
            typer.echo(repo.save(payload))


@app.command("ls")
def ls_cmd():
    """List stored blobs in insertion order."""
    with _reported("list_failed"):
        entries = STATE.repository().entries()
    for e in entries:
        typer.echo(f"{e.id}\t{e.length} bytes")


@app.command()
def cat(
    blob_id: str,
    out: str = typer.Option("-", "--out", help="Destination path, or '-' for stdout"),
    decrypt: bool = typer.Option(False, "--decrypt", help="Open a blob stored with --encrypt"),
):
    """Write the raw bytes of a stored blob."""
    pw = ask_pw() if decrypt else None
    with _reported("cat_failed", id=blob_id):
        data = STATE.repository().load(blob_id)
        if pw is not None:
            data = open_sealed(data, pw)
        if out == "-":
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
        else:
            write_bytes(pathlib.Path(out), data)
            typer.echo(f"✔ Wrote {blob_id} -> {out}", err=True)


@app.command("check")
def check(as_json: bool = typer.Option(False, "--json", help="Output results as JSON")):
    """Verify that every indexed blob exists with the recorded length."""
    with _reported("check_failed"):
        results = STATE.repository().check()
    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        for r in results:
            prefix = {
                Severity.OK: "[OK]     ",
                Severity.WARNING: "[WARN]   ",
                Severity.ERROR: "[ERROR]  ",
            }[r.severity]
            loc = f" ({r.path})" if r.path else ""
            typer.echo(f"{prefix}{r.id}: {r.message}{loc}")
            if r.details:
                typer.echo(f"          details: {r.details}")
    if any(r.severity == Severity.ERROR for r in results):
        raise typer.Exit(1)


@app.command("save-local")
def save_local(path: str, dest_dir: str):
    """Copy a file or directory tree into a folder without indexing it."""
    with _reported("save_local_failed", path=path, dest=dest_dir):
        saved = LocalStorageBackend().mirror(path, dest_dir)
    typer.echo(f"✔ Saved to {saved}")


@app.command("encrypt")
def encrypt_cmd(src: str, out: str):
    """Seal a whole file with a password (salt, nonce and ciphertext in one file)."""
    pw = ask_new_password()
    with _reported("encrypt_failed", path=src):
        data = read_bytes(pathlib.Path(src))
        write_bytes(pathlib.Path(out), seal(data, pw))
    typer.echo(f"✔ Encrypted {src} -> {out}")


@app.command("decrypt")
def decrypt_cmd(src: str, out: str):
    """Open a file produced by `encrypt`."""
    pw = ask_pw()
    with _reported("decrypt_failed", path=src):
        data = open_sealed(read_bytes(pathlib.Path(src)), pw)
        write_bytes(pathlib.Path(out), data)
    typer.echo(f"✔ Decrypted {src} -> {out}")


@app.command("snapshot")
def snapshot_cmd(source: str):
    """Run an external kopia snapshot and print its raw JSON output."""
    with _reported("snapshot_failed", source=source):
        typer.echo(backup_start(source))


if __name__ == "__main__":
    app()
