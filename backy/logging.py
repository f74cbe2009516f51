"""structlog setup for the engine and the CLI.

The engine is used as a library, so nothing may reach stdout: the first
`get_logger` call routes output to the 0600 backy log file unless the host
already configured structlog. The file itself is opened on the first log
line, not at import. `configure(debug=True)` switches to stderr.
"""

import structlog, sys, pathlib, os

_LOG_STREAM = None
SECRET_KEYS = ("secret", "password", "key")


def log_path() -> pathlib.Path:
    """`$BACKY_LOG`, else ~/.local/state/backy/backy.log."""
    override = os.environ.get("BACKY_LOG")
    if override:
        return pathlib.Path(override)
    return pathlib.Path.home() / ".local" / "state" / "backy" / "backy.log"


def _log_handle():
    global _LOG_STREAM
    if _LOG_STREAM is None or _LOG_STREAM.closed:
        path = log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        os.chmod(path, 0o600)
        _LOG_STREAM = os.fdopen(fd, "a", buffering=1)
    return _LOG_STREAM


class _LogFileFactory:
    """Hands structlog a PrintLogger bound to the log file, opening it on demand."""

    def __call__(self, *args):
        return structlog.PrintLogger(file=_log_handle())


def _drop_secrets(_, __, event_dict):
    for k in SECRET_KEYS:
        event_dict.pop(k, None)
    return event_dict


def _render(_, __, event_dict):
    # 2026-10-17T09:00:00Z [INFO] repository: blob_saved id=... length=3
    ts = event_dict.pop("timestamp", "")
    level = event_dict.pop("level", "").upper()
    event = event_dict.pop("event", "")
    component = event_dict.pop("component", None)
    if component:
        event = f"{component}: {event}"
    extras = " ".join(f"{k}={event_dict[k]}" for k in sorted(event_dict))
    return f"{ts} [{level}] {event} {extras}".strip()


def configure(debug: bool = False):
    """Send log lines to stderr when debugging, otherwise to the backy log file."""
    structlog.configure(
        processors=[
            _drop_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.dict_tracebacks,
            _render,
        ],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr) if debug else _LogFileFactory(),
    )


def get_logger(name: str | None = None):
    if not structlog.is_configured():
        configure(False)
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(component=name)
