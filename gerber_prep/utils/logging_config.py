"""Logging setup shared by the exporter and the CLI scripts.

Every export runs layer by layer; the layer being processed is carried as
a contextual field so that messages from the reducer, the clipper and the
raster fallback can be attributed without threading names through every
call.

Public API:
    setup_logging(log_level="INFO", log_file=None, json=False, color=True,
                  context={"app": "clip_layer"})
    push_context(layer="Copper0") / pop_context(["layer"])
    with log_context(layer="Silk1"): ...
    install_excepthook()

Format examples:
    Human: 2026-03-02T09:14:55.120Z | INFO     | layer=Copper0 | 3 elements clipped
    JSON:  {"t": "2026-03-02T09:14:55.120000+00:00", "lvl": "INFO", "layer": "Copper0", ...}

Context lives in a ContextVar; log_context() restores the previous value
on exit, including on exceptions. Repeated setup_logging() calls replace
the handlers installed by the previous call.
"""

import contextlib
import contextvars
import json as jsonlib
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

_context_var: contextvars.ContextVar = contextvars.ContextVar('gerber_prep_log_context', default={})

_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Render records with the active context fields.

    Parameters
    ----------
    fmt_mode : str
        "human" (pipe separated) or "json" (one object per line)
    use_color : bool
        Color the level name; only honored when stderr is a terminal
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode}")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        context = _context_var.get()
        if self.fmt_mode == "json":
            payload = {
                't': ts.isoformat(),
                'lvl': record.levelname,
                'name': record.name,
                'pid': os.getpid(),
                **context,
                'msg': record.getMessage(),
            }
            if record.exc_info:
                payload['exc'] = self.formatException(record.exc_info)
            return jsonlib.dumps(payload, default=str)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"

        parts = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', level]
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
        parts.append(record.getMessage())
        line = ' | '.join(parts)

        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str, optional
        Also log to this file (parent directories are created)
    json : bool
        Write the file handler as JSON lines
    color : bool
        Color the console level names
    to_stderr : bool
        Log to stderr
    context : dict, optional
        Fields pushed for the rest of the process, e.g. ``{"app": "clip_layer"}``

    Returns
    -------
    list of logging.Handler
        Handlers installed by this call
    """
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", use_color=color))
        _installed.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(ContextFormatter("json" if json else "human", use_color=False))
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)

    logging.captureWarnings(True)
    # Pillow logs every PNG chunk at DEBUG
    logging.getLogger("PIL").setLevel(logging.WARNING)

    return list(_installed)


def get_logger(name: str) -> logging.Logger:
    """Get logger by name (typically __name__)."""
    return logging.getLogger(name)


def push_context(**kwargs) -> None:
    """Add fields to every subsequent record in this context."""
    _context_var.set({**_context_var.get(), **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove ``keys`` from the context, or everything when None."""
    if keys is None:
        _context_var.set({})
        return
    _context_var.set({k: v for k, v in _context_var.get().items() if k not in keys})


def current_context() -> Dict[str, Any]:
    """Return a copy of the active contextual fields."""
    return dict(_context_var.get())


@contextlib.contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """Push contextual fields for the duration of a ``with`` block.

    Examples
    --------
    >>> with log_context(layer="Silk1"):
    ...     logger.info("clipping")   # → "... | layer=Silk1 | clipping"
    """
    token = _context_var.set({**_context_var.get(), **kwargs})
    try:
        yield
    finally:
        _context_var.reset(token)


def install_excepthook() -> None:
    """Log uncaught exceptions (except KeyboardInterrupt) before exit."""
    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = log_exception
