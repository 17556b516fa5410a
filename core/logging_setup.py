"""
Core Module - Logging Setup.

============================================================
RESPONSIBILITY
============================================================
Configures logging for the worker runtime.

- Structured (json) or text log lines on stdout
- Pipe-safe handlers: a closed stdout/stderr pipe is not an error
- Stream guards for the process standard streams

The runtime is often embedded under a parent process that may
close the pipe first (e.g. Ctrl+C on a piped command). Writes
that hit EPIPE are dropped; any other stream error is raised.

============================================================
"""

import errno
import json
import logging
import sys
from typing import Any, Iterable, List, Optional, TextIO


def is_broken_pipe(exc: BaseException) -> bool:
    """Check whether an exception means the reading end of a pipe went away."""
    if isinstance(exc, BrokenPipeError):
        return True
    return isinstance(exc, OSError) and exc.errno == errno.EPIPE


# ============================================================
# PIPE-SAFE STREAMS
# ============================================================

class PipeGuardedStream:
    """
    Proxy for a text stream that swallows closed-pipe errors.

    Every other attribute is forwarded to the wrapped stream.
    """

    def __init__(self, stream: TextIO):
        self._stream = stream
        self.pipe_closed = False

    @property
    def wrapped(self) -> TextIO:
        return self._stream

    def write(self, data: str) -> int:
        if self.pipe_closed:
            return len(data)
        try:
            return self._stream.write(data)
        except OSError as e:
            if is_broken_pipe(e):
                self.pipe_closed = True
                return len(data)
            raise

    def writelines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        if self.pipe_closed:
            return
        try:
            self._stream.flush()
        except OSError as e:
            if is_broken_pipe(e):
                self.pipe_closed = True
                return
            raise

    def __getattr__(self, name: str) -> Any:
        return getattr(self._stream, name)


def install_stream_guards() -> List[PipeGuardedStream]:
    """
    Wrap ``sys.stdout`` and ``sys.stderr`` in pipe guards.

    Safe to call repeatedly; already guarded streams are left alone.

    Returns:
        The guards now installed, stdout first
    """
    guards = []
    for name in ("stdout", "stderr"):
        stream = getattr(sys, name, None)
        if stream is None:
            continue
        if not isinstance(stream, PipeGuardedStream):
            stream = PipeGuardedStream(stream)
            setattr(sys, name, stream)
        guards.append(stream)
    return guards


class PipeSafeStreamHandler(logging.StreamHandler):
    """StreamHandler that drops records once the pipe is closed."""

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if exc is not None and is_broken_pipe(exc):
            return
        super().handleError(record)


# ============================================================
# FORMATTERS
# ============================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        error = getattr(record, "error", None)
        if error is not None:
            payload["error"] = error
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Set up runtime logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        stream: Target stream (defaults to stdout)

    Returns:
        The ``processor`` logger
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = PipeSafeStreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("processor")


__all__ = [
    "is_broken_pipe",
    "PipeGuardedStream",
    "install_stream_guards",
    "PipeSafeStreamHandler",
    "JsonFormatter",
    "setup_logging",
]
