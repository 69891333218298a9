"""
debug_trace.py

Stage-by-stage tracing for the conversion pipeline (MMDC, PARSE, CONVERT,
BULK, SCENE).

Tracing is off unless ``M2E_DEBUG_TRACE=1`` is set or ``enable()`` is
called (the CLI's ``--trace`` flag).  ``ERROR`` lines are always written.
``M2E_TRACE_CATEGORIES=PARSE,MMDC`` narrows output to those stages and
``M2E_TRACE_FILE`` mirrors every line to a file.
"""

import inspect
import os
import sys
import time
import traceback
from datetime import datetime
from functools import wraps

DEBUG_TRACE = os.environ.get("M2E_DEBUG_TRACE", "").lower() in ("1", "true", "yes")

# Empty set means every category
CATEGORIES = {c.strip().upper() for c in os.environ.get("M2E_TRACE_CATEGORIES", "").split(",") if c.strip()}

LOG_FILE = os.environ.get("M2E_TRACE_FILE") or None

_log_file = None


def enable(log_file=None, categories=None):
    """Turn tracing on at runtime, optionally mirroring to *log_file*."""
    global DEBUG_TRACE, LOG_FILE, CATEGORIES
    DEBUG_TRACE = True
    if log_file:
        close_log()
        LOG_FILE = str(log_file)
    if categories:
        CATEGORIES = {c.upper() for c in categories}


def is_enabled(category: str = "INFO") -> bool:
    if category == "ERROR":
        return True
    return DEBUG_TRACE and (not CATEGORIES or category in CATEGORIES)


def _get_log_file():
    global _log_file
    if LOG_FILE and _log_file is None:
        try:
            _log_file = open(LOG_FILE, "a", encoding="utf-8")
        except OSError as e:
            print(f"[trace] cannot open {LOG_FILE}: {e}", file=sys.stderr)
    return _log_file


def trace(msg: str, category: str = "INFO"):
    """Write ``[time] [CATEGORY] msg`` to stderr and the trace file."""
    if not is_enabled(category):
        return

    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    line = f"[{timestamp}] [{category}] {msg}"
    print(line, file=sys.stderr, flush=True)

    log_file = _get_log_file()
    if log_file:
        log_file.write(line + "\n")
        log_file.flush()


def trace_exception(msg: str = "Exception"):
    """Trace the exception currently being handled, with its traceback."""
    trace(f"{msg}: {traceback.format_exc()}", "ERROR")


def trace_call(category: str = "CALL"):
    """Decorator: trace entry, exit and elapsed time of a pipeline stage.

    Works on plain and ``async`` functions.  The enabled check happens per
    call, so ``enable()`` after import still takes effect.
    """
    def decorator(func):
        name = func.__qualname__

        def _done(start):
            trace(f"<<< {name} ({(time.perf_counter() - start) * 1000:.1f} ms)", category)

        def _failed(e):
            trace(f"!!! {name} raised {type(e).__name__}: {e}", "ERROR")

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                if not is_enabled(category):
                    return await func(*args, **kwargs)
                trace(f">>> {name}", category)
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _failed(e)
                    raise
                _done(start)
                return result
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            if not is_enabled(category):
                return func(*args, **kwargs)
            trace(f">>> {name}", category)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _failed(e)
                raise
            _done(start)
            return result
        return wrapper
    return decorator


def close_log():
    """Close the trace file if one is open."""
    global _log_file
    if _log_file:
        _log_file.close()
        _log_file = None
