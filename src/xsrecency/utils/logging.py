import functools
import logging
import os
import time
from typing import Any, Callable, TypeVar

import numpy as np

# Default to CRITICAL (effectively off) unless explicitly set for debug
LOG_LEVEL = os.getenv("XSRECENCY_LOG_LEVEL", "CRITICAL").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.CRITICAL))

F = TypeVar("F", bound=Callable[..., Any])


def _do_summarize(value: Any) -> str:
    """Internal implementation used to keep large values out of the logs."""
    if isinstance(value, np.ndarray):
        return f"<ndarray shape={value.shape} dtype={value.dtype}>"
    if hasattr(value, "shape") and hasattr(value, "columns"):
        return f"<DataFrame shape={value.shape}>"
    if callable(value):
        return f"<callable {getattr(value, '__qualname__', type(value).__name__)}>"
    text = repr(value)
    if len(text) > 80:
        return text[:77] + "..."
    return text


def log_call(func: F) -> F:
    """Decorator that logs function entry, exit and runtime at DEBUG level."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        logger = logging.getLogger(func.__module__)
        log_debug = logger.isEnabledFor(logging.DEBUG)
        if log_debug:
            logger.debug("Entering %s", func.__qualname__)
            summarized_args = [_do_summarize(a) for a in args]
            summarized_kwargs = {k: _do_summarize(v) for k, v in kwargs.items()}
            logger.debug("args=%s kwargs=%s", summarized_args, summarized_kwargs)
        start = time.time()
        result = func(*args, **kwargs)
        runtime_ms = (time.time() - start) * 1000.0
        if log_debug:
            logger.debug("return=%s", _do_summarize(result))
            logger.debug("Exiting %s (%.2fms)", func.__qualname__, runtime_ms)
        return result

    return wrapper  # type: ignore[return-value]


@log_call
def summarize(value: Any) -> str:
    """Short, log-friendly description of a value."""
    return _do_summarize(value)
