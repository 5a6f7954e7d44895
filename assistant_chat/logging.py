"""Logging utilities for the AssistantChat widget."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import os
import platform
import sys
import threading
import time
from pathlib import Path
from typing import Any, Optional

from .config import get_user_config_dir

LOG_FILENAME = "assistant_chat.log"

_EXCEPTION_HOOK_INSTALLED = False
_HOOK_LOCK = threading.Lock()


def setup_logging(
    app_name: str = "AssistantChat",
    *,
    level: int = logging.INFO,
    log_filename: Optional[str] = None,
) -> logging.Logger:
    """Configure logging using the standard :mod:`logging` machinery.

    Console and file handlers are attached to the *root* logger so that
    module loggers created with ``logging.getLogger(__name__)`` inherit them.
    """

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return logging.getLogger(app_name)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config_dir = get_user_config_dir(app_name)
    log_path = Path(config_dir) / (log_filename or LOG_FILENAME)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[console_handler, file_handler],
    )

    root_logger.log_path = log_path  # type: ignore[attr-defined]
    logger = logging.getLogger(app_name)
    logger.log_path = log_path  # type: ignore[attr-defined]

    logger.info(
        "Logging initialised",
        extra={
            "log_path": str(log_path),
            "level": logging.getLevelName(level),
        },
    )
    logger.debug(
        "Runtime environment",
        extra={
            "python": platform.python_version(),
            "platform": platform.platform(),
            "executable": sys.executable,
            "cwd": os.getcwd(),
        },
    )
    return logger


def get_log_file_path(logger: logging.Logger) -> Optional[Path]:
    """Return the path of the first file handler attached to ``logger``."""

    log_path = getattr(logger, "log_path", None)
    if isinstance(log_path, Path):
        return log_path

    for handler in logger.handlers:
        filename = getattr(handler, "baseFilename", None)
        if filename:
            return Path(filename)
    return None


def install_exception_hook(
    logger: logging.Logger, loop: asyncio.AbstractEventLoop | None = None
) -> None:
    """Log unhandled exceptions from the interpreter, threads and ``loop``.

    The interpreter and thread hooks are installed once per process; the loop
    handler is attached every time a loop is passed.
    """

    global _EXCEPTION_HOOK_INSTALLED

    if loop is not None:

        def handle_loop_exception(
            event_loop: asyncio.AbstractEventLoop, context: dict[str, Any]
        ) -> None:
            exc = context.get("exception")
            message = context.get("message", "Unhandled exception in event loop")
            if exc is not None:
                logger.critical(
                    message, exc_info=(type(exc), exc, exc.__traceback__)
                )
            else:
                logger.critical(message)

        loop.set_exception_handler(handle_loop_exception)

    with _HOOK_LOCK:
        if _EXCEPTION_HOOK_INSTALLED:
            return
        _EXCEPTION_HOOK_INSTALLED = True

    default_hook = sys.excepthook

    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            default_hook(exc_type, exc_value, exc_traceback)
            return

        logger.critical(
            "Unhandled exception", exc_info=(exc_type, exc_value, exc_traceback)
        )
        default_hook(exc_type, exc_value, exc_traceback)

    sys.excepthook = handle_exception

    thread_hook = threading.excepthook

    def handle_thread_exception(args):
        if issubclass(args.exc_type, KeyboardInterrupt):
            thread_hook(args)
            return

        logger.critical(
            "Unhandled exception in thread %s",
            args.thread.name if args.thread else "<unknown>",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        thread_hook(args)

    threading.excepthook = handle_thread_exception


def _safe_repr(value: Any, *, max_length: int = 2000) -> str:
    """Return a truncated ``repr`` suitable for logging."""

    try:
        result = repr(value)
    except Exception:
        result = object.__repr__(value)
    if len(result) > max_length:
        return result[: max_length - 1] + "…"
    return result


def _format_arguments(signature: inspect.Signature, *args: Any, **kwargs: Any) -> str:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except Exception:
        return "unavailable"
    arguments = []
    for name, value in bound.arguments.items():
        if name in {"self", "cls"}:
            continue
        arguments.append(f"{name}={_safe_repr(value)}")
    return ", ".join(arguments)


def _resolve_logger(target: logging.Logger | str | None, module: str) -> logging.Logger:
    if isinstance(target, logging.Logger):
        return target
    if isinstance(target, str):
        return logging.getLogger(target)
    return logging.getLogger(module)


def log_call(
    _func: Optional[Any] = None,
    *,
    logger: logging.Logger | str | None = None,
    level: int = logging.DEBUG,
    include_args: bool = True,
    include_result: bool = False,
    exc_level: int = logging.ERROR,
) -> Any:
    """Decorator that logs entry, exit, and failures for ``_func``.

    Works on plain functions and on coroutine functions; for the latter the
    timing covers the awaited body::

        @log_call
        def some_function(...):
            ...

        @log_call(level=logging.INFO, include_result=True)
        async def another(...):
            ...
    """

    def decorator(func: Any) -> Any:
        signature = inspect.signature(func)
        qualname = getattr(func, "__qualname__", getattr(func, "__name__", "<call>"))
        module = getattr(func, "__module__", "")
        log_identifier = f"{module}.{qualname}" if module else qualname

        def _enter(args: tuple[Any, ...], kwargs: dict[str, Any]) -> logging.Logger:
            resolved_logger = _resolve_logger(logger, module)
            if include_args:
                arguments = _format_arguments(signature, *args, **kwargs)
                resolved_logger.log(level, "Calling %s(%s)", log_identifier, arguments)
            else:
                resolved_logger.log(level, "Calling %s", log_identifier)
            return resolved_logger

        def _failed(resolved_logger: logging.Logger, start: float) -> None:
            resolved_logger.log(
                exc_level,
                "Error in %s after %.3fs",
                log_identifier,
                time.perf_counter() - start,
                exc_info=True,
            )

        def _exit(resolved_logger: logging.Logger, start: float, result: Any) -> None:
            elapsed = time.perf_counter() - start
            if include_result:
                resolved_logger.log(
                    level,
                    "%s returned %s (%.3fs)",
                    log_identifier,
                    _safe_repr(result),
                    elapsed,
                )
            else:
                resolved_logger.log(
                    level,
                    "%s completed in %.3fs",
                    log_identifier,
                    elapsed,
                )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                resolved_logger = _enter(args, kwargs)
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception:
                    _failed(resolved_logger, start)
                    raise
                _exit(resolved_logger, start, result)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            resolved_logger = _enter(args, kwargs)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                _failed(resolved_logger, start)
                raise
            _exit(resolved_logger, start, result)
            return result

        return wrapper

    if callable(_func):
        return decorator(_func)
    return decorator


__all__ = [
    "setup_logging",
    "install_exception_hook",
    "get_log_file_path",
    "log_call",
]
