"""Logging configuration using loguru."""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Literal

from loguru import logger

# Remove default handler
logger.remove()

GREEN = "\033[32m"
CYAN = "\033[36m"
YELLOW = "\033[33m"
RED = "\033[31m"
BOLD = "\033[1m"
DIM = "\033[2m"
RESET = "\033[0m"

_LEVEL_DISPLAY = {
    "DEBUG": ("DEBUG", CYAN),
    "INFO": ("INFO ", RESET),
    "WARNING": ("WARN ", YELLOW),
    "ERROR": ("ERROR", RED),
    "CRITICAL": ("CRIT ", f"{RED}{BOLD}"),
}


def _abbreviate_module_name(name: str) -> str:
    """Abbreviate module name for cleaner console output.

    Example: sandbox_runner.runner.bundle -> s.r.bundle
    """
    parts = name.split(".")
    if len(parts) <= 1:
        return name
    return ".".join([p[0] for p in parts[:-1]] + [parts[-1]])


def _format_console_record(record) -> str:
    """Render a record as a single colored line.

    Lifecycle events (``*_running``, ``*_stopped``, ``*_failed``) get a marker so
    sandbox transitions stand out in a busy log.
    """
    message = record["message"]
    timestamp = record["time"].strftime("%H:%M:%S.%f")[:-3]
    module_name = _abbreviate_module_name(record["extra"].get("name", record["name"]))

    extra = {k: v for k, v in record["extra"].items() if k != "name"}
    extra_str = ""
    if extra:
        extra_str = " | " + ", ".join(f"{k}={v!r}" for k, v in extra.items())

    level_name = record["level"].name
    level_display, level_color = _LEVEL_DISPLAY.get(
        level_name, (level_name[:5].ljust(5), RESET)
    )

    if message.endswith("_failed") and level_name != "DEBUG":
        marker = f"{RED}{BOLD}✗{RESET} "
    elif message.endswith("_running") or message.endswith("_stopped"):
        marker = f"{GREEN}{BOLD}●{RESET} "
    else:
        marker = ""

    return (
        f"{GREEN}{timestamp}{RESET} | "
        f"{level_color}{level_display}{RESET} {DIM}|{RESET} "
        f"{CYAN}{module_name}{RESET} | "
        f"{marker}{level_color}{message}{RESET}"
        f"{YELLOW}{extra_str}{RESET}\n"
    )


class InterceptHandler(logging.Handler):
    """Route standard library log records (httpx, e2b) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    log_level: str = "INFO",
    log_format: Literal["json", "console"] = "console",
) -> None:
    """Configure logging for the runner using loguru.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format - "json" for production, "console" for development
    """
    logger.remove()

    if log_format == "json":
        logger.add(
            sys.stdout,
            format="{message}",
            level=log_level.upper(),
            serialize=True,
            backtrace=True,
            diagnose=False,
        )
    else:
        logger.add(
            lambda msg: sys.stdout.write(_format_console_record(msg.record)),
            level=log_level.upper(),
            backtrace=True,
            diagnose=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Provider SDK transports are chatty at DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("e2b").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    """Get a logger instance.

    Args:
        name: Logger name, typically __name__ of the module

    Returns:
        A loguru logger instance bound with the module name
    """
    if name:
        return logger.bind(name=name)
    return logger


@contextmanager
def log_timing(logger_instance, event_name: str, **context):
    """Log ``<event>_started`` / ``_completed`` / ``_failed`` with duration_ms.

    Usage:
        with log_timing(logger, "bundle_upload", sandbox_id=sandbox_id):
            await runtime.upload_file(local, remote)
    """
    start = time.perf_counter()
    logger_instance.debug(f"{event_name}_started", **context)
    try:
        yield
    except Exception as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger_instance.error(
            f"{event_name}_failed", duration_ms=duration_ms, error=str(e), **context
        )
        raise
    duration_ms = int((time.perf_counter() - start) * 1000)
    logger_instance.info(f"{event_name}_completed", duration_ms=duration_ms, **context)
