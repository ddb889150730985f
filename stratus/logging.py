"""Logging configuration for Stratus.

Stratus logs through loguru and, like any library, keeps its namespace
disabled until the application opts in.

Example:
    from stratus.logging import LogConfig, setup_logging, teardown_logging

    handlers = setup_logging(LogConfig(level="DEBUG", file="stratus.log"))
    try:
        await provider.create_instance("web", config)
    finally:
        teardown_logging(handlers)
"""

from __future__ import annotations

import re
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

logger.disable("stratus")

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{component: <12}</magenta> | "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{component} | {name}:{function}:{line} - {message}"
)


_COMPONENT = re.compile(r"\{component(?::([^}]*))?\}")


def _with_component(template: str) -> Callable[[dict[str, Any]], str]:
    """Render ``{component}`` from the record, or "-" when nothing was bound."""

    def format_record(record: dict[str, Any]) -> str:
        component = str(record["extra"].get("component", "-"))
        line = _COMPONENT.sub(
            lambda m: format(component, m.group(1) or "").replace("{", "{{").replace("}", "}}"),
            template,
        )
        return line + "\n{exception}"

    return format_record


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where stratus logs go.

    Attributes:
        level: Minimum console level.
        file: Path to a log file. The file sink always records DEBUG.
        console: Whether to log to stderr.
        rotation: File rotation policy (e.g., "50 MB", "1 day").
        retention: Number of rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def setup_logging(config: LogConfig | None = None) -> list[int]:
    """Enable stratus logging and return the handler ids to tear down later."""
    config = config or LogConfig()
    logger.enable("stratus")
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                level=config.level,
                format=_with_component(CONSOLE_FORMAT),
                colorize=True,
                filter="stratus",
            )
        )

    if config.file:
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=_with_component(FILE_FORMAT),
                rotation=config.rotation,
                retention=config.retention,
                diagnose=False,
                enqueue=True,
                filter="stratus",
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    """Remove the given handlers and disable stratus logging again."""
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("stratus")


__all__ = ["LogConfig", "LogLevel", "setup_logging", "teardown_logging"]
