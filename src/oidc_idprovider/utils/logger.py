# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Logging for oidc-idprovider.

Settings come from `OIDC_LOG_LEVEL`, `OIDC_LOG_JSON` and `OIDC_LOG_FILE`.
Records from the HTTP and JOSE libraries this package drives are routed into
loguru; the root standard-library logger is left alone.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["logger", "configure_logging", "LogSettings"]

INTERCEPTED_LOGGERS = ("httpx", "httpcore", "authlib")

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "trace={extra[trace_id]} - "
    "<level>{message}</level>"
)


class LogSettings(BaseSettings):
    """
    Logging settings.

    Attributes:
        level (str): Minimum level; unknown names fall back to INFO.
        json_output (bool): Serialize console records as JSON to stdout instead of text to stderr.
        file (Path | None): Optional JSON log file, rotated at 500 MB and kept 10 days.
    """

    model_config = SettingsConfigDict(case_sensitive=False, populate_by_name=True)

    level: str = Field("INFO", validation_alias="OIDC_LOG_LEVEL")
    json_output: bool = Field(False, validation_alias="OIDC_LOG_JSON")
    file: Path | None = Field(None, validation_alias="OIDC_LOG_FILE")

    @field_validator("level", mode="before")
    @classmethod
    def known_level(cls, v: Any) -> str:
        name = str(v).upper()
        try:
            logger.level(name)
        except ValueError:
            return "INFO"
        return name

    @field_validator("file", mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        return v or None


class InterceptHandler(logging.Handler):
    """
    Forwards standard-library records to loguru, keeping the original caller.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def trace_id_injector(record: dict[str, Any]) -> None:
    """Loguru patcher adding the active OpenTelemetry trace and span ids to `extra`."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")


def _add_file_sink(path: Path, level: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, rotation="500 MB", retention="10 days", serialize=True, enqueue=True, level=level)
    except OSError as e:
        logger.warning(f"File logging disabled, cannot write to {path}: {e}")


def configure_logging(settings: LogSettings | None = None) -> None:
    """
    (Re)configures all sinks. Reads the environment when `settings` is not given.
    """
    settings = settings or LogSettings()

    logger.configure(
        handlers=[],
        patcher=trace_id_injector,  # type: ignore[arg-type]
        extra={"trace_id": "-", "span_id": "-"},
    )

    if settings.json_output:
        logger.add(sys.stdout, level=settings.level, serialize=True)
    else:
        logger.add(sys.stderr, level=settings.level, format=TEXT_FORMAT)

    if settings.file is not None:
        _add_file_sink(settings.file, settings.level)

    handler = InterceptHandler()
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.setLevel(logger.level(settings.level).no)
        std_logger.propagate = False


configure_logging()
