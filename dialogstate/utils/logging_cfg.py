from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from dialogstate.utils.env_cfg import LogConfig, load_log_env, load_path_env

STDERR_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session_id]} | {name} | {message}"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session_id]} | "
    "{name}:{line} | {message}"
)


def setup_logging(config: LogConfig | None = None, log_path: Path | None = None) -> Path:
    """
    Route engine logs to stderr and a rotating file.

    Records carry the session id bound with ``logger.contextualize`` or
    ``logger.bind``; records logged outside a session show ``-``.

    Args:
        config (LogConfig | None, optional): Levels, rotation and format options. Defaults to ``load_log_env()``.
        log_path (Path | None, optional): Log file. Defaults to ``LOG_PATH``.

    Returns:
        Path: The path to the log file.
    """
    cfg = config or load_log_env()
    log_path = log_path or load_path_env().logs
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"session_id": "-"})

    logger.add(
        sink=sys.stderr,
        level=cfg.level,
        backtrace=False,
        diagnose=cfg.diagnose,
        format=STDERR_FORMAT,
    )

    logger.add(
        sink=log_path,
        rotation=cfg.rotation,
        retention=cfg.retention,
        encoding="utf-8",
        level=cfg.file_level,
        backtrace=True,
        diagnose=cfg.diagnose,
        enqueue=True,
        serialize=cfg.serialize,
        format=FILE_FORMAT,
    )

    return log_path
