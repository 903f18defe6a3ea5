# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

"""Loguru sink setup shared by the whole package.

Two sinks are installed at import time: a human-readable stderr sink and a
rotating JSON file sink under ``logs/``.
"""

import os
import sys
from pathlib import Path

from loguru import logger

LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "app.log"


def setup_logger(level: str | None = None) -> None:
    """(Re)configure the global loguru logger.

    Args:
        level: Minimum level for the stderr sink. Falls back to the
            ``COREASON_CODERUN_LOG_LEVEL`` environment variable, then ``INFO``.
    """
    level = (level or os.environ.get("COREASON_CODERUN_LOG_LEVEL") or "INFO").upper()

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        ),
    )

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_FILE,
        level="DEBUG",
        rotation="10 MB",
        retention="7 days",
        serialize=True,
        enqueue=True,
    )


setup_logger()

__all__ = ["logger", "setup_logger"]
