# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

from datetime import datetime, timezone
from typing import Any

from mcp.server.fastmcp import FastMCP

from coreason_coderun.config import RunnerConfig
from coreason_coderun.executor import CodeExecutorAsync
from coreason_coderun.profiles import Language
from coreason_coderun.utils.logger import setup_logger

config = RunnerConfig()

# Initialize Execution Logic
executor = CodeExecutorAsync(config)

# Initialize MCP Server
mcp = FastMCP("coreason-coderun")


@mcp.tool()  # type: ignore[misc]
async def execute_code(code: str, language: Language) -> dict[str, Any]:
    """
    Run source code in an isolated, network-less container.
    Returns success, output or error, and execution_time in milliseconds.
    """
    result = await executor.execute(code, language)
    return result.to_payload()


@mcp.tool()  # type: ignore[misc]
async def health() -> dict[str, Any]:
    """
    Report whether the container engine is reachable.
    """
    available = await executor.health()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "docker": "available" if available else "unavailable",
    }


def main() -> None:
    """Entry point for the MCP server."""
    setup_logger(config.log_level)
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
