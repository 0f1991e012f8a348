"""MCP tool registration."""

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..orchestrator.toolbox import ToolRegistry
from .plans import register_plans_tools

logger = logging.getLogger(__name__)


def register_all_tools(mcp: FastMCP, config: Config, tools: Optional[ToolRegistry] = None) -> None:
	"""Register all MCP tools."""
	register_plans_tools(mcp, config, tools)
	logger.info("Registered autonomous plan tools")
