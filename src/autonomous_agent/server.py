"""autonomous-agent MCP server."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from .config import Config, load_config
from .logging_config import setup_logging
from .plans.store import get_plan_store
from .tools import register_all_tools

logger = logging.getLogger(__name__)


def startup_lifespan(config: Config):
	"""Server lifespan that sweeps tasks orphaned by a crashed process before serving."""

	@asynccontextmanager
	async def lifespan(server: FastMCP) -> AsyncIterator[None]:
		store = await get_plan_store(str(config.plans_db_path))
		recovered = await store.recover_active_plans(grace_minutes=config.recovery_grace_minutes)
		if recovered:
			logger.warning(f"Startup recovery touched {recovered} plans")
		yield

	return lifespan


def create_server(config: Optional[Config] = None) -> FastMCP:
	"""Build the MCP server with all plan tools registered."""
	config = config or load_config()
	mcp = FastMCP("autonomous-agent", lifespan=startup_lifespan(config))
	register_all_tools(mcp, config)
	return mcp


if __name__ == "__main__":
	config = load_config()
	setup_logging(log_dir=config.log_dir)
	create_server(config).run()
