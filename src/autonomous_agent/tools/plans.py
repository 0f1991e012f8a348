"""Autonomous plan tools."""

import json
import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..errors import PlanNotFoundError, PlanTerminalError
from ..llm.router import LLMRouter
from ..orchestrator.planner import PlanningContext
from ..orchestrator.runner import Orchestrator
from ..orchestrator.toolbox import ToolRegistry
from ..plans.models import MODEL_PRESETS, PlanStatus
from ..plans.store import get_plan_store

logger = logging.getLogger(__name__)


def register_plans_tools(mcp: FastMCP, config: Config, tools: Optional[ToolRegistry] = None) -> None:
	"""Register autonomous plan tools."""
	router = LLMRouter()
	registry = tools or ToolRegistry()

	async def _orchestrator() -> Orchestrator:
		store = await get_plan_store(str(config.plans_db_path))
		return Orchestrator(store, router, tools=registry, config=config)

	@mcp.tool()
	async def run_autonomous_plan(
		request: str,
		thread_id: str,
		user_id: str,
		category_slug: str = "",
		preset: str = "",
	) -> str:
		"""
		Plan and execute a request autonomously.

		Args:
			request: What to accomplish
			thread_id: Owning conversation ID
			user_id: Owning user ID
			category_slug: Optional category for tools
			preset: Model preset (default, quality, economy, compliance)
		"""
		if preset and preset not in MODEL_PRESETS:
			return json.dumps({
				"error": f"Unknown preset: {preset}",
				"valid_presets": sorted(MODEL_PRESETS),
			})

		orchestrator = await _orchestrator()
		models = MODEL_PRESETS[preset].model_copy(deep=True) if preset else None

		result = await orchestrator.create_and_execute(
			request,
			thread_id=thread_id,
			user_id=user_id,
			category_slug=category_slug or None,
			context=PlanningContext(category=category_slug or None),
			models=models,
		)

		return json.dumps({
			"success": result.success,
			"plan_id": result.plan_id,
			"summary": result.summary,
			"error": result.error,
			"budget_type": result.budget_type,
			"stats": result.stats.model_dump() if result.stats else None,
		}, indent=2)

	@mcp.tool()
	async def get_autonomous_plan(plan_id: str) -> str:
		"""
		Get a plan by ID.

		Args:
			plan_id: The plan ID
		"""
		store = await get_plan_store(str(config.plans_db_path))
		plan = await store.get_plan(plan_id)

		if not plan:
			return json.dumps({"error": f"Plan not found: {plan_id}"})

		return json.dumps({
			"plan": plan.model_dump(mode="json"),
			"stats": plan.get_stats().model_dump(),
			"markdown": plan.to_markdown(),
		}, indent=2)

	@mcp.tool()
	async def list_autonomous_plans(status: str = "", thread_id: str = "", limit: int = 20) -> str:
		"""
		List plans, newest first.

		Args:
			status: Optional status filter (active, completed, cancelled, failed)
			thread_id: Optional thread filter
			limit: Max results
		"""
		try:
			plan_status = PlanStatus(status) if status else None
		except ValueError:
			return json.dumps({
				"error": f"Invalid status: {status}",
				"valid_statuses": [s.value for s in PlanStatus],
			})

		store = await get_plan_store(str(config.plans_db_path))
		plans = await store.list_plans(status=plan_status, thread_id=thread_id or None)

		return json.dumps({
			"plans": [
				{
					"id": p.id,
					"title": p.title,
					"status": p.status.value,
					"thread_id": p.thread_id,
					"progress_percent": p.get_stats().progress_percent,
					"updated_at": p.updated_at,
				}
				for p in plans[:limit]
			],
			"total": len(plans),
		}, indent=2)

	@mcp.tool()
	async def cancel_autonomous_plan(plan_id: str, reason: str = "Cancelled by user") -> str:
		"""
		Cancel an active plan. A task already running is allowed to finish.

		Args:
			plan_id: Plan ID
			reason: Reason recorded on the plan
		"""
		orchestrator = await _orchestrator()
		try:
			await orchestrator.cancel_plan(plan_id, reason)
		except (PlanNotFoundError, PlanTerminalError) as e:
			return json.dumps({"error": str(e)})

		return json.dumps({"success": True, "plan_id": plan_id, "status": "cancelled"}, indent=2)

	@mcp.tool()
	async def resume_autonomous_plan(plan_id: str) -> str:
		"""
		Continue an active plan, such as one left behind by a crashed process.

		Args:
			plan_id: Plan ID
		"""
		orchestrator = await _orchestrator()
		await orchestrator.recover()
		result = await orchestrator.execute_plan(plan_id)

		return json.dumps({
			"success": result.success,
			"plan_id": plan_id,
			"summary": result.summary,
			"error": result.error,
			"budget_type": result.budget_type,
			"stats": result.stats.model_dump() if result.stats else None,
		}, indent=2)

	@mcp.tool()
	async def recover_autonomous_plans() -> str:
		"""Skip tasks left running by a crashed process."""
		orchestrator = await _orchestrator()
		recovered = await orchestrator.recover()
		return json.dumps({"success": True, "plans_recovered": recovered}, indent=2)
