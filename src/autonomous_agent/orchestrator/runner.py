"""
Orchestrator - Plan → Execute → Check → Summarize loop.

Responsibilities:
- Create plans from requests (nothing is stored unless planning succeeds)
- Run ready tasks one at a time, most urgent first
- Gate every task on the global budget, before and after
- Detect stuck plans and stop on cancellation
- Summarize and complete, or leave the plan failed with a message
- Recover tasks orphaned by a crash
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import Config, get_config
from ..errors import (
	BudgetExceededError,
	OrchestrationError,
	PlanNotFoundError,
	PlanTerminalError,
	StuckPlanError,
)
from ..llm.base import LLMClient, MeteredLLM
from ..plans.models import (
	BudgetLimits,
	BudgetUsage,
	ModelConfig,
	PlanStats,
	PlanStatus,
	TaskPlan,
)
from ..plans.store import PlanStore
from .budget import BudgetEvent, BudgetTracker
from .events import OrchestratorCallbacks
from .executor import Executor
from .graph import detect_stuck_plan, select_next_task
from .planner import Planner, PlanningContext
from .summarizer import Summarizer
from .toolbox import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorResult:
	"""Final outcome of running a plan."""
	success: bool
	plan_id: str
	summary: Optional[str] = None
	error: Optional[str] = None
	stats: Optional[PlanStats] = None
	budget_type: Optional[str] = None


class Orchestrator:
	"""
	Drives autonomous plans to a terminal status.

	Usage:
		orchestrator = Orchestrator(store, LLMRouter(), tools=registry)
		result = await orchestrator.create_and_execute(
			"Compare the two vendor proposals",
			thread_id="t1",
			user_id="u1",
		)
	"""

	def __init__(
		self,
		store: PlanStore,
		llm: LLMClient,
		tools: Optional[ToolRegistry] = None,
		callbacks: Optional[OrchestratorCallbacks] = None,
		config: Optional[Config] = None,
		clock: Callable[[], float] = time.monotonic,
	):
		"""
		Initialize the orchestrator.

		Args:
			store: Plan store
			llm: LLM client for every role
			tools: Tool registry for the executor
			callbacks: Progress hooks
			config: Configuration (global config when omitted)
			clock: Monotonic seconds source for the duration budget
		"""
		self.store = store
		self.llm = llm
		self.tools = tools
		self.callbacks = callbacks or OrchestratorCallbacks()
		self.config = config or get_config()
		self._clock = clock

		self.executor = Executor(
			store,
			llm,
			tools=tools,
			callbacks=self.callbacks,
			confidence_threshold=self.config.confidence_threshold,
		)

	async def create_and_execute(
		self,
		request: str,
		thread_id: str,
		user_id: str,
		category_slug: Optional[str] = None,
		context: Optional[PlanningContext] = None,
		budget: Optional[BudgetLimits] = None,
		models: Optional[ModelConfig] = None,
	) -> OrchestratorResult:
		"""
		Plan a request, persist the plan and run it.

		Args:
			request: The user's request
			thread_id: Owning conversation
			user_id: Owning user
			category_slug: Optional category for tools
			context: Optional planning context
			budget: Per-plan limits (global limits when omitted)
			models: Per-role models (configured preset when omitted)

		Returns:
			OrchestratorResult. plan_id is empty when planning failed.
		"""
		models = models or self.config.model_config()

		planning = await Planner(self.llm, models.planner).create_plan(request, context)

		if not planning.success:
			error = planning.error or "Failed to create plan"
			logger.error(f"Plan creation failed: {error}")
			await self.callbacks.emit("error", error)
			return OrchestratorResult(success=False, plan_id="", error=error)

		plan = TaskPlan(
			thread_id=thread_id,
			user_id=user_id,
			category_slug=category_slug,
			title=planning.title,
			original_request=request,
			tasks=planning.tasks,
			budget_limits=budget or self.config.budget_limits(),
			models=models,
		)
		plan_id = await self.store.create_plan(plan)
		await self._charge(plan_id, planning.usage)

		await self.callbacks.emit("plan_created", plan)
		return await self.execute_plan(plan_id)

	async def execute_plan(self, plan_id: str) -> OrchestratorResult:
		"""
		Run an active plan until it is completed, failed or cancelled.

		Plan-level errors never escape: the plan is marked failed and the
		error is returned.
		"""
		plan = await self.store.get_plan(plan_id)
		if plan is None:
			error = f"Plan {plan_id} not found"
			await self.callbacks.emit("error", error)
			return OrchestratorResult(success=False, plan_id=plan_id, error=error)

		if plan.status != PlanStatus.ACTIVE:
			return OrchestratorResult(
				success=False,
				plan_id=plan_id,
				error=f"Plan is already {plan.status.value}",
				stats=plan.get_stats(),
			)

		tracker = BudgetTracker(
			self.store,
			self.config.budget_limits(),
			on_event=self._on_budget_event,
			clock=self._clock,
		)

		try:
			if not plan.tasks:
				raise OrchestrationError("Plan has no tasks")

			finished = await self._run_tasks(plan_id, tracker)
			if not finished:
				cancelled = await self.store.get_plan(plan_id)
				return OrchestratorResult(
					success=False,
					plan_id=plan_id,
					error=f"Plan {cancelled.status.value if cancelled else 'removed'} during execution",
					stats=cancelled.get_stats() if cancelled else None,
				)

			plan = await self.store.get_plan(plan_id)
			if plan is None:
				raise PlanNotFoundError("Plan not found before summarization")

			summary = await self._summarize(plan, tracker)
			await self.store.complete_plan(plan_id, summary)

			final = await self.store.get_plan(plan_id) or plan
			logger.info(f"Plan {plan_id} completed")
			await self.callbacks.emit("plan_completed", final)

			return OrchestratorResult(
				success=True,
				plan_id=plan_id,
				summary=summary,
				stats=final.get_stats(),
			)

		except Exception as e:
			return await self._fail(plan_id, e)

	async def _run_tasks(self, plan_id: str, tracker: BudgetTracker) -> bool:
		"""
		Execute ready tasks until every task is terminal.

		Returns:
			True when all tasks are terminal, False if the plan left active
		"""
		max_iterations = self.config.max_iterations

		for _ in range(max_iterations):
			status = await tracker.check_budget()
			if status.exceeded:
				raise BudgetExceededError(f"Budget exceeded: {status.message}", status.budget_type)

			plan = await self.store.get_plan(plan_id)
			if plan is None:
				raise PlanNotFoundError("Plan not found during execution")

			if plan.status != PlanStatus.ACTIVE:
				logger.info(f"Plan {plan_id} is {plan.status.value}, stopping")
				return False

			task = select_next_task(plan.tasks)

			if task is None:
				if plan.all_tasks_terminal():
					return True

				stuck = detect_stuck_plan(plan.tasks)
				if stuck.is_stuck:
					message = f"Plan stuck: {stuck.reason}"
					if stuck.suggestions:
						message += f" ({'; '.join(stuck.suggestions)})"
					raise StuckPlanError(message, stuck.stuck_task_ids)

				raise OrchestrationError("No executable task found but plan not complete or stuck")

			await self.callbacks.emit("task_started", task)

			result = await self.executor.execute_task(task, plan)
			await self._charge(plan_id, result.usage)

			post = await tracker.check_budget()
			if post.exceeded:
				raise BudgetExceededError(
					f"Budget exceeded after task {task.id}: {post.message}", post.budget_type,
				)

			updated = await self.store.get_plan(plan_id)
			updated_task = (updated.get_task(task.id) if updated else None) or task
			await self.callbacks.emit("task_completed", updated_task, result)

			if not result.success:
				if result.skipped:
					logger.warning(f"Task {task.id} skipped: {result.error}")
				elif result.needs_review:
					logger.warning(f"Task {task.id} needs review (confidence: {result.confidence}%)")
				else:
					raise OrchestrationError(f"Task {task.id} failed: {result.error}")

		raise OrchestrationError(f"Execution exceeded maximum iterations ({max_iterations})")

	async def _summarize(self, plan: TaskPlan, tracker: BudgetTracker) -> str:
		status = await tracker.check_budget()
		if status.exceeded:
			raise BudgetExceededError(
				f"Cannot generate summary - budget exceeded: {status.message}", status.budget_type,
			)

		meter = MeteredLLM(self.llm)
		try:
			result = await Summarizer(meter).summarize(plan)
		finally:
			await self._charge(plan.id, BudgetUsage(llm_calls=meter.llm_calls, tokens_used=meter.tokens_used))

		return result.summary

	async def _charge(self, plan_id: str, usage: BudgetUsage) -> None:
		if usage.llm_calls or usage.tokens_used or usage.web_searches:
			await self.store.increment_budget_usage(
				plan_id,
				llm_calls=usage.llm_calls,
				tokens_used=usage.tokens_used,
				web_searches=usage.web_searches,
			)

	async def _fail(self, plan_id: str, error: Exception) -> OrchestratorResult:
		message = str(error) or type(error).__name__
		logger.error(f"Plan {plan_id} failed: {message}")

		try:
			await self.store.fail_plan(plan_id, message)
		except (PlanTerminalError, PlanNotFoundError) as e:
			logger.warning(f"Could not mark plan {plan_id} failed: {e}")

		await self.callbacks.emit("error", message)

		plan = await self.store.get_plan(plan_id)
		return OrchestratorResult(
			success=False,
			plan_id=plan_id,
			error=message,
			stats=plan.get_stats() if plan else None,
			budget_type=getattr(error, "budget_type", None),
		)

	async def _on_budget_event(self, event: BudgetEvent) -> None:
		if event.type == "budget_exceeded":
			await self.callbacks.emit("budget_exceeded", event)
		else:
			await self.callbacks.emit("budget_warning", event)

	async def cancel_plan(self, plan_id: str, reason: str = "Cancelled by user") -> None:
		"""
		Cancel an active plan.

		A task already running finishes; no further task is started.

		Raises:
			PlanNotFoundError: If plan not found
			PlanTerminalError: If the plan already finished
		"""
		await self.store.cancel_plan(plan_id, reason)

	async def recover(self) -> int:
		"""Skip tasks orphaned in running by a crash. Returns plans touched."""
		recovered = await self.store.recover_active_plans(
			grace_minutes=self.config.recovery_grace_minutes,
		)
		if recovered:
			logger.warning(f"Crash recovery touched {recovered} plans")
		return recovered
