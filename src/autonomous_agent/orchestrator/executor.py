"""
Executor - Runs a single task to a terminal state.

Guarantees:
- Idempotent: a task that is no longer pending is not run again
- Fail-fast: any error during execution skips the task, no retries
- Bounded: execution races the plan's per-task timeout
- Gated: results only reach `done` through the checker

Usage is metered on every model call, so a failed or timed-out task
still reports what it consumed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..errors import PlanNotFoundError, TaskExecutionError
from ..llm.base import LLMClient, MeteredLLM
from ..plans.models import BudgetUsage, Task, TaskPlan, TaskStatus
from ..plans.store import PlanStore
from .checker import Checker
from .events import OrchestratorCallbacks
from .toolbox import (
	DOCUMENT_TOOL,
	IMAGE_TOOL,
	WEB_SEARCH_TOOL,
	ToolContext,
	ToolRegistry,
	detect_tool,
)

logger = logging.getLogger(__name__)

# Dependency results are clipped to this many characters in the prompt
DEPENDENCY_RESULT_CHARS = 200

EXECUTOR_SYSTEM_PROMPT = """You are a task execution agent. You complete specific tasks as part of a larger plan.

Key principles:
- Follow the task type and description precisely
- Provide clear, actionable results
- Reference dependent task results when relevant
- Be concise but thorough
- If information is missing, explain what's needed

Output your result directly without JSON formatting."""


@dataclass
class ExecutionResult:
	"""Outcome of one execute_task call."""
	success: bool
	status: Optional[TaskStatus] = None
	result: Optional[str] = None
	error: Optional[str] = None
	skip_reason: Optional[str] = None
	confidence: Optional[float] = None
	review_notes: Optional[str] = None
	skipped: bool = False
	needs_review: bool = False
	tool_name: Optional[str] = None
	usage: BudgetUsage = field(default_factory=BudgetUsage)


@dataclass
class _TaskRun:
	"""Per-attempt accounting."""
	meter: MeteredLLM
	web_searches: int = 0
	tool_name: Optional[str] = None

	def usage(self) -> BudgetUsage:
		return BudgetUsage(
			llm_calls=self.meter.llm_calls,
			tokens_used=self.meter.tokens_used,
			web_searches=self.web_searches,
		)


class Executor:
	"""
	Executes tasks with tool dispatch, timeout and quality check.

	Usage:
		executor = Executor(store, llm, tools=registry)
		result = await executor.execute_task(task, plan)
	"""

	def __init__(
		self,
		store: PlanStore,
		llm: LLMClient,
		tools: Optional[ToolRegistry] = None,
		callbacks: Optional[OrchestratorCallbacks] = None,
		confidence_threshold: Optional[int] = None,
	):
		"""
		Initialize the executor.

		Args:
			store: Plan store for state transitions
			llm: LLM client shared by the executor and checker roles
			tools: Tool registry (plain LLM execution when omitted)
			callbacks: Tool and artifact progress hooks
			confidence_threshold: Checker approval threshold (default from config)
		"""
		self.store = store
		self.llm = llm
		self.tools = tools
		self.callbacks = callbacks or OrchestratorCallbacks()
		self.confidence_threshold = confidence_threshold

		if self.tools is not None:
			self.tools.init()

	async def execute_task(self, task: Task, plan: TaskPlan) -> ExecutionResult:
		"""
		Run one task.

		Args:
			task: Task to run (its persisted status is re-read)
			plan: Parent plan, for context, models and timeout

		Returns:
			ExecutionResult. Task-level failures never raise.

		Raises:
			PlanNotFoundError: If the plan no longer exists
		"""
		current_plan = await self.store.get_plan(plan.id)
		if current_plan is None:
			raise PlanNotFoundError(f"Plan not found: {plan.id}")

		current = current_plan.get_task(task.id)
		if current is None:
			return ExecutionResult(success=False, error=f"Task {task.id} not found in plan {plan.id}")

		if current.status != TaskStatus.PENDING:
			return ExecutionResult(
				success=True,
				status=current.status,
				skip_reason=f"Task already {current.status.value}",
			)

		try:
			await self.store.transition_task_state(plan.id, task.id, TaskStatus.RUNNING)
		except Exception as e:
			error = f"Failed to transition to running: {e}"
			logger.warning(f"Task {task.id}: {error}")
			try:
				await self.store.transition_task_state(plan.id, task.id, TaskStatus.SKIPPED, error=error)
			except Exception as skip_error:
				logger.error(f"Could not mark task {task.id} skipped: {skip_error}")
			return ExecutionResult(success=False, status=TaskStatus.SKIPPED, error=error, skipped=True)

		run = _TaskRun(meter=MeteredLLM(self.llm))

		try:
			content = await self._run_with_timeout(run, current, current_plan)

			checker = Checker(run.meter, current_plan.models.checker, threshold=self.confidence_threshold)
			verdict = await checker.check(current, content)
			usage = run.usage()

			if verdict.approved:
				await self.store.transition_task_state(
					plan.id,
					task.id,
					TaskStatus.DONE,
					result=content,
					confidence_score=verdict.confidence_score,
					tokens_used=usage.tokens_used,
					llm_calls=usage.llm_calls,
				)
				logger.info(f"Task {task.id} done ({verdict.confidence_score:g}%)")
				return ExecutionResult(
					success=True,
					status=TaskStatus.DONE,
					result=content,
					confidence=verdict.confidence_score,
					tool_name=run.tool_name,
					usage=usage,
				)

			await self.store.transition_task_state(
				plan.id,
				task.id,
				TaskStatus.NEEDS_REVIEW,
				result=content,
				confidence_score=verdict.confidence_score,
				review_notes=verdict.notes,
				tokens_used=usage.tokens_used,
				llm_calls=usage.llm_calls,
			)
			logger.warning(f"Task {task.id} needs review ({verdict.confidence_score:g}%): {verdict.notes}")
			return ExecutionResult(
				success=False,
				status=TaskStatus.NEEDS_REVIEW,
				result=content,
				confidence=verdict.confidence_score,
				review_notes=verdict.notes,
				needs_review=True,
				tool_name=run.tool_name,
				usage=usage,
			)

		except Exception as e:
			error = str(e) or type(e).__name__
			usage = run.usage()
			logger.warning(f"Task {task.id} skipped: {error}")
			try:
				await self.store.transition_task_state(
					plan.id,
					task.id,
					TaskStatus.SKIPPED,
					error=error,
					tokens_used=usage.tokens_used,
					llm_calls=usage.llm_calls,
				)
			except Exception as skip_error:
				logger.error(f"Could not mark task {task.id} skipped: {skip_error}")
				return ExecutionResult(
					success=False,
					error=f"{error}; could not record skip: {skip_error}",
					tool_name=run.tool_name,
					usage=usage,
				)

			return ExecutionResult(
				success=False,
				status=TaskStatus.SKIPPED,
				error=error,
				skipped=True,
				tool_name=run.tool_name,
				usage=usage,
			)

	async def _run_with_timeout(self, run: _TaskRun, task: Task, plan: TaskPlan) -> str:
		timeout_minutes = plan.budget_limits.task_timeout_minutes
		try:
			return await asyncio.wait_for(self._perform(run, task, plan), timeout=timeout_minutes * 60)
		except asyncio.TimeoutError as e:
			raise TaskExecutionError(f"Task {task.id} timed out after {timeout_minutes:g} minutes") from e

	async def _perform(self, run: _TaskRun, task: Task, plan: TaskPlan) -> str:
		tool_name = detect_tool(task, self.tools)
		run.tool_name = tool_name

		if tool_name is None:
			return await self._generate(run, task, plan)

		ctx = ToolContext(
			plan_id=plan.id,
			task_id=task.id,
			thread_id=plan.thread_id,
			user_id=plan.user_id,
			category_slug=plan.category_slug,
		)

		if tool_name == WEB_SEARCH_TOOL:
			args = {"query": task.target or task.description}
			run.web_searches += 1
			result = await self._call_tool(task, tool_name, ctx, args)
			return result.content

		if tool_name == DOCUMENT_TOOL:
			content = await self._generate(run, task, plan)
			args = {"title": task.target, "description": task.description, "content": content}
			result = await self._call_tool(task, tool_name, ctx, args)
			return f"{content}\n\n{result.content}" if result.content else content

		if tool_name == IMAGE_TOOL:
			args = {"prompt": f"{task.target}: {task.description}"}
			result = await self._call_tool(task, tool_name, ctx, args)
			return result.content

		result = await self._call_tool(task, tool_name, ctx, {"target": task.target, "description": task.description})
		return result.content

	async def _generate(self, run: _TaskRun, task: Task, plan: TaskPlan) -> str:
		response = await run.meter.generate(
			plan.models.executor,
			build_execution_prompt(task, plan),
			system_prompt=EXECUTOR_SYSTEM_PROMPT,
			temperature=0.4,
		)
		return response.content

	async def _call_tool(self, task: Task, tool_name: str, ctx: ToolContext, args: dict):
		tool = self.tools.get(tool_name)
		await self.callbacks.emit("tool_start", task, tool_name)

		try:
			result = await tool.execute(ctx, args)
		except Exception as e:
			await self.callbacks.emit("tool_end", task, tool_name, False)
			raise TaskExecutionError(f"{tool.display_name} failed: {e}") from e

		await self.callbacks.emit("tool_end", task, tool_name, result.success)

		if not result.success:
			raise TaskExecutionError(f"{tool.display_name} failed: {result.error or 'unknown error'}")

		for artifact in result.artifacts:
			await self.callbacks.emit("artifact", task, artifact)

		return result


def build_execution_prompt(task: Task, plan: TaskPlan) -> str:
	"""Build the executor prompt, including clipped dependency results."""
	lines = [
		"Execute this task as part of a larger plan.",
		"",
		f"**Plan:** {plan.title}",
		f"**Original Request:** {plan.original_request}",
		"",
		"**Task to Execute:**",
		f"- ID: {task.id}",
		f"- Type: {task.type.value}",
		f"- Target: {task.target}",
		f"- Description: {task.description}",
	]

	dep_lines = []
	for dep_id in task.dependencies:
		dep = plan.get_task(dep_id)
		if dep and dep.result:
			clipped = dep.result[:DEPENDENCY_RESULT_CHARS]
			if len(dep.result) > DEPENDENCY_RESULT_CHARS:
				clipped += "..."
			dep_lines.append(f"- Task {dep_id}: {dep.description}\n  Result: {clipped}")

	if dep_lines:
		lines.extend(["", "**Dependencies (already completed):**", *dep_lines])

	lines.append("""
**Instructions:**
Execute the task based on the type:
- **analyze**: Examine and interpret the information
- **search**: Find relevant information (explain what you would search for)
- **compare**: Compare the items and highlight key differences
- **generate**: Create the requested content
- **summarize**: Provide a concise summary
- **extract**: Pull out the specific information requested
- **validate**: Check correctness and flag any issues

Provide a clear, actionable result.""")

	return "\n".join(lines)
