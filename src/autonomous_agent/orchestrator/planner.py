"""
Planner - Turns a free-text request into a validated task DAG.

Workflow:
1. Build a planning prompt from the request and optional context
2. Ask the planner model for a JSON task breakdown
3. Parse it (one repair attempt allowed)
4. Convert to pending Tasks and validate the dependency graph

Nothing is persisted here. A failed plan never reaches the store.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..errors import PlanValidationError, ResponseParseError
from ..llm.base import LLMClient, MeteredLLM
from ..plans.models import BudgetUsage, ModelSpec, Task, TaskStatus
from ..schemas import PLANNER_SCHEMA, PlannerResponse
from .graph import validate_dependency_graph
from .repair import parse_with_repair

logger = logging.getLogger(__name__)

# Retrieval excerpts are clipped to this many characters in the prompt
MAX_KNOWLEDGE_CHARS = 1000

PLANNER_SYSTEM_PROMPT = """You are an expert task planner. You break down complex requests into structured, executable task plans.

Key principles:
- Create clear, specific tasks
- Order work with explicit dependencies (task IDs)
- Never create circular dependencies
- Keep plans between 3 and 10 tasks

Respond with JSON only."""


@dataclass
class PlanningContext:
	"""Auxiliary context handed to the planner."""
	knowledge: Optional[str] = None
	conversation_history: Optional[str] = None
	category: Optional[str] = None


@dataclass
class PlanningResult:
	"""Planner output. `error` is set when no plan could be produced."""
	tasks: list[Task] = field(default_factory=list)
	title: str = ""
	error: Optional[str] = None
	warnings: list[str] = field(default_factory=list)
	# Individual graph problems when validation failed
	errors: list[str] = field(default_factory=list)
	usage: BudgetUsage = field(default_factory=BudgetUsage)

	@property
	def success(self) -> bool:
		return self.error is None and bool(self.tasks)


class Planner:
	"""
	Creates task plans with the planner model.

	Usage:
		planner = Planner(llm, spec)
		result = await planner.create_plan("Compare vendors A and B")
	"""

	def __init__(self, llm: LLMClient, spec: ModelSpec):
		self.llm = llm
		self.spec = spec

	async def create_plan(
		self,
		request: str,
		context: Optional[PlanningContext] = None,
	) -> PlanningResult:
		"""
		Create a validated task list for a request.

		Args:
			request: The user's request
			context: Optional knowledge, history and category hints

		Returns:
			PlanningResult with tasks, or with an error and no tasks
		"""
		meter = MeteredLLM(self.llm)
		title = ""
		try:
			response = await meter.generate(
				self.spec,
				build_planner_prompt(request, context or PlanningContext()),
				system_prompt=PLANNER_SYSTEM_PROMPT,
				temperature=0.3,
			)

			parsed = await parse_with_repair(
				response.content,
				PLANNER_SCHEMA,
				llm=meter,
				repair_spec=self.spec,
				context="Planner response for task breakdown",
			)

			if not parsed.success:
				raise ResponseParseError(f"Failed to parse plan: {parsed.error}", raw_content=response.content)

			plan: PlannerResponse = parsed.data
			title = plan.title
			tasks = [
				Task(
					id=spec.id,
					type=spec.type,
					target=spec.target,
					description=spec.description,
					priority=spec.priority,
					dependencies=list(spec.dependencies),
					status=TaskStatus.PENDING,
				)
				for spec in plan.tasks
			]

			validation = validate_dependency_graph(tasks)
			if not validation.valid:
				raise PlanValidationError(
					f"Invalid dependencies: {'; '.join(validation.errors)}",
					errors=validation.errors,
				)

			if validation.warnings:
				logger.warning(f"Plan dependency warnings: {validation.warnings}")

			logger.info(f"Planned '{plan.title}' with {len(tasks)} tasks")
			return PlanningResult(
				tasks=tasks,
				title=plan.title,
				warnings=validation.warnings,
				usage=_usage(meter),
			)

		except ResponseParseError as e:
			logger.error(f"Planner parse failed: {e}")
			return PlanningResult(title="Failed to create plan", error=str(e), usage=_usage(meter))

		except PlanValidationError as e:
			logger.error(f"Planner produced invalid dependencies: {e.errors}")
			return PlanningResult(title=title, error=str(e), errors=e.errors, usage=_usage(meter))

		except Exception as e:
			logger.error(f"Planning error: {e}")
			return PlanningResult(
				title="Error",
				error=f"Planning error: {e}",
				usage=_usage(meter),
			)


def _usage(meter: MeteredLLM) -> BudgetUsage:
	return BudgetUsage(llm_calls=meter.llm_calls, tokens_used=meter.tokens_used)


def build_planner_prompt(request: str, context: PlanningContext) -> str:
	"""Build the planning prompt."""
	lines = [
		"Break down this user request into a structured task plan.",
		"",
		"**User Request:**",
		request,
	]

	if context.knowledge:
		excerpt = context.knowledge[:MAX_KNOWLEDGE_CHARS]
		if len(context.knowledge) > MAX_KNOWLEDGE_CHARS:
			excerpt += "..."
		lines.extend(["", "**Available Knowledge:**", excerpt])

	if context.conversation_history:
		lines.extend(["", "**Conversation History:**", context.conversation_history])

	if context.category:
		lines.extend(["", "**Category Context:**", context.category])

	lines.append("""
**Instructions:**
1. Create 3-10 tasks that break down the request into logical steps
2. Each task should be specific and measurable
3. Use dependencies to define execution order (task IDs)
4. Assign appropriate task types based on the work needed
5. Ensure no circular dependencies
6. Use priority 1 (most urgent) to 10 to order independent tasks
7. When creating documents, use "generate" type with a target mentioning "document", "PDF" or "report"
8. When creating images, use "generate" type with a target mentioning "image", "infographic" or "chart"
9. When searching the web, use "search" type with a target mentioning "web search"

**Task Types:**
- **analyze**: Examine and interpret information
- **search**: Find information
- **compare**: Compare multiple items or options
- **generate**: Create new content
- **summarize**: Condense information into a summary
- **extract**: Pull out specific information
- **validate**: Check correctness or compliance

**Response Format:**
{
  "title": "Short plan title",
  "tasks": [
    {"id": 1, "type": "search", "target": "web search topic", "description": "...", "priority": 1, "dependencies": []},
    {"id": 2, "type": "analyze", "target": "findings", "description": "...", "priority": 1, "dependencies": [1]}
  ]
}

Respond with JSON only.""")

	return "\n".join(lines)
