"""
Plan Models - Pydantic schemas for autonomous task plans.

A TaskPlan holds an ordered list of Tasks forming a dependency DAG,
plus the budget ceilings and per-role model configuration it runs with.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class PlanStatus(str, Enum):
	"""Status of a plan. Everything except ACTIVE is terminal."""
	ACTIVE = "active"
	COMPLETED = "completed"
	CANCELLED = "cancelled"
	FAILED = "failed"

	@property
	def is_terminal(self) -> bool:
		return self != PlanStatus.ACTIVE


class TaskStatus(str, Enum):
	"""Status of a task within a plan."""
	PENDING = "pending"
	RUNNING = "running"
	DONE = "done"
	FAILED = "failed"
	SKIPPED = "skipped"
	NEEDS_REVIEW = "needs_review"


class TaskType(str, Enum):
	"""Kind of work a task performs."""
	ANALYZE = "analyze"
	SEARCH = "search"
	COMPARE = "compare"
	GENERATE = "generate"
	SUMMARIZE = "summarize"
	EXTRACT = "extract"
	VALIDATE = "validate"


# Statuses that unblock dependents. needs_review counts as settled.
SETTLED_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.SKIPPED, TaskStatus.NEEDS_REVIEW})

TERMINAL_TASK_STATUSES = frozenset({
	TaskStatus.DONE,
	TaskStatus.FAILED,
	TaskStatus.SKIPPED,
	TaskStatus.NEEDS_REVIEW,
})

# Forward-only transitions accepted by the store
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
	TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.SKIPPED, TaskStatus.FAILED}),
	TaskStatus.RUNNING: frozenset({
		TaskStatus.DONE,
		TaskStatus.NEEDS_REVIEW,
		TaskStatus.SKIPPED,
		TaskStatus.FAILED,
	}),
}


def _now() -> str:
	return datetime.now().isoformat()


class StateHistoryEntry(BaseModel):
	"""One append-only entry in a task's state log."""
	status: TaskStatus
	timestamp: str = Field(default_factory=_now)
	details: dict[str, Any] = Field(default_factory=dict)


class BudgetLimits(BaseModel):
	"""Resource ceilings for autonomous execution."""
	max_llm_calls: int = Field(default=100, gt=0)
	max_tokens: int = Field(default=500_000, gt=0)
	max_web_searches: int = Field(default=20, gt=0)
	max_duration_minutes: float = Field(default=30, gt=0)
	task_timeout_minutes: float = Field(default=5, gt=0)


class BudgetUsage(BaseModel):
	"""Monotonic usage counters."""
	llm_calls: int = 0
	tokens_used: int = 0
	web_searches: int = 0

	def __add__(self, other: "BudgetUsage") -> "BudgetUsage":
		return BudgetUsage(
			llm_calls=self.llm_calls + other.llm_calls,
			tokens_used=self.tokens_used + other.tokens_used,
			web_searches=self.web_searches + other.web_searches,
		)


LLMProvider = Literal["openai", "gemini", "mistral"]


class ModelSpec(BaseModel):
	"""Which provider/model a role talks to."""
	provider: LLMProvider
	model: str
	temperature: float = 0.4
	max_tokens: Optional[int] = None


class ModelConfig(BaseModel):
	"""Independently configurable model per agent role."""
	planner: ModelSpec
	executor: ModelSpec
	checker: ModelSpec
	summarizer: ModelSpec

	def for_role(self, role: str) -> ModelSpec:
		"""Get the model spec for a role name."""
		if role not in ("planner", "executor", "checker", "summarizer"):
			raise ValueError(f"Unknown agent role: {role}")
		return getattr(self, role)


DEFAULT_MODEL_CONFIG = ModelConfig(
	planner=ModelSpec(provider="gemini", model="gemini-2.0-flash-exp", temperature=0.3),
	executor=ModelSpec(provider="openai", model="gpt-4o", temperature=0.4),
	checker=ModelSpec(provider="openai", model="gpt-4o-mini", temperature=0.2),
	summarizer=ModelSpec(provider="openai", model="gpt-4o-mini", temperature=0.5),
)

MODEL_PRESETS: dict[str, ModelConfig] = {
	"default": DEFAULT_MODEL_CONFIG,
	"quality": ModelConfig(
		planner=ModelSpec(provider="gemini", model="gemini-2.0-flash-exp", temperature=0.3),
		executor=ModelSpec(provider="openai", model="gpt-4o", temperature=0.4),
		checker=ModelSpec(provider="openai", model="gpt-4o", temperature=0.2),
		summarizer=ModelSpec(provider="openai", model="gpt-4o", temperature=0.5),
	),
	"economy": ModelConfig(
		planner=ModelSpec(provider="mistral", model="mistral-large-latest", temperature=0.3),
		executor=ModelSpec(provider="openai", model="gpt-4o-mini", temperature=0.4),
		checker=ModelSpec(provider="mistral", model="mistral-medium-latest", temperature=0.2),
		summarizer=ModelSpec(provider="openai", model="gpt-4o-mini", temperature=0.5),
	),
	"compliance": ModelConfig(
		planner=ModelSpec(provider="gemini", model="gemini-2.0-flash-exp", temperature=0.2),
		executor=ModelSpec(provider="gemini", model="gemini-2.0-flash-exp", temperature=0.3),
		checker=ModelSpec(provider="openai", model="gpt-4o", temperature=0.1),
		summarizer=ModelSpec(provider="openai", model="gpt-4o", temperature=0.4),
	),
}


class Task(BaseModel):
	"""A single node of the plan's dependency graph."""
	id: int = Field(description="Unique within the plan")
	type: TaskType
	target: str = ""
	description: str
	dependencies: list[int] = Field(default_factory=list)
	status: TaskStatus = Field(default=TaskStatus.PENDING)
	priority: int = Field(default=1, description="1 is most urgent")

	result: Optional[str] = None
	error: Optional[str] = None
	confidence_score: Optional[float] = None
	review_notes: Optional[str] = None
	tokens_used: Optional[int] = None
	llm_calls: Optional[int] = None

	started_at: Optional[str] = None
	completed_at: Optional[str] = None
	state_history: list[StateHistoryEntry] = Field(default_factory=list)

	@property
	def is_terminal(self) -> bool:
		return self.status in TERMINAL_TASK_STATUSES


class PlanStats(BaseModel):
	"""Aggregate view of a plan's task outcomes and usage."""
	total_tasks: int = 0
	pending_tasks: int = 0
	running_tasks: int = 0
	completed_tasks: int = 0
	failed_tasks: int = 0
	skipped_tasks: int = 0
	needs_review_tasks: int = 0
	average_confidence: float = 0.0
	total_llm_calls: int = 0
	total_tokens_used: int = 0
	total_web_searches: int = 0
	progress_percent: float = 0.0


class TaskPlan(BaseModel):
	"""
	An autonomous plan.

	Created once after planning and validation succeed. After that it only
	changes through the store's named operations.
	"""
	id: str = Field(default="", description="Assigned by the store on creation")
	thread_id: str
	user_id: str
	category_slug: Optional[str] = None
	title: str
	original_request: str = ""
	tasks: list[Task] = Field(default_factory=list)
	status: PlanStatus = Field(default=PlanStatus.ACTIVE)
	mode: str = "autonomous"

	budget_limits: BudgetLimits = Field(default_factory=BudgetLimits)
	budget_used: BudgetUsage = Field(default_factory=BudgetUsage)
	models: ModelConfig = Field(default_factory=lambda: DEFAULT_MODEL_CONFIG.model_copy(deep=True))

	summary: Optional[str] = None
	error_message: Optional[str] = None

	created_at: str = Field(default_factory=_now)
	updated_at: str = Field(default_factory=_now)
	completed_at: Optional[str] = None

	def get_task(self, task_id: int) -> Optional[Task]:
		"""Find a task by id."""
		for task in self.tasks:
			if task.id == task_id:
				return task
		return None

	def all_tasks_terminal(self) -> bool:
		"""True once every task has reached a terminal status."""
		return all(t.is_terminal for t in self.tasks)

	def get_stats(self) -> PlanStats:
		"""Calculate task counts, confidence and usage totals."""
		counts = {status: 0 for status in TaskStatus}
		for task in self.tasks:
			counts[task.status] += 1

		scores = [t.confidence_score for t in self.tasks if t.confidence_score is not None]
		total = len(self.tasks)
		finished = sum(counts[s] for s in TERMINAL_TASK_STATUSES)

		return PlanStats(
			total_tasks=total,
			pending_tasks=counts[TaskStatus.PENDING],
			running_tasks=counts[TaskStatus.RUNNING],
			completed_tasks=counts[TaskStatus.DONE],
			failed_tasks=counts[TaskStatus.FAILED],
			skipped_tasks=counts[TaskStatus.SKIPPED],
			needs_review_tasks=counts[TaskStatus.NEEDS_REVIEW],
			average_confidence=round(sum(scores) / len(scores), 1) if scores else 0.0,
			total_llm_calls=self.budget_used.llm_calls,
			total_tokens_used=self.budget_used.tokens_used,
			total_web_searches=self.budget_used.web_searches,
			progress_percent=round(finished / total * 100, 1) if total > 0 else 0.0,
		)

	def to_markdown(self) -> str:
		"""Convert plan to markdown format."""
		lines = [
			f"# {self.title}",
			"",
			f"**Plan:** {self.id}",
			f"**Status:** {self.status.value}",
			f"**Created:** {self.created_at}",
			"",
		]

		if self.original_request:
			lines.append("## Request")
			lines.append(self.original_request)
			lines.append("")

		lines.append("## Tasks")
		for task in self.tasks:
			icon = {
				TaskStatus.PENDING: "[ ]",
				TaskStatus.RUNNING: "[~]",
				TaskStatus.DONE: "[x]",
				TaskStatus.FAILED: "[!]",
				TaskStatus.SKIPPED: "[-]",
				TaskStatus.NEEDS_REVIEW: "[?]",
			}.get(task.status, "[ ]")

			deps = f" (after {', '.join(str(d) for d in task.dependencies)})" if task.dependencies else ""
			lines.append(f"- {icon} {task.id}. [{task.type.value}] {task.description}{deps}")
			if task.confidence_score is not None:
				lines.append(f"  - confidence: {task.confidence_score:.0f}%")
			if task.error:
				lines.append(f"  - error: {task.error}")
			if task.review_notes and task.status == TaskStatus.NEEDS_REVIEW:
				lines.append(f"  - review: {task.review_notes}")
		lines.append("")

		if self.summary:
			lines.append("## Summary")
			lines.append(self.summary)
			lines.append("")

		if self.error_message:
			lines.append("## Error")
			lines.append(self.error_message)
			lines.append("")

		return "\n".join(lines)
