"""Shared test fixtures and helpers for autonomous-agent tests."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from autonomous_agent.config import Config
from autonomous_agent.llm.base import LLMResponse
from autonomous_agent.orchestrator.toolbox import ToolContext, ToolResult
from autonomous_agent.plans.models import (
	BudgetLimits,
	ModelSpec,
	Task,
	TaskPlan,
	TaskStatus,
	TaskType,
)

# Scripted reply: text, a full response, an exception to raise, or a callable(prompt)
Reply = Union[str, LLMResponse, Exception, Callable[[str], Any]]

TEST_SPEC = ModelSpec(provider="openai", model="test-model")


def make_task(
	task_id: int,
	dependencies: tuple[int, ...] = (),
	status: TaskStatus = TaskStatus.PENDING,
	task_type: TaskType = TaskType.ANALYZE,
	priority: int = 1,
	**kwargs: Any,
) -> Task:
	"""Create a Task with realistic defaults."""
	return Task(
		id=task_id,
		type=task_type,
		target=kwargs.pop("target", f"target {task_id}"),
		description=kwargs.pop("description", f"Do step {task_id}"),
		dependencies=list(dependencies),
		status=status,
		priority=priority,
		**kwargs,
	)


def make_plan(
	tasks: Optional[list[Task]] = None,
	title: str = "Vendor comparison",
	task_timeout_minutes: float = 5,
	**kwargs: Any,
) -> TaskPlan:
	"""Create a TaskPlan with a small linear graph by default."""
	if tasks is None:
		tasks = [
			make_task(1, task_type=TaskType.SEARCH, target="vendor pricing"),
			make_task(2, (1,), task_type=TaskType.COMPARE, target="pricing tiers"),
			make_task(3, (2,), task_type=TaskType.SUMMARIZE, target="recommendation"),
		]
	return TaskPlan(
		thread_id=kwargs.pop("thread_id", "thread-1"),
		user_id=kwargs.pop("user_id", "user-1"),
		title=title,
		original_request=kwargs.pop("original_request", "Compare vendor A and vendor B"),
		tasks=tasks,
		budget_limits=BudgetLimits(task_timeout_minutes=task_timeout_minutes),
		**kwargs,
	)


def make_config(tmp_path, **overrides: Any) -> Config:
	"""Config rooted in a temp dir."""
	config = Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data", **overrides)
	return config


def planner_json(tasks: list[dict], title: str = "Test plan") -> str:
	return json.dumps({"title": title, "tasks": tasks})


def checker_json(confidence: float, notes: str = "") -> str:
	return json.dumps({"confidence": confidence, "notes": notes})


ROLE_MARKERS = {
	"planner": "expert task planner",
	"executor": "task execution agent",
	"checker": "quality checker",
	"summarizer": "summary generation agent",
	"repair": "JSON repair assistant",
}


def role_of(system_prompt: str) -> str:
	for role, marker in ROLE_MARKERS.items():
		if marker in system_prompt:
			return role
	return "unknown"


@dataclass
class LLMCall:
	role: str
	spec: ModelSpec
	prompt: str
	system_prompt: str


class FakeLLM:
	"""
	Scripted LLM client.

	Replies are given per role. A list is consumed in order and its last
	entry repeats; a single value is reused for every call.
	"""

	def __init__(self, tokens_per_call: int = 10, **replies: Union[Reply, list[Reply]]):
		self.tokens_per_call = tokens_per_call
		self.replies = replies
		self.calls: list[LLMCall] = []

	def calls_for(self, role: str) -> list[LLMCall]:
		return [c for c in self.calls if c.role == role]

	async def generate(
		self,
		spec: ModelSpec,
		prompt: str,
		system_prompt: str = "",
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> LLMResponse:
		role = role_of(system_prompt)
		self.calls.append(LLMCall(role=role, spec=spec, prompt=prompt, system_prompt=system_prompt))

		script = self.replies.get(role, "ok")
		if isinstance(script, list):
			index = len(self.calls_for(role)) - 1
			reply = script[min(index, len(script) - 1)]
		else:
			reply = script

		if callable(reply) and not isinstance(reply, Exception):
			reply = reply(prompt)
			if hasattr(reply, "__await__"):
				reply = await reply
		if isinstance(reply, Exception):
			raise reply
		if isinstance(reply, LLMResponse):
			return reply
		return LLMResponse(content=reply, tokens_used=self.tokens_per_call, model=spec.model, provider=spec.provider)


@dataclass
class FakeTool:
	"""Tool returning a canned result and recording its calls."""
	name: str
	display_name: str = "Fake Tool"
	result: Union[ToolResult, Exception] = field(default_factory=lambda: ToolResult(success=True, content="tool output"))
	calls: list[tuple[ToolContext, dict]] = field(default_factory=list)

	async def execute(self, ctx: ToolContext, args: dict) -> ToolResult:
		self.calls.append((ctx, args))
		if isinstance(self.result, Exception):
			raise self.result
		return self.result


class CallbackRecorder:
	"""Collects every orchestrator callback as (name, args)."""

	def __init__(self):
		self.events: list[tuple[str, tuple]] = []

	def names(self) -> list[str]:
		return [name for name, _ in self.events]

	def of(self, name: str) -> list[tuple]:
		return [args for n, args in self.events if n == name]

	def callbacks(self):
		from autonomous_agent.orchestrator.events import OrchestratorCallbacks

		def recorder(name):
			def record(*args):
				self.events.append((name, args))
			return record

		return OrchestratorCallbacks(**{
			f"on_{name}": recorder(name)
			for name in (
				"plan_created", "task_started", "task_completed", "tool_start", "tool_end",
				"artifact", "budget_warning", "budget_exceeded", "error", "plan_completed",
			)
		})
