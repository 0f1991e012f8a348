"""
Orchestrator callbacks.

A transport layer (MCP progress, CLI rendering) subscribes by passing
an OrchestratorCallbacks. Handlers may be sync or async. A failing
handler is logged and never interrupts orchestration.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Handler = Optional[Callable[..., Any]]


@dataclass
class OrchestratorCallbacks:
	"""
	Progress hooks.

	Signatures:
		on_plan_created(plan)
		on_task_started(task)
		on_task_completed(task, result)
		on_tool_start(task, tool_name)
		on_tool_end(task, tool_name, success)
		on_artifact(task, artifact)
		on_budget_warning(event)
		on_budget_exceeded(event)
		on_error(message)
		on_plan_completed(plan)
	"""
	on_plan_created: Handler = None
	on_task_started: Handler = None
	on_task_completed: Handler = None
	on_tool_start: Handler = None
	on_tool_end: Handler = None
	on_artifact: Handler = None
	on_budget_warning: Handler = None
	on_budget_exceeded: Handler = None
	on_error: Handler = None
	on_plan_completed: Handler = None

	async def emit(self, name: str, *args: Any) -> None:
		"""Invoke the named handler if set."""
		await call_handler(getattr(self, f"on_{name}"), *args, label=name)


async def call_handler(handler: Handler, *args: Any, label: str = "callback") -> None:
	"""Call a sync or async handler, logging any exception."""
	if handler is None:
		return
	try:
		result = handler(*args)
		if inspect.isawaitable(result):
			await result
	except Exception as e:
		logger.error(f"{label} handler failed: {e}")
