"""
Error taxonomy for autonomous plan orchestration.

Task-level errors are caught by the executor and turned into task state.
Plan-level errors abort the orchestration loop and leave the plan failed.
"""

from typing import Optional


class OrchestrationError(Exception):
	"""Base class for all orchestration errors."""
	pass


class PlanValidationError(OrchestrationError):
	"""Raised when a task graph is malformed or cyclic. Not retryable."""

	def __init__(self, message: str, errors: Optional[list[str]] = None):
		super().__init__(message)
		self.errors = errors or []


class ResponseParseError(OrchestrationError):
	"""Raised when model output cannot be parsed after the repair attempt."""

	def __init__(self, message: str, raw_content: str = ""):
		super().__init__(message)
		self.raw_content = raw_content


class TaskExecutionError(OrchestrationError):
	"""Tool or LLM failure while running a single task (including timeouts)."""
	pass


class BudgetExceededError(OrchestrationError):
	"""A global budget ceiling was hit. Fatal to the plan."""

	def __init__(self, message: str, budget_type: str = ""):
		super().__init__(message)
		self.budget_type = budget_type


class StuckPlanError(OrchestrationError):
	"""The task graph deadlocked at runtime."""

	def __init__(self, message: str, stuck_task_ids: Optional[list[int]] = None):
		super().__init__(message)
		self.stuck_task_ids = stuck_task_ids or []


class SummaryError(OrchestrationError):
	"""The final summary could not be produced, so the plan cannot complete."""
	pass


class PlanNotFoundError(OrchestrationError):
	"""Raised when a plan is not found."""
	pass


class InvalidTransitionError(OrchestrationError):
	"""Raised when a task state change would move backwards."""
	pass


class PlanTerminalError(OrchestrationError):
	"""Raised when a terminal plan would change status again."""
	pass


class LLMError(OrchestrationError):
	"""Raised when a model provider call fails."""
	pass
