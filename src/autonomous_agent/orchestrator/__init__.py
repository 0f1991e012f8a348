"""Orchestrator module - Planning, execution, checking, budgeting and summarization."""

from .budget import BudgetTracker
from .checker import Checker
from .events import OrchestratorCallbacks
from .executor import ExecutionResult, Executor
from .planner import Planner, PlanningContext
from .runner import Orchestrator, OrchestratorResult
from .summarizer import Summarizer
from .toolbox import ToolContext, ToolRegistry, ToolResult

__all__ = [
	"Orchestrator",
	"OrchestratorResult",
	"OrchestratorCallbacks",
	"Planner",
	"PlanningContext",
	"Executor",
	"ExecutionResult",
	"Checker",
	"Summarizer",
	"BudgetTracker",
	"ToolRegistry",
	"ToolContext",
	"ToolResult",
]
