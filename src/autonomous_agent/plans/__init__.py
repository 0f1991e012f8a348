"""Plans module - Autonomous plan models and durable storage."""

from .models import BudgetLimits, BudgetUsage, ModelConfig, ModelSpec, PlanStatus, Task, TaskPlan, TaskStatus, TaskType
from .store import PlanStore, get_plan_store

__all__ = [
	"TaskPlan",
	"Task",
	"TaskStatus",
	"TaskType",
	"PlanStatus",
	"BudgetLimits",
	"BudgetUsage",
	"ModelConfig",
	"ModelSpec",
	"PlanStore",
	"get_plan_store",
]
