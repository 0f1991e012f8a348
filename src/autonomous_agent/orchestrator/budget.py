"""
Budget Tracker - Global resource ceilings across all active plans.

Usage is summed over every active autonomous plan, so one plan's
consumption reduces another's headroom. Warnings fire at 50% (medium)
and 75% (high); anything at or above 100% is a hard stop.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..plans.models import BudgetLimits, BudgetUsage
from ..plans.store import PlanStore
from .events import Handler, call_handler

logger = logging.getLogger(__name__)

WARNING_THRESHOLD_MEDIUM = 50.0
WARNING_THRESHOLD_HIGH = 75.0


@dataclass
class BudgetEvent:
	"""A budget warning or exceeded notification. Not persisted."""
	type: str  # "budget_warning" or "budget_exceeded"
	budget_type: str
	message: str = ""
	used: float = 0
	max: float = 0
	percentage: int = 0
	level: Optional[str] = None  # "medium" or "high" for warnings


@dataclass
class BudgetStatus:
	"""Result of a budget check."""
	exceeded: bool
	budget_type: Optional[str] = None
	message: Optional[str] = None


class BudgetTracker:
	"""
	Checks aggregate usage against global ceilings.

	Elapsed duration is measured from construction of the tracker.
	"""

	def __init__(
		self,
		store: PlanStore,
		limits: Optional[BudgetLimits] = None,
		on_event: Handler = None,
		clock: Callable[[], float] = time.monotonic,
	):
		"""
		Initialize the tracker.

		Args:
			store: Plan store used to aggregate active usage
			limits: Global ceilings (defaults from config)
			on_event: Handler(BudgetEvent), sync or async
			clock: Monotonic seconds source
		"""
		if limits is None:
			from ..config import get_config
			limits = get_config().budget_limits()

		self.store = store
		self.limits = limits
		self.on_event = on_event
		self._clock = clock
		self._start = clock()

	def elapsed_minutes(self) -> float:
		return (self._clock() - self._start) / 60

	async def get_total_usage(self) -> BudgetUsage:
		"""Sum usage over all active autonomous plans."""
		return await self.store.get_active_usage()

	async def check_budget(self, usage: Optional[BudgetUsage] = None) -> BudgetStatus:
		"""
		Check usage against the global ceilings.

		Args:
			usage: Explicit usage. Aggregated from the store when omitted.

		Returns:
			BudgetStatus, exceeded when any ratio reaches 100%
		"""
		total = usage if usage is not None else await self.get_total_usage()

		checks = [
			("llm_calls", total.llm_calls, self.limits.max_llm_calls, "LLM call limit exceeded"),
			("tokens", total.tokens_used, self.limits.max_tokens, "Token limit exceeded"),
			("web_searches", total.web_searches, self.limits.max_web_searches, "Web search limit exceeded"),
		]

		for budget_type, used, limit, label in checks:
			if _pct(used, limit) >= 100:
				return await self._exceeded(budget_type, f"{label} ({limit})", used, limit)

		elapsed = self.elapsed_minutes()
		if _pct(elapsed, self.limits.max_duration_minutes) >= 100:
			return await self._exceeded(
				"duration",
				f"Time limit exceeded ({self.limits.max_duration_minutes:g} min)",
				elapsed,
				self.limits.max_duration_minutes,
			)

		for budget_type, used, limit, _ in checks:
			pct = _pct(used, limit)
			if pct >= WARNING_THRESHOLD_HIGH:
				level = "high"
			elif pct >= WARNING_THRESHOLD_MEDIUM:
				level = "medium"
			else:
				continue
			event = BudgetEvent(
				type="budget_warning",
				budget_type=budget_type,
				message=f"{budget_type} at {round(pct)}% of budget",
				used=used,
				max=limit,
				percentage=round(pct),
				level=level,
			)
			logger.info(f"Budget warning ({level}): {event.message}")
			await call_handler(self.on_event, event, label="budget_warning")

		return BudgetStatus(exceeded=False)

	async def get_usage_summary(self) -> dict:
		"""Totals plus percentage of each ceiling."""
		total = await self.get_total_usage()
		elapsed = self.elapsed_minutes()

		return {
			"llm_calls": total.llm_calls,
			"tokens_used": total.tokens_used,
			"web_searches": total.web_searches,
			"duration_minutes": round(elapsed),
			"llm_pct": round(_pct(total.llm_calls, self.limits.max_llm_calls)),
			"token_pct": round(_pct(total.tokens_used, self.limits.max_tokens)),
			"search_pct": round(_pct(total.web_searches, self.limits.max_web_searches)),
			"duration_pct": round(_pct(elapsed, self.limits.max_duration_minutes)),
		}

	async def _exceeded(self, budget_type: str, message: str, used: float, limit: float) -> BudgetStatus:
		logger.error(f"Budget exceeded: {message}")
		event = BudgetEvent(
			type="budget_exceeded",
			budget_type=budget_type,
			message=message,
			used=used,
			max=limit,
			percentage=round(_pct(used, limit)),
		)
		await call_handler(self.on_event, event, label="budget_exceeded")
		return BudgetStatus(exceeded=True, budget_type=budget_type, message=message)


def _pct(used: float, limit: float) -> float:
	return used / limit * 100
